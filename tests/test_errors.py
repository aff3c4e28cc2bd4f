import pytest
import requests
from web3.exceptions import ContractLogicError

from errors import (
    ConfigurationError,
    FailureCause,
    InfrastructureError,
    RelayError,
    TransactionError,
    classify_failure,
    extract_error_details,
    extract_error_message,
    suggestions_for,
)


def _http_error(status):
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


@pytest.mark.parametrize("exc,expected", [
    (requests.ConnectionError("boom"), FailureCause.CONNECTIVITY),
    (requests.Timeout("slow"), FailureCause.CONNECTIVITY),
    (ContractLogicError("execution reverted: ERC20: transfer amount exceeds balance"), FailureCause.REVERT),
    (_http_error(429), FailureCause.RATE_LIMIT),
    (_http_error(401), FailureCause.AUTH),
    (RelayError("denied", status_code=403), FailureCause.AUTH),
    (ValueError("intrinsic gas too low"), FailureCause.INSUFFICIENT_GAS),
    (ValueError("Too Many Requests"), FailureCause.RATE_LIMIT),
    (ValueError("something odd"), FailureCause.UNKNOWN),
])
def test_classify_failure(exc, expected):
    assert classify_failure(exc) == expected


def test_classify_failure_looks_through_causes():
    wrapped = InfrastructureError("USDC funding failed", requests.ConnectionError("refused"))
    assert classify_failure(wrapped) == FailureCause.CONNECTIVITY

    try:
        try:
            raise TimeoutError("read timed out")
        except TimeoutError as e:
            raise TransactionError("Fusion execution failed") from e
    except TransactionError as chained:
        assert classify_failure(chained) == FailureCause.CONNECTIVITY


def test_error_codes():
    assert ConfigurationError("x").code == "CONFIGURATION_ERROR"
    assert InfrastructureError("x").code == "INFRASTRUCTURE_ERROR"
    assert TransactionError("x").code == "TRANSACTION_ERROR"
    assert RelayError("x").code == "RELAY_ERROR"
    assert isinstance(RelayError("x"), InfrastructureError)


def test_configuration_error_from_errors_lists_every_problem():
    err = ConfigurationError.from_errors("Environment validation failed", ["A is required", "B must be a valid URL"])
    assert err.errors == ["A is required", "B must be a valid URL"]
    assert err.message == "Environment validation failed:\n  - A is required\n  - B must be a valid URL"


def test_extract_error_details_from_relay_payloads():
    assert extract_error_details({"error": {"errors": ["AA21 didn't pay prefund", "simulation failed"]}}) == (
        "AA21 didn't pay prefund; simulation failed"
    )
    assert extract_error_details({"message": "quote expired"}) == "quote expired"
    assert extract_error_details({"error": {"message": "nonce too low"}}) == "nonce too low"
    assert extract_error_details({"errors": ["bad trigger"]}) == "bad trigger"
    assert extract_error_details({"reason": "paused"}) == "paused"
    assert extract_error_details({"data": {"code": 7}}) == '{"code": 7}'
    assert extract_error_details({"status": "odd"}) == '{"status": "odd"}'
    assert extract_error_details("plain text") == "plain text"


def test_extract_error_message():
    assert extract_error_message(TransactionError("reverted")) == "reverted"
    assert extract_error_message(KeyError()) == "KeyError"
    assert extract_error_message({"shortMessage": "short"}) == "short"
    assert extract_error_message(None) == "Unknown error occurred"


def test_connectivity_suggestions_name_both_start_scripts():
    suggestions = suggestions_for(requests.ConnectionError("connection refused"))
    assert "Check if Anvil is running: ./scripts/start-anvil.sh" in suggestions
    assert "Check if the MEE node is running: ./scripts/start-mee-node.sh" in suggestions
