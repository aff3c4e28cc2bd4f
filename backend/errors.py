import json
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from web3.exceptions import ContractLogicError, TimeExhausted


class DemoError(Exception):
    """Base error carrying a code, an optional cause and remediation hints."""

    code = "DEMO_ERROR"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        *,
        code: Optional[str] = None,
        suggestions: Iterable[str] = (),
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if code is not None:
            self.code = code
        self.suggestions: List[str] = list(suggestions)

    def __str__(self) -> str:
        if not self.suggestions:
            return self.message
        hints = "\n".join(f"  • {s}" for s in self.suggestions)
        return f"{self.message}\n\nSuggestions:\n{hints}"


class ConfigurationError(DemoError):
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None, *, errors: Iterable[str] = (), **kwargs):
        super().__init__(message, cause, **kwargs)
        self.errors: List[str] = list(errors)

    @classmethod
    def from_errors(cls, title: str, errors: List[str]) -> "ConfigurationError":
        lines = "\n".join(f"  - {e}" for e in errors)
        return cls(f"{title}:\n{lines}", errors=errors)


class InfrastructureError(DemoError):
    code = "INFRASTRUCTURE_ERROR"


class SDKError(DemoError):
    code = "SDK_ERROR"


class TransactionError(DemoError):
    code = "TRANSACTION_ERROR"


class RelayError(InfrastructureError):
    """HTTP-level failure reported by the relay node."""

    code = "RELAY_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None, *, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, cause, **kwargs)
        self.status_code = status_code


class FailureCause(Enum):
    CONNECTIVITY = "connectivity"
    REVERT = "revert"
    INSUFFICIENT_GAS = "insufficient_gas"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


TRANSIENT_CAUSES = frozenset({FailureCause.CONNECTIVITY, FailureCause.RATE_LIMIT})

REMEDIATIONS: Dict[FailureCause, Tuple[str, ...]] = {
    FailureCause.CONNECTIVITY: (
        "Check if Anvil is running: ./scripts/start-anvil.sh",
        "Check if the MEE node is running: ./scripts/start-mee-node.sh",
        "Check that the MEE node answers at MEE_NODE_URL (GET /info)",
        "Verify network connectivity",
    ),
    FailureCause.REVERT: (
        "Check if contracts are deployed on the fork",
        "Verify transaction parameters",
        "Check account balance and allowances",
    ),
    FailureCause.INSUFFICIENT_GAS: (
        "Increase gas limit in transaction",
        "Check if account has sufficient ETH for gas",
    ),
    FailureCause.AUTH: (
        "Check private key configuration",
        "Verify account permissions",
    ),
    FailureCause.RATE_LIMIT: (
        "Wait before retrying",
        "Consider using a different RPC provider",
    ),
    FailureCause.UNKNOWN: (),
}

STATUS_CAUSES = {
    401: FailureCause.AUTH,
    403: FailureCause.AUTH,
    429: FailureCause.RATE_LIMIT,
}

# Checked in order when the exception type alone says nothing.
MESSAGE_PATTERNS: Tuple[Tuple[re.Pattern, FailureCause], ...] = (
    (re.compile(r"rate limit|too many requests", re.I), FailureCause.RATE_LIMIT),
    (re.compile(r"unauthori[sz]ed|access denied|forbidden", re.I), FailureCause.AUTH),
    (re.compile(r"out of gas|intrinsic gas|insufficient funds for gas|gas required exceeds", re.I), FailureCause.INSUFFICIENT_GAS),
    (re.compile(r"execution reverted|\brevert", re.I), FailureCause.REVERT),
    (re.compile(r"econnrefused|connection refused|max retries exceeded|failed to establish", re.I), FailureCause.CONNECTIVITY),
)


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, RelayError):
        return exc.status_code
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code
    return None


def classify_failure(exc: BaseException) -> FailureCause:
    """Map an exception onto a FailureCause, looking through wrapped causes."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError, TimeExhausted)):
            return FailureCause.CONNECTIVITY
        if isinstance(current, ContractLogicError):
            return FailureCause.REVERT
        status = _status_code(current)
        if status in STATUS_CAUSES:
            return STATUS_CAUSES[status]
        if isinstance(current, DemoError) and current.cause is not None:
            current = current.cause
        else:
            current = current.__cause__

    message = extract_error_message(exc)
    for pattern, cause in MESSAGE_PATTERNS:
        if pattern.search(message):
            return cause
    return FailureCause.UNKNOWN


def suggestions_for(exc: BaseException) -> List[str]:
    return list(REMEDIATIONS[classify_failure(exc)])


def extract_error_message(error: Any) -> str:
    """Best-effort human readable message for exceptions and relay payloads."""
    if isinstance(error, DemoError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        for key in ("reason", "message", "shortMessage", "details"):
            if error.get(key):
                return str(error[key])
        nested = error.get("error")
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])
    return "Unknown error occurred"


def extract_error_details(error: Any) -> str:
    """
    Pull diagnostic text out of a relay response or receipt.

    Handles ``{"error": {"errors": [...]}}`` payloads, plain ``message`` /
    ``reason`` fields, top-level ``errors`` lists and raw ``data``.
    """
    if isinstance(error, BaseException):
        return extract_error_message(error)
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        nested = error.get("error")
        if isinstance(nested, dict) and isinstance(nested.get("errors"), list):
            return "; ".join(str(e) for e in nested["errors"])
        if error.get("message"):
            return str(error["message"])
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])
        if isinstance(nested, str) and nested:
            return nested
        if isinstance(error.get("errors"), list) and error["errors"]:
            return "; ".join(str(e) for e in error["errors"])
        if error.get("reason"):
            return str(error["reason"])
        if error.get("data"):
            return json.dumps(error["data"], default=str)
    try:
        return json.dumps(error, default=str)
    except (TypeError, ValueError):
        return str(error)
