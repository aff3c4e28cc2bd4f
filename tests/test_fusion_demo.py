import logging
from types import SimpleNamespace

import pytest
from hexbytes import HexBytes
from web3 import Web3

import fusion_demo
from chain import load_erc20_contract, load_wallet
from doubles import ANVIL_KEY, WALLET
from errors import RelayError, SDKError, TransactionError
from fusion_demo import (
    build_supply_instructions,
    compute_supply_amount,
    decode_received_amount,
    execute_fusion_transaction,
)
from models import FusionQuote, SupertransactionReceipt, SupertransactionStatus
from smart_account import SmartAccount

USDC = 10**6
QUOTE_HASH = "0x" + "ab" * 32
SUPERTX_HASH = "0x" + "cd" * 32
TX_HASH = "0x" + "ef" * 32

TRANSFER_TOPIC = Web3.keccak(text="Transfer(address,address,uint256)")


class DummyRelay:
    def __init__(self, receipt=None, quote_error=None):
        self.receipt = receipt
        self.quote_error = quote_error
        self.quotes = []
        self.executions = []

    def get_fusion_quote(self, account, instructions, trigger, fee_token):
        if self.quote_error is not None:
            raise self.quote_error
        self.quotes.append({"account": account, "instructions": instructions, "trigger": trigger, "fee_token": fee_token})
        return FusionQuote(hash=QUOTE_HASH, payload={"hash": QUOTE_HASH}, fee_amount=120_000)

    def execute_fusion_quote(self, quote, signature):
        self.executions.append((quote, signature))
        return SUPERTX_HASH

    def wait_for_supertransaction_receipt(self, supertx_hash, poll_interval=1.0, timeout=300.0):
        return self.receipt


@pytest.fixture
def fusion_session(settings):
    w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
    signer = load_wallet(ANVIL_KEY)
    return SimpleNamespace(
        settings=settings,
        w3=w3,
        signer=signer,
        smart_account=SmartAccount(signer, settings.chain_id),
        relay=DummyRelay(),
        logger=logging.getLogger("fusion_demo.tests"),
        address=signer.address,
    )


def test_supply_amount_is_half_the_balance_rounded_down():
    assert compute_supply_amount(101, minimum=0) == 50
    assert compute_supply_amount(100 * USDC) == 50 * USDC
    assert compute_supply_amount(20 * USDC) == 10 * USDC


def test_supply_amount_requires_minimum_balance():
    with pytest.raises(TransactionError, match="Minimum required: 20.0000 USDC"):
        compute_supply_amount(20 * USDC - 1)


def test_instructions_approve_then_supply(fusion_session):
    contracts = fusion_session.settings.contracts
    approve, supply = build_supply_instructions(fusion_session, 50 * USDC)

    assert approve.function_name == "approve"
    assert approve.to == Web3.to_checksum_address(contracts.usdc)
    assert approve.args == (Web3.to_checksum_address(contracts.aave_pool), 50 * USDC)
    assert approve.data.startswith("0x095ea7b3")
    assert approve.chain_id == 1

    assert supply.function_name == "supply"
    assert supply.to == Web3.to_checksum_address(contracts.aave_pool)
    assert supply.args == (Web3.to_checksum_address(contracts.usdc), 50 * USDC, WALLET, 0)
    assert supply.data.startswith("0x")


def test_unknown_function_is_an_sdk_error(fusion_session):
    usdc = load_erc20_contract(fusion_session.w3, fusion_session.settings.contracts.usdc)
    with pytest.raises(SDKError, match="mint"):
        fusion_session.smart_account.build_instruction(usdc, "mint", [1])


def test_successful_execution(fusion_session):
    fusion_session.relay.receipt = SupertransactionReceipt(
        hash=SUPERTX_HASH,
        status=SupertransactionStatus.MINED_SUCCESS,
        transaction_hashes=(TX_HASH,),
    )

    execution = execute_fusion_transaction(fusion_session, 50 * USDC)

    assert execution.success
    assert execution.hash == SUPERTX_HASH
    assert execution.supply_amount == 50 * USDC
    assert execution.transaction_hashes == (TX_HASH,)

    quote = fusion_session.relay.quotes[0]
    usdc = fusion_session.settings.contracts.usdc
    assert quote["account"] == WALLET
    assert quote["trigger"] == {"chainId": 1, "tokenAddress": usdc, "amount": 50 * USDC}
    assert quote["fee_token"] == {"address": usdc, "chainId": 1}
    assert [i.function_name for i in quote["instructions"]] == ["approve", "supply"]

    _, signature = fusion_session.relay.executions[0]
    assert signature.startswith("0x") and len(signature) == 132


def test_failed_supertransaction_carries_relay_diagnostics(fusion_session):
    fusion_session.relay.receipt = SupertransactionReceipt(
        hash=SUPERTX_HASH,
        status=SupertransactionStatus.MINED_FAIL,
        raw={"userOps": [{"executionError": "AA21 didn't pay prefund"}]},
    )

    with pytest.raises(TransactionError, match="Fusion transaction failed: AA21 didn't pay prefund"):
        execute_fusion_transaction(fusion_session, 50 * USDC)


def test_relay_errors_pass_through_unchanged(fusion_session):
    fusion_session.relay = DummyRelay(quote_error=RelayError("quote rejected", status_code=400))

    with pytest.raises(RelayError) as exc:
        execute_fusion_transaction(fusion_session, 50 * USDC)
    assert exc.value.status_code == 400


def test_unexpected_errors_become_transaction_errors(fusion_session):
    fusion_session.relay = DummyRelay(quote_error=KeyError("hash"))

    with pytest.raises(TransactionError, match="Fusion execution failed"):
        execute_fusion_transaction(fusion_session, 50 * USDC)


def _address_topic(address):
    return HexBytes(b"\x00" * 12 + bytes.fromhex(address[2:]))


def _transfer_log(token, sender, recipient, value, index):
    return {
        "address": token,
        "topics": [TRANSFER_TOPIC, _address_topic(sender), _address_topic(recipient)],
        "data": HexBytes(value.to_bytes(32, "big")),
        "blockNumber": 19_000_001,
        "blockHash": HexBytes(b"\x01" * 32),
        "transactionHash": HexBytes(bytes.fromhex(TX_HASH[2:])),
        "transactionIndex": 0,
        "logIndex": index,
        "removed": False,
    }


@pytest.fixture
def receipt_session(session, monkeypatch):
    contract_w3 = Web3(Web3.HTTPProvider(session.settings.rpc_url))
    monkeypatch.setattr(
        fusion_demo, "load_erc20_contract",
        lambda w3, address: load_erc20_contract(contract_w3, address),
    )
    return session


def test_decode_received_amount_sums_a_token_transfers_to_wallet(receipt_session):
    contracts = receipt_session.settings.contracts
    a_usdc = Web3.to_checksum_address(contracts.a_usdc)
    usdc = Web3.to_checksum_address(contracts.usdc)
    pool = Web3.to_checksum_address(contracts.aave_pool)
    zero = "0x" + "00" * 20
    other = "0x" + "77" * 20

    receipt_session.w3.eth.tx_receipts[TX_HASH] = {
        "transactionHash": HexBytes(bytes.fromhex(TX_HASH[2:])),
        "status": 1,
        "logs": [
            _transfer_log(usdc, WALLET, pool, 50 * USDC, 0),
            _transfer_log(a_usdc, zero, WALLET, 50 * USDC - 1, 1),
            _transfer_log(a_usdc, zero, other, 3, 2),
        ],
    }

    assert decode_received_amount(receipt_session, [TX_HASH]) == 50 * USDC - 1


def test_decode_received_amount_without_receipts_is_none(receipt_session):
    assert decode_received_amount(receipt_session, []) is None
    assert decode_received_amount(receipt_session, [TX_HASH]) is None


def test_decode_received_amount_with_no_matching_logs_is_zero(receipt_session):
    receipt_session.w3.eth.tx_receipts[TX_HASH] = {"status": 1, "logs": []}
    assert decode_received_amount(receipt_session, [TX_HASH]) == 0
