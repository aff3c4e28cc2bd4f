import time
from typing import List, Optional, Sequence

from web3 import Web3
from web3.logs import DISCARD

from chain import load_erc20_contract, load_pool_contract
from config import MIN_SUPPLY_BALANCE, RECEIPT_POLL_INTERVAL, RECEIPT_TIMEOUT, USDC_DECIMALS
from errors import DemoError, TransactionError, extract_error_details
from models import FusionExecution, Instruction
from relay import receipt_diagnostics
from reporting import format_duration, format_token_amount

AAVE_REFERRAL_CODE = 0


def compute_supply_amount(balance: int, minimum: int = MIN_SUPPLY_BALANCE) -> int:
    """
    Half of the current USDC balance, rounded down.

    Raises:
        TransactionError: If the balance is below ``minimum``
    """
    if balance < minimum:
        raise TransactionError(
            f"Insufficient USDC balance for demo execution. "
            f"Current balance: {format_token_amount(balance, USDC_DECIMALS, 'USDC')}. "
            f"Minimum required: {format_token_amount(minimum, USDC_DECIMALS, 'USDC')}. Please fund your account."
        )
    return balance // 2


def build_supply_instructions(session, amount: int) -> List[Instruction]:
    """Approve the pool for ``amount`` USDC, then supply it on behalf of the wallet. Order matters."""
    contracts = session.settings.contracts
    usdc = load_erc20_contract(session.w3, contracts.usdc)
    pool = load_pool_contract(session.w3, contracts.aave_pool)
    account = session.smart_account

    approve = account.build_instruction(usdc, "approve", [pool.address, amount])
    supply = account.build_instruction(
        pool,
        "supply",
        [usdc.address, amount, Web3.to_checksum_address(session.address), AAVE_REFERRAL_CODE],
    )
    return [approve, supply]


def execute_fusion_transaction(session, supply_amount: int) -> FusionExecution:
    """
    Quote, sign, execute and track the approve+supply supertransaction.

    USDC is both the trigger asset and the gas fee token.

    Returns:
        FusionExecution: Supertransaction hash and the on-chain transaction hashes

    Raises:
        TransactionError: If the relay reports a terminal failure
    """
    log = session.logger
    settings = session.settings
    started = time.monotonic()

    try:
        log.info("Building Fusion instructions...")
        instructions = build_supply_instructions(session, supply_amount)

        log.info("Getting Fusion quote...")
        quote = session.relay.get_fusion_quote(
            account=session.smart_account.address,
            instructions=instructions,
            trigger={
                "chainId": settings.chain_id,
                "tokenAddress": settings.contracts.usdc,
                "amount": supply_amount,
            },
            fee_token={"address": settings.contracts.usdc, "chainId": settings.chain_id},
        )
        if quote.fee_amount is not None:
            log.info(f"Quoted fee: {format_token_amount(quote.fee_amount, USDC_DECIMALS, 'USDC')}")

        log.info("Executing Fusion quote...")
        supertx_hash = session.relay.execute_fusion_quote(quote, session.smart_account.sign_quote(quote))
        log.info(f"Transaction submitted: {supertx_hash}")

        log.info("Waiting for transaction completion...")
        receipt = session.relay.wait_for_supertransaction_receipt(
            supertx_hash,
            poll_interval=RECEIPT_POLL_INTERVAL,
            timeout=RECEIPT_TIMEOUT,
        )
    except DemoError:
        raise
    except Exception as e:
        raise TransactionError(f"Fusion execution failed: {extract_error_details(e)}", e) from e

    if receipt.status.is_failure:
        raise TransactionError(f"Fusion transaction failed: {receipt_diagnostics(receipt)}")

    elapsed = time.monotonic() - started
    log.info(f"Fusion transaction completed in {format_duration(elapsed)}")

    return FusionExecution(
        hash=supertx_hash,
        success=True,
        supply_amount=supply_amount,
        transaction_hashes=receipt.transaction_hashes,
        elapsed=elapsed,
    )


def decode_received_amount(session, transaction_hashes: Sequence[str]) -> Optional[int]:
    """
    Sum receipt-token (aUSDC) transfers to the wallet found in the given transactions.

    Returns None when none of the transactions could be read, so the caller
    can fall back to a measured balance change.
    """
    if not transaction_hashes:
        return None

    a_usdc = load_erc20_contract(session.w3, session.settings.contracts.a_usdc)
    wallet = Web3.to_checksum_address(session.address)
    received = 0
    found = False
    for tx_hash in transaction_hashes:
        try:
            receipt = session.w3.eth.get_transaction_receipt(tx_hash)
        except Exception as e:
            session.logger.warning(f"Could not load receipt {tx_hash}: {e}")
            continue
        found = True
        for event in a_usdc.events.Transfer().process_receipt(receipt, errors=DISCARD):
            if Web3.to_checksum_address(event['address']) != a_usdc.address:
                continue
            if Web3.to_checksum_address(event['args']['to']) == wallet:
                received += event['args']['value']

    return received if found else None
