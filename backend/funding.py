"""Stablecoin funding for the demo wallet on the Anvil fork.

USDC is borrowed from well-known whale addresses by impersonating them on the
fork. Nothing here touches a real network.
"""

import logging
from typing import Optional, Sequence, Tuple

from web3 import Web3
from web3.contract.contract import Contract

from chain import get_token_balance, impersonated, load_erc20_contract, set_native_balance
from config import DEFAULT_TARGET_AMOUNT, TRANSFER_RECEIPT_TIMEOUT, USDC_DECIMALS, WHALE_GAS_BALANCE_ETH
from errors import DemoError, InfrastructureError
from reporting import format_token_amount
from retry import with_error_handling

logger = logging.getLogger(__name__)

# Scanned in order; the first one holding enough USDC is used
USDC_WHALES = (
    "0x55fe002aeff02f77364de339a1292923a15844b8",  # Circle USDC Treasury
    "0x5414d89a8bf7e99d732bc52f3e6a3ef461c0c078",  # Coinbase hot wallet
    "0xdfd5293d8e347dfe59e90efd55b2956a1343963d",  # Binance hot wallet
    "0x28c6c06298d514db089934071355e5743bf21d60",  # Binance 14
    "0x21a31ee1afc51d94c2efccaa2092ad1028285549",  # Binance 15
)


def _usdc(amount: int) -> str:
    return format_token_amount(amount, USDC_DECIMALS, "USDC")


def find_whale(
    token: Contract,
    amount: int,
    candidates: Sequence[str] = USDC_WHALES,
    log: Optional[logging.Logger] = None,
) -> Tuple[str, int]:
    """
    Pick the first candidate whose balance covers ``amount``.

    Candidates whose balance cannot be read are logged and skipped.

    Returns:
        tuple: (checksummed whale address, its balance)

    Raises:
        InfrastructureError: If no candidate holds enough
    """
    log = log or logger
    for candidate in candidates:
        whale = Web3.to_checksum_address(candidate)
        try:
            balance = get_token_balance(token, whale)
        except Exception as e:
            log.warning(f"Failed to check whale {whale}: {e}")
            continue

        log.info(f"Whale {whale} holds {_usdc(balance)}")
        if balance >= amount:
            log.info(f"Suitable whale found: {whale}")
            return whale, balance

    raise InfrastructureError(f"No suitable donor found for amount {_usdc(amount)}")


@with_error_handling("USDC Account Funding")
def fund_test_account(session, amount: int = DEFAULT_TARGET_AMOUNT) -> None:
    """
    Transfer ``amount`` USDC from an impersonated whale to the session wallet.

    Args:
        session (SessionContext): Active session
        amount (int): Raw USDC amount to transfer

    Raises:
        InfrastructureError: If no whale qualifies or the transfer fails
    """
    log = session.logger
    w3 = session.w3
    log.info(f"Funding {session.address} with {_usdc(amount)} from a whale")

    token = load_erc20_contract(w3, session.settings.contracts.usdc)
    whale, _ = find_whale(token, amount, log=log)

    try:
        with impersonated(w3, whale, log):
            set_native_balance(w3, whale, Web3.to_wei(WHALE_GAS_BALANCE_ETH, 'ether'))

            tx_hash = token.functions.transfer(session.address, amount).transact({'from': whale})
            log.info(f"USDC transfer submitted: {Web3.to_hex(tx_hash)}")

            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=TRANSFER_RECEIPT_TIMEOUT)
            if not receipt or receipt['status'] != 1:
                raise InfrastructureError(f"USDC transfer transaction failed: {Web3.to_hex(tx_hash)}")
    except DemoError:
        raise
    except Exception as e:
        raise InfrastructureError(f"USDC funding failed: {e}", e) from e

    log.info(f"USDC funding completed - gas used: {receipt.get('gasUsed')}")


@with_error_handling("USDC Balance Assurance")
def ensure_sufficient_balance(session, target_amount: int = DEFAULT_TARGET_AMOUNT) -> int:
    """
    Make sure the session wallet holds at least ``target_amount`` USDC.

    Funds the shortfall first; if the wallet is still short afterwards, funds
    the full target once more before giving up.

    Returns:
        int: The wallet's USDC balance afterwards

    Raises:
        InfrastructureError: If the wallet is still short after both attempts
    """
    log = session.logger
    token = load_erc20_contract(session.w3, session.settings.contracts.usdc)

    balance = get_token_balance(token, session.address)
    if balance >= target_amount:
        log.info(f"Sufficient USDC already available: {_usdc(balance)} (target {_usdc(target_amount)})")
        return balance

    shortfall = target_amount - balance
    log.info(f"Funding needed: balance {_usdc(balance)}, target {_usdc(target_amount)}, shortfall {_usdc(shortfall)}")
    fund_test_account(session, shortfall)

    balance = get_token_balance(token, session.address)
    if balance < target_amount:
        log.warning("First funding attempt insufficient, funding the full target...")
        fund_test_account(session, target_amount)

        balance = get_token_balance(token, session.address)
        if balance < target_amount:
            raise InfrastructureError(
                f"Failed to fund account sufficiently. Target: {_usdc(target_amount)}, "
                f"got: {_usdc(balance)}, short by {_usdc(target_amount - balance)}"
            )

    log.info(f"Account funded: {_usdc(balance)}")
    return balance
