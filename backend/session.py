import logging
from dataclasses import dataclass
from typing import Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from chain import connect_to_chain, get_token_balance, load_erc20_contract, load_wallet
from config import USDC_DECIMALS, Settings
from relay import RelayClient
from retry import with_error_handling
from smart_account import SmartAccount


@dataclass(frozen=True)
class SessionContext:
    settings: Settings
    w3: Web3
    signer: LocalAccount
    smart_account: SmartAccount
    relay: Optional[RelayClient]
    logger: logging.Logger

    @property
    def address(self) -> str:
        return self.signer.address


@with_error_handling("Session Initialization")
def initialize_session(settings: Settings, logger: logging.Logger) -> SessionContext:
    """
    Connect to the fork, set up the signer and smart account, and check the relay.

    Args:
        settings (Settings): Validated settings
        logger (Logger): Application logger, stored on the returned session

    Returns:
        SessionContext: Read-only context shared by the rest of the run
    """
    logger.info("[1/5] Connecting to Anvil fork")
    w3 = connect_to_chain(settings.rpc_url, settings.chain_id, logger)

    logger.info("[2/5] Setting up wallet signer")
    signer = load_wallet(settings.private_key)
    eth_balance = w3.eth.get_balance(signer.address)
    if eth_balance == 0:
        logger.warning(f"Signer {signer.address} has zero ETH balance")
    logger.info(f"Wallet signer initialized: {signer.address} ({Web3.from_wei(eth_balance, 'ether')} ETH)")

    logger.info("[3/5] Creating delegated smart account")
    smart_account = SmartAccount(signer, settings.chain_id)
    logger.info(f"Smart account ready at {smart_account.address}")

    logger.info("[4/5] Checking MEE node")
    relay = RelayClient(settings.relay_url, log=logger)
    node_info = relay.info()
    logger.info(f"MEE node is operational - version: {node_info.get('version', 'unknown')}, url: {settings.relay_url}")

    logger.info("[5/5] Checking token balances")
    usdc = load_erc20_contract(w3, settings.contracts.usdc)
    usdc_balance = get_token_balance(usdc, signer.address)
    logger.info(f"USDC balance: {usdc_balance / 10**USDC_DECIMALS:,.2f} USDC ({settings.contracts.usdc})")

    return SessionContext(
        settings=settings,
        w3=w3,
        signer=signer,
        smart_account=smart_account,
        relay=relay,
        logger=logger,
    )
