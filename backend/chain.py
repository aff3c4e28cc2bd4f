import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract.contract import Contract

from errors import InfrastructureError

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {"constant": True, "inputs": [{"name": "_owner", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "balance", "type": "uint256"}], "type": "function"},
    {"constant": True, "inputs": [{"name": "_owner", "type": "address"}, {"name": "_spender", "type": "address"}], "name": "allowance", "outputs": [{"name": "remaining", "type": "uint256"}], "type": "function"},
    {"constant": False, "inputs": [{"name": "_spender", "type": "address"}, {"name": "_value", "type": "uint256"}], "name": "approve", "outputs": [{"name": "success", "type": "bool"}], "type": "function"},
    {"constant": False, "inputs": [{"name": "_to", "type": "address"}, {"name": "_value", "type": "uint256"}], "name": "transfer", "outputs": [{"name": "success", "type": "bool"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]

AAVE_POOL_ABI = [
    {
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "onBehalfOf", "type": "address"},
            {"name": "referralCode", "type": "uint16"},
        ],
        "name": "supply",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# Head older than this on a fresh fork usually means the fork source is lagging
STALE_BLOCK_SECONDS = 900


def connect_to_chain(rpc_url: str, expected_chain_id: int, log: Optional[logging.Logger] = None) -> Web3:
    """
    Connect to the Anvil fork and verify it reports the configured chain.

    Args:
        rpc_url (str): The fork's RPC endpoint
        expected_chain_id (int): Chain ID the configuration expects
        log (Logger): Logger to report progress on

    Returns:
        Web3: Connected Web3 instance

    Raises:
        ValueError: If the RPC URL is invalid
        InfrastructureError: If the node is unreachable or on the wrong chain
    """
    log = log or logger

    if not rpc_url:
        raise ValueError("RPC URL cannot be empty")

    if not rpc_url.startswith(('http://', 'https://')):
        raise ValueError("Invalid RPC URL format. Must start with http:// or https://")

    log.info(f"Connecting to Anvil fork at: {rpc_url}")

    w3 = Web3(Web3.HTTPProvider(rpc_url))

    try:
        chain_id = w3.eth.chain_id
        latest_block = w3.eth.get_block('latest')
    except Exception as e:
        raise InfrastructureError(f"Cannot connect to Anvil fork at {rpc_url}: {e}", e) from e

    if chain_id != expected_chain_id:
        raise InfrastructureError(f"Chain ID mismatch: expected {expected_chain_id}, got {chain_id}")

    log.info(f"Connected to Anvil fork - Chain ID: {chain_id}, latest block: {latest_block['number']}")

    current_time = int(time.time())
    block_timestamp = latest_block['timestamp']
    if current_time - block_timestamp > STALE_BLOCK_SECONDS:
        log.warning(f"Fork head looks stale. Latest block timestamp: {block_timestamp}, current time: {current_time}")

    return w3


def load_erc20_contract(w3: Web3, token_address: str) -> Contract:
    """
    Load an ERC20 token contract.

    Args:
        w3 (Web3): Connected Web3 instance
        token_address (str): The ERC20 token contract address

    Returns:
        Contract: Web3 contract instance for ERC20 token
    """
    return w3.eth.contract(
        address=Web3.to_checksum_address(token_address),
        abi=ERC20_ABI
    )


def load_pool_contract(w3: Web3, pool_address: str) -> Contract:
    return w3.eth.contract(
        address=Web3.to_checksum_address(pool_address),
        abi=AAVE_POOL_ABI
    )


def load_wallet(private_key: str) -> LocalAccount:
    """
    Load a wallet from private key for signing.

    Args:
        private_key (str): Private key (with or without 0x prefix)

    Returns:
        LocalAccount: eth_account account used as the session signer
    """
    if not private_key.startswith('0x'):
        private_key = '0x' + private_key

    return Account.from_key(private_key)


def get_token_balance(token: Contract, address: str) -> int:
    return token.functions.balanceOf(Web3.to_checksum_address(address)).call()


def _fork_request(w3: Web3, method: str, params: list):
    try:
        response = w3.provider.make_request(method, params)
    except Exception as e:
        raise InfrastructureError(f"RPC request '{method}' failed: {e}", e) from e

    if response.get('error'):
        error = response['error']
        message = error.get('message') if isinstance(error, dict) else error
        raise InfrastructureError(
            f"RPC request '{method}' rejected: {message}. "
            "Ensure Anvil is running with a mainnet fork: ./scripts/start-anvil.sh"
        )
    return response.get('result')


def impersonate_account(w3: Web3, address: str) -> None:
    _fork_request(w3, 'anvil_impersonateAccount', [Web3.to_checksum_address(address)])


def stop_impersonating_account(w3: Web3, address: str) -> None:
    _fork_request(w3, 'anvil_stopImpersonatingAccount', [Web3.to_checksum_address(address)])


def set_native_balance(w3: Web3, address: str, wei_amount: int) -> None:
    _fork_request(w3, 'anvil_setBalance', [Web3.to_checksum_address(address), hex(wei_amount)])


@contextmanager
def impersonated(w3: Web3, address: str, log: Optional[logging.Logger] = None) -> Iterator[str]:
    """
    Let the fork sign for ``address`` for the duration of the block.

    Impersonation is always stopped on exit. If stopping fails while another
    error is already propagating, the cleanup failure is only logged.
    """
    log = log or logger
    impersonate_account(w3, address)
    log.info(f"Impersonating {address}")
    try:
        yield address
    except BaseException:
        try:
            stop_impersonating_account(w3, address)
        except InfrastructureError as cleanup_error:
            log.warning(f"Failed to stop impersonating {address}: {cleanup_error}")
        raise
    stop_impersonating_account(w3, address)
    log.info(f"Stopped impersonating {address}")
