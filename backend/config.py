import os
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from errors import ConfigurationError
from retry import RetryPolicy

load_dotenv()

# Anvil fork
DEFAULT_ANVIL_PORT = 8545
DEFAULT_CHAIN_ID = 1

# Mainnet contract addresses
USDC_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
AAVE_POOL_ADDRESS = "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2"
AUSDC_ADDRESS = "0x98C23E9d8f34FEFb1B7BD6a91B7FF122F4e16F5c"
USDC_DECIMALS = 6

# Demo amounts (raw USDC units)
DEFAULT_TARGET_AMOUNT = 100 * 10**USDC_DECIMALS
MIN_SUPPLY_BALANCE = 20 * 10**USDC_DECIMALS
WHALE_GAS_BALANCE_ETH = 10

# Timing
TRANSFER_RECEIPT_TIMEOUT = 180  # seconds
RECEIPT_POLL_INTERVAL = 1  # seconds
RECEIPT_TIMEOUT = 300  # seconds

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^[a-fA-F0-9]{64}$")


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return bool(parsed.scheme and parsed.netloc)


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address or ""))


def is_valid_private_key(private_key: str) -> bool:
    key = private_key or ""
    if key.startswith("0x"):
        key = key[2:]
    return bool(_PRIVATE_KEY_RE.match(key))


def normalize_log_level(value: Optional[str]) -> Optional[str]:
    """Map ``warn``/``info``/... onto a ``logging`` level name, or None if unknown."""
    if not value:
        return "INFO"
    level = value.strip().upper()
    if level == "WARN":
        level = "WARNING"
    return level if level in LOG_LEVELS else None


@dataclass(frozen=True)
class ContractAddresses:
    usdc: str
    aave_pool: str
    a_usdc: str


@dataclass(frozen=True)
class Settings:
    relay_url: str
    rpc_url: str
    fork_url: str
    chain_id: int
    private_key: str
    contracts: ContractAddresses
    log_level: str = "INFO"
    block_time: Optional[int] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _positive_int(env: Mapping[str, str], name: str, errors: List[str]) -> Optional[int]:
    raw = env.get(name)
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        errors.append(f"{name} must be a positive number")
        return None
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build validated settings from environment variables.

    Every missing or malformed value is collected before failing, so a single
    ConfigurationError names all of them.

    Args:
        env (Mapping): Variables to read; defaults to ``os.environ``

    Returns:
        Settings: Immutable settings object

    Raises:
        ConfigurationError: If any required value is missing or invalid
    """
    if env is None:
        env = os.environ

    errors: List[str] = []

    relay_url = env.get("MEE_NODE_URL", "")
    if not relay_url:
        errors.append("MEE_NODE_URL is required")
    elif not is_valid_url(relay_url):
        errors.append("MEE_NODE_URL must be a valid URL")

    fork_url = env.get("ETH_MAINNET_RPC_URL", "")
    if not fork_url:
        errors.append("ETH_MAINNET_RPC_URL is required")
    elif not is_valid_url(fork_url):
        errors.append("ETH_MAINNET_RPC_URL must be a valid URL")

    private_key = env.get("TEST_PRIVATE_KEY", "")
    if not private_key:
        errors.append("TEST_PRIVATE_KEY is required")
    elif not is_valid_private_key(private_key):
        errors.append("TEST_PRIVATE_KEY must be a valid private key")

    port = _positive_int(env, "ANVIL_PORT", errors) or DEFAULT_ANVIL_PORT
    chain_id = _positive_int(env, "ANVIL_CHAIN_ID", errors) or DEFAULT_CHAIN_ID
    block_time = _positive_int(env, "ANVIL_BLOCK_TIME", errors)

    rpc_url = env.get("ANVIL_RPC_URL") or f"http://localhost:{port}"
    if not is_valid_url(rpc_url):
        errors.append("ANVIL_RPC_URL must be a valid URL")

    log_level = normalize_log_level(env.get("LOG_LEVEL"))
    if log_level is None:
        errors.append(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    contracts = ContractAddresses(
        usdc=env.get("USDC_ADDRESS") or USDC_ADDRESS,
        aave_pool=env.get("AAVE_POOL_ADDRESS") or AAVE_POOL_ADDRESS,
        a_usdc=env.get("AUSDC_ADDRESS") or AUSDC_ADDRESS,
    )
    for name, address in (
        ("USDC_ADDRESS", contracts.usdc),
        ("AAVE_POOL_ADDRESS", contracts.aave_pool),
        ("AUSDC_ADDRESS", contracts.a_usdc),
    ):
        if not is_valid_address(address):
            errors.append(f"{name} must be a valid contract address")

    try:
        retry = RetryPolicy.from_env(env)
    except ConfigurationError as e:
        errors.extend(e.errors)
        retry = RetryPolicy()

    if errors:
        raise ConfigurationError.from_errors("Environment validation failed", errors)

    return Settings(
        relay_url=relay_url.rstrip("/"),
        rpc_url=rpc_url,
        fork_url=fork_url,
        chain_id=chain_id,
        private_key=private_key,
        contracts=contracts,
        log_level=log_level,
        block_time=block_time,
        retry=retry,
    )
