from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TokenBalance:
    address: str
    symbol: str
    decimals: int
    balance: int
    formatted: str


@dataclass(frozen=True)
class BalanceSnapshot:
    timestamp: float
    block_number: int
    tokens: Tuple[TokenBalance, ...]

    def token(self, symbol: str) -> Optional[TokenBalance]:
        for token in self.tokens:
            if token.symbol == symbol:
                return token
        return None


@dataclass(frozen=True)
class Instruction:
    """One contract call inside a fused transaction."""

    to: str
    function_name: str
    args: Tuple[Any, ...]
    data: str
    chain_id: int
    value: int = 0

    def to_dict(self) -> dict:
        return {
            "to": self.to,
            "functionName": self.function_name,
            "calldata": self.data,
            "chainId": self.chain_id,
            "value": str(self.value),
        }


@dataclass(frozen=True)
class FusionQuote:
    hash: str
    payload: Dict[str, Any]
    fee_amount: Optional[int] = None


class SupertransactionStatus(str, Enum):
    PENDING = "PENDING"
    MINING = "MINING"
    SUCCESS = "SUCCESS"
    MINED_SUCCESS = "MINED_SUCCESS"
    FAILED = "FAILED"
    MINED_FAIL = "MINED_FAIL"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SupertransactionStatus":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_success(self) -> bool:
        return self in (SupertransactionStatus.SUCCESS, SupertransactionStatus.MINED_SUCCESS)

    @property
    def is_failure(self) -> bool:
        return self in (SupertransactionStatus.FAILED, SupertransactionStatus.MINED_FAIL)

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.is_failure


@dataclass(frozen=True)
class SupertransactionReceipt:
    hash: str
    status: SupertransactionStatus
    transaction_hashes: Tuple[str, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FusionExecution:
    hash: str
    success: bool
    supply_amount: int
    transaction_hashes: Tuple[str, ...] = ()
    elapsed: float = 0.0


@dataclass(frozen=True)
class SupplyResult:
    hash: str
    success: bool
    supply_amount: int
    a_tokens_received: int
    before: BalanceSnapshot
    after: BalanceSnapshot
    received_from_logs: bool = True


class ServiceStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


@dataclass(frozen=True)
class HealthCheck:
    anvil: ServiceStatus
    relay: ServiceStatus
    last_checked: float
    details: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.anvil is ServiceStatus.HEALTHY and self.relay is ServiceStatus.HEALTHY
