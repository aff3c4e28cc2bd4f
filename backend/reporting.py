import time
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple

from chain import get_token_balance, load_erc20_contract
from config import USDC_DECIMALS
from models import BalanceSnapshot, SupplyResult, TokenBalance


def format_units(amount: int, decimals: int) -> str:
    """Exact decimal string for a raw token amount, e.g. ``1500000, 6 -> '1.5'``."""
    value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_token_amount(amount: int, decimals: int, symbol: str) -> str:
    number = float(Decimal(amount).scaleb(-decimals))
    if abs(number) >= 1000:
        precision = 2
    elif abs(number) >= 1:
        precision = 4
    else:
        precision = 6
    return f"{number:,.{precision}f} {symbol}"


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    minutes, hours = seconds // 60, seconds // 3600
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def capture_balance_snapshot(session) -> BalanceSnapshot:
    """Read USDC and aUSDC balances of the session wallet at the current block."""
    contracts = session.settings.contracts
    tracked = (
        (contracts.usdc, "USDC", USDC_DECIMALS),
        (contracts.a_usdc, "aUSDC", USDC_DECIMALS),
    )

    block_number = session.w3.eth.block_number
    tokens = []
    for address, symbol, decimals in tracked:
        balance = get_token_balance(load_erc20_contract(session.w3, address), session.address)
        tokens.append(TokenBalance(
            address=address,
            symbol=symbol,
            decimals=decimals,
            balance=balance,
            formatted=format_units(balance, decimals),
        ))

    return BalanceSnapshot(timestamp=time.time(), block_number=block_number, tokens=tuple(tokens))


def balance_changes(before: BalanceSnapshot, after: BalanceSnapshot) -> List[Tuple[TokenBalance, int]]:
    changes = []
    for token in before.tokens:
        later = after.token(token.symbol)
        if later is not None:
            changes.append((token, later.balance - token.balance))
    return changes


def display_balance_snapshot(title: str, snapshot: BalanceSnapshot) -> None:
    print(f"\n{title}:")
    print(f"  Block: {snapshot.block_number}")
    print(f"  Time: {datetime.fromtimestamp(snapshot.timestamp).strftime('%H:%M:%S')}")
    for token in snapshot.tokens:
        print(f"  {token.symbol}: {token.formatted} {token.symbol}")


def display_balance_changes(before: BalanceSnapshot, after: BalanceSnapshot) -> None:
    print("\nBalance Changes:")
    for token, change in balance_changes(before, after):
        prefix = "+" if change >= 0 else ""
        print(f"  {token.symbol}: {prefix}{format_units(change, token.decimals)} {token.symbol}")


def display_transaction_summary(result: SupplyResult) -> None:
    print()
    print("=" * 60)
    if not result.success:
        print("❌ Transaction Failed: the supertransaction was not successful.")
        print("=" * 60)
        return

    print("✅ Transaction Successful!")
    print("=" * 60)
    print(f"  • Supplied: {format_token_amount(result.supply_amount, USDC_DECIMALS, 'USDC')}")
    source = "receipt logs" if result.received_from_logs else "balance change"
    print(f"  • aTokens received: {format_token_amount(result.a_tokens_received, USDC_DECIMALS, 'aUSDC')} (from {source})")
    print(f"  • Supertransaction: {result.hash}")
    print()
    print("Key Features Demonstrated:")
    print("  • External wallet with smart account features")
    print("  • Automatic USDC funding when balance is insufficient")
    print("  • Atomic approve + supply in one transaction")
    print("  • Gas fees paid in USDC (not ETH)")
    print()
