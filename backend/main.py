import argparse
import logging
import sys
from typing import Optional, Sequence

from config import DEFAULT_TARGET_AMOUNT, LOG_LEVELS, USDC_DECIMALS, Settings, load_settings
from errors import TransactionError
from funding import ensure_sufficient_balance
from fusion_demo import compute_supply_amount, decode_received_amount, execute_fusion_transaction
from health import check_health
from logging_setup import setup_logging
from models import SupplyResult
from reporting import (
    balance_changes,
    capture_balance_snapshot,
    display_balance_changes,
    display_balance_snapshot,
    display_transaction_summary,
    format_token_amount,
)
from retry import with_error_handling
from session import initialize_session


class FusionAaveDemo:
    """Fund the wallet, then supply half its USDC to AAVE in one Fusion supertransaction."""

    def __init__(self, settings: Settings, logger: logging.Logger, target_amount: int = DEFAULT_TARGET_AMOUNT):
        self.settings = settings
        self.logger = logger
        self.target_amount = target_amount

    @with_error_handling("AAVE Fusion Demo")
    def run(self) -> SupplyResult:
        log = self.logger
        print("=" * 60)
        print("AAVE Fusion Supertransaction Demo")
        print("=" * 60)

        log.info("Step 1: Initializing session")
        session = initialize_session(self.settings, log)

        log.info("Step 2: Checking initial token balances")
        display_balance_snapshot("Initial Balances", capture_balance_snapshot(session))

        log.info("Step 3: Ensuring sufficient USDC balance")
        ensure_sufficient_balance(session, self.target_amount)
        before = capture_balance_snapshot(session)
        display_balance_snapshot("Balances Before Supply", before)

        usdc = before.token("USDC")
        if usdc is None:
            raise TransactionError("USDC token not found in balance snapshot. Unable to proceed with demo.")
        supply_amount = compute_supply_amount(usdc.balance)
        log.info(f"Supplying {format_token_amount(supply_amount, USDC_DECIMALS, 'USDC')} (50% of balance)")

        log.info("Step 4: Executing Fusion supertransaction")
        execution = execute_fusion_transaction(session, supply_amount)

        log.info("Step 5: Capturing final balances")
        after = capture_balance_snapshot(session)
        display_balance_snapshot("Final Balances", after)
        display_balance_changes(before, after)

        received = decode_received_amount(session, execution.transaction_hashes)
        from_logs = received is not None
        if received is None:
            log.warning("Relay exposed no on-chain receipts; using the measured aUSDC balance change")
            changes = {t.symbol: change for t, change in balance_changes(before, after)}
            received = changes.get("aUSDC", 0)

        result = SupplyResult(
            hash=execution.hash,
            success=execution.success,
            supply_amount=supply_amount,
            a_tokens_received=received,
            before=before,
            after=after,
            received_from_logs=from_logs,
        )
        display_transaction_summary(result)
        return result


def print_health(settings: Settings) -> int:
    health = check_health(settings)
    print(f"Anvil:    {health.anvil.value}")
    print(f"MEE node: {health.relay.value}")
    for line in health.details:
        print(f"  • {line}")
    return 0 if health.ok else 1


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Supply USDC to AAVE through an MEE Fusion supertransaction on an Anvil fork")
    parser.add_argument(
        "--target",
        type=float,
        default=DEFAULT_TARGET_AMOUNT / 10**USDC_DECIMALS,
        help="USDC balance to ensure before supplying (default: %(default)s)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Overrides LOG_LEVEL")
    parser.add_argument("--check", action="store_true", help="Only check that Anvil and the MEE node are up")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
        logger = setup_logging(args.log_level or settings.log_level)
        logger.debug(
            f"Anvil RPC: {settings.rpc_url}, block time: {settings.block_time or 'auto-mine'}, "
            f"retry: {settings.retry.mode} x{settings.retry.max_attempts}"
        )

        if args.check:
            return print_health(settings)

        target = int(round(args.target * 10**USDC_DECIMALS))
        result = FusionAaveDemo(settings, logger, target_amount=target).run()
        logger.info(f"Demo execution completed - success: {result.success}, hash: {result.hash}")
        return 0
    except Exception as e:
        print(f"Application failed: {str(e) or e.__class__.__name__}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
