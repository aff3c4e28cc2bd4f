#!/usr/bin/env python3
"""
Fund Wallet Script
Tops up the configured test wallet with USDC on the Anvil fork, without
running the Fusion supply flow.
"""

import argparse
import sys
from typing import Optional, Sequence

from chain import connect_to_chain, get_token_balance, load_erc20_contract, load_wallet
from config import DEFAULT_TARGET_AMOUNT, USDC_DECIMALS, load_settings
from funding import ensure_sufficient_balance
from logging_setup import setup_logging
from session import SessionContext
from smart_account import SmartAccount


def _usdc_amount(value: str) -> int:
    try:
        amount = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid USDC amount: {value!r}") from None
    if amount <= 0:
        raise argparse.ArgumentTypeError(f"USDC amount must be positive: {value!r}")
    return int(round(amount * 10**USDC_DECIMALS))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fund the test wallet with USDC on the Anvil fork")
    parser.add_argument(
        "amount",
        nargs="?",
        type=_usdc_amount,
        help=f"USDC balance to ensure (default: {DEFAULT_TARGET_AMOUNT / 10**USDC_DECIMALS:g})",
    )
    parser.add_argument("--target", type=_usdc_amount, help="Same as the positional amount")
    args = parser.parse_args(argv)
    args.target = args.target or args.amount or DEFAULT_TARGET_AMOUNT
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    target_amount = parse_args(argv).target

    print("=" * 60)
    print("Funding Test Wallet with USDC")
    print("=" * 60)
    print()

    try:
        settings = load_settings()
        logger = setup_logging(settings.log_level)

        w3 = connect_to_chain(settings.rpc_url, settings.chain_id, logger)
        signer = load_wallet(settings.private_key)
        session = SessionContext(
            settings=settings,
            w3=w3,
            signer=signer,
            smart_account=SmartAccount(signer, settings.chain_id),
            relay=None,
            logger=logger,
        )

        print(f"Wallet: {signer.address}")
        print(f"Target: {target_amount / 10**USDC_DECIMALS:,.2f} USDC")
        print()

        ensure_sufficient_balance(session, target_amount)

        usdc = load_erc20_contract(w3, settings.contracts.usdc)
        balance = get_token_balance(usdc, signer.address)
    except Exception as e:
        print()
        print("=" * 60)
        print("❌ ERROR OCCURRED")
        print("=" * 60)
        print(f"Error: {e}", file=sys.stderr)
        print()
        print("Troubleshooting:")
        print("  1. Make sure Anvil is running: ./scripts/start-anvil.sh")
        print("  2. Check TEST_PRIVATE_KEY and ETH_MAINNET_RPC_URL in .env")
        print()
        return 1

    print()
    print("=" * 60)
    print("✅ Wallet Funded Successfully!")
    print("=" * 60)
    print(f"  • USDC: {balance / 10**USDC_DECIMALS:,.2f}")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
