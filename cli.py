#!/usr/bin/env python3
"""Command-line entry point for portfolio liquidation"""

import argparse
import asyncio
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from liquidator.config import settings
from liquidator.core.liquidation import (
    AssetHolding,
    IntentError,
    LiquidationIntent,
    LiquidationReport,
    ProgressEvent,
    SwapAttemptResult,
    TokenRef,
    eligible_items,
    plan_for_intent,
    validate_intent,
)
from liquidator.core.liquidation.builder import TransactionBuilder
from liquidator.core.liquidation.errors import LiquidationError
from liquidator.core.liquidation.orchestrator import LiquidationOrchestrator
from liquidator.core.liquidation.signers import SoftwareSigner
from liquidator.logging_config import setup_logging
from liquidator.providers.helius import HeliusHoldingsProvider
from liquidator.providers.jupiter import JupiterSwapProvider
from liquidator.providers.solana_rpc import SolanaRpcClient, SolanaRpcConfig


def load_holdings_file(path: str) -> List[AssetHolding]:
    """Read holdings from a JSON list (or an object with a "tokens" list)."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict):
        data = data.get("tokens") or data.get("holdings") or []
    return [AssetHolding.from_dict(entry) for entry in data]


async def resolve_holdings(args: argparse.Namespace, wallet: Optional[str]) -> List[AssetHolding]:
    if args.holdings:
        return load_holdings_file(args.holdings)
    if not wallet:
        raise ValueError("Provide --holdings FILE or --wallet ADDRESS")
    provider = HeliusHoldingsProvider()
    if not await provider.ready():
        raise ValueError("SOLANA_HELIUS_API_KEY is required to fetch wallet holdings")
    print(f"🔍 Fetching holdings for {wallet}...")
    return await provider.get_holdings(wallet)


def build_intent(args: argparse.Namespace, holdings: List[AssetHolding]) -> LiquidationIntent:
    output = TokenRef.from_symbol(args.output)
    selected = holdings
    if args.only:
        wanted = {s.upper() for s in args.only}
        selected = [h for h in holdings if h.symbol.upper() in wanted]
    slippage_pct = args.slippage if args.slippage is not None else Decimal(settings.default_slippage_bps) / 100
    return LiquidationIntent.from_percent_slippage(
        output=output,
        percentage=args.percentage,
        slippage_pct=slippage_pct,
        holdings=selected,
    )


def print_plan(intent: LiquidationIntent) -> None:
    """Pretty print the pro-rata breakdown"""
    items = plan_for_intent(intent)
    eligible = {item.mint for item in eligible_items(items, settings.dust_min_quantity, settings.dust_min_value_usd)}

    print(f"\n📊 Liquidate {intent.percentage}% into {intent.output.symbol} (slippage {intent.slippage_bps} bps)")
    print("=" * 64)
    print(f"Selection value: ${intent.total_candidate_value:,.2f}")
    print("-" * 64)
    for i, item in enumerate(items, 1):
        marker = "" if item.mint in eligible else "  (skipped: dust)"
        print(
            f"{i:2d}. {item.symbol:<8} {item.swap_quantity:>18.6f} of {item.original_quantity:<18.6f}"
            f" {item.weight_pct:6.2f}%  ${item.liquidation_value_usd:,.2f}{marker}"
        )
    print("-" * 64)
    print(f"Eligible swaps: {len(eligible)}/{len(items)}")


def print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.index + 1}/{event.total}] {event.message}")


def print_result(result: SwapAttemptResult) -> None:
    if result.succeeded:
        print(f"  ✅ {result.symbol}: ${result.value_usd:,.2f} -> {result.explorer_url}")
    else:
        retries = f" after {result.retry_count} retries" if result.retry_count else ""
        print(f"  ❌ {result.symbol}: {result.error}{retries}")


def print_report(report: LiquidationReport) -> None:
    print("\n" + "=" * 64)
    print(report.banner())


async def cli_plan(args: argparse.Namespace) -> int:
    holdings = await resolve_holdings(args, args.wallet)
    intent = build_intent(args, holdings)
    validate_intent(intent)
    print_plan(intent)
    return 0


async def cli_liquidate(args: argparse.Namespace) -> int:
    signer = SoftwareSigner.from_secret(Path(args.keypair).read_text())
    wallet = args.wallet or signer.public_key
    holdings = await resolve_holdings(args, wallet)
    intent = build_intent(args, holdings)

    jupiter = JupiterSwapProvider()
    rpc = SolanaRpcClient(SolanaRpcConfig.from_settings())
    orchestrator = LiquidationOrchestrator(
        quotes=jupiter,
        builder=TransactionBuilder(jupiter),
        signer=signer,
        network=rpc,
        config=settings.orchestrator_config(),
        on_progress=print_progress,
        on_result=print_result,
    )

    print(f"💱 Liquidating from {wallet}")
    try:
        report = await orchestrator.run(intent)
    finally:
        await jupiter.close()
        await rpc.close()

    print_report(report)
    if args.record:
        Path(args.record).write_text(json.dumps(report.to_batch_record(wallet), indent=2))
        print(f"📝 Batch record written to {args.record}")
    return 0 if not report.failed else 1


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solana portfolio liquidation CLI")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["auto", "json", "console"], help="Override LOG_FORMAT")
    subparsers = parser.add_subparsers(dest="command")

    def add_intent_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--holdings", help="JSON file of holdings (mint, symbol, decimals, uiAmount, price, value)")
        sub.add_argument("--wallet", help="Wallet address to fetch holdings for via Helius")
        sub.add_argument("--output", default="USDC", help="Output token: SOL, USDC or USDT (default: USDC)")
        sub.add_argument("--percentage", type=_decimal, required=True, help="Percent of the selection to liquidate")
        sub.add_argument("--slippage", type=_decimal, help="Slippage tolerance in percent (default from settings)")
        sub.add_argument("--only", nargs="+", metavar="SYMBOL", help="Restrict the selection to these symbols")

    plan_parser = subparsers.add_parser("plan", help="Show the pro-rata swap plan without executing")
    add_intent_args(plan_parser)

    liquidate_parser = subparsers.add_parser("liquidate", help="Execute the swap plan")
    add_intent_args(liquidate_parser)
    liquidate_parser.add_argument("--keypair", required=True, help="Keypair file (solana-keygen JSON or base58)")
    liquidate_parser.add_argument("--record", help="Write the batch record JSON to this path")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "plan":
            return await cli_plan(args)
        if args.command == "liquidate":
            return await cli_liquidate(args)
    except (IntentError, ValueError) as e:
        print(f"❌ {e}")
        return 2
    except LiquidationError as e:
        print(f"❌ Error: {e}")
        return 1

    print(f"❌ Unknown command: {args.command}")
    parser.print_help()
    return 2


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
