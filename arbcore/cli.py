"""arbcore CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from arbcore.config.loader import ConfigError

if TYPE_CHECKING:
    from arbcore.chain.signer import LocalAccountSigner
    from arbcore.config.settings import CoreConfig


def _confirm_live_trading(env: str | None) -> bool:
    """Require explicit confirmation for live trading. SECURITY: mandatory."""
    print("=" * 60)
    print("  WARNING: You are about to trade LIVE.")
    print("  Real funds will be at risk.")
    print("=" * 60)
    print(f"  Environment: {env or 'production'}")
    print("=" * 60)
    response = input('Type "yes" to confirm live trading: ')
    return response.strip().lower() == "yes"


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        msg = f"not a decimal: {value!r}"
        raise argparse.ArgumentTypeError(msg) from None


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="arbcore",
        description="arbcore: trade-execution control plane for cross-venue arbitrage",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--simulation", action="store_true", help="Force simulation mode")
    mode.add_argument("--live", action="store_true", help="Force live mode")

    parser.add_argument(
        "--config-dir",
        type=str,
        default="config",
        help="Config directory path (default: config)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Environment name (default: from ARBCORE_ENV)",
    )
    parser.add_argument(
        "--auto-confirm",
        action="store_true",
        default=False,
        help="Skip interactive live confirmation (requires ARBCORE_LIVE_AUTO_CONFIRM=true).",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    quote = commands.add_parser("quote", help="Fetch a price quote")
    quote.add_argument("pair", help="Pair as IN/OUT, e.g. USDC/USDT")

    trade = commands.add_parser("trade", help="Execute a single swap")
    trade.add_argument("token_in")
    trade.add_argument("token_out")
    trade.add_argument("amount", type=_decimal)
    trade.add_argument("--min-out", type=_decimal, default=Decimal("0"))
    trade.add_argument("--slippage", type=_decimal, default=Decimal("0.5"), help="Percent")
    trade.add_argument("--ttl", type=int, default=300, help="Seconds until the order expires")

    commands.add_parser("reserve", help="Run one proof-of-reserve check")
    commands.add_parser("run", help="Run the service until interrupted")

    return parser


async def _quote(args: argparse.Namespace, mode: str | None) -> int:
    from arbcore.engine.trading_engine import TradingEngine
    from arbcore.service import load_config

    config = load_config(args.config_dir, args.env, mode)
    engine = TradingEngine.create(config, _signer_for(config))
    quote = await engine.get_quote(args.pair)
    print(f"{quote.pair} {quote.price} ({quote.source})")
    return 0


async def _trade(args: argparse.Namespace, mode: str | None) -> int:
    from arbcore.engine.trading_engine import TradingEngine
    from arbcore.models.order import TradeOrder
    from arbcore.service import load_config

    config = load_config(args.config_dir, args.env, mode)
    engine = TradingEngine.create(config, _signer_for(config))
    order = TradeOrder(
        token_in=args.token_in,
        token_out=args.token_out,
        amount_in=args.amount,
        min_amount_out=args.min_out,
        slippage=args.slippage,
        deadline=int(time.time()) + args.ttl,
    )
    result = await engine.execute(order)
    await engine.events.drain()
    if result.success:
        print(f"FILLED {order.id}: {result.amount} {order.token_out} @ {result.price} tx={result.tx_hash}")
        return 0
    print(f"FAILED {order.id}: {result.error} {result.message or ''}".rstrip())
    return 1


async def _reserve(args: argparse.Namespace, mode: str | None) -> int:
    from arbcore.service import ArbService, load_config

    config = load_config(args.config_dir, args.env, mode)
    service = ArbService(config, signer=_signer_for(config))
    try:
        status = await service.reserve.check()
    finally:
        await service.stop()
    label = "HEALTHY" if status.is_healthy else "BREACH"
    print(f"{label} locked={status.locked} claims={status.claims} ratio={status.ratio}")
    return 0 if status.is_healthy else 2


def _signer_for(config: CoreConfig) -> LocalAccountSigner | None:
    from arbcore.chain.signer import load_signer
    from arbcore.config.settings import TradingMode

    if config.mode is TradingMode.LIVE:
        return load_signer()
    return None


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    mode: str | None = None
    if args.live:
        mode = "live"
        if args.env is None:
            args.env = "production"
    elif args.simulation:
        mode = "simulation"

    if args.live and args.command in ("trade", "run"):
        auto_confirmed = (
            args.auto_confirm
            and os.environ.get("ARBCORE_LIVE_AUTO_CONFIRM", "").lower() == "true"
        )
        if not auto_confirmed and not _confirm_live_trading(args.env):
            print("Live trading cancelled.")
            return 1

    try:
        if args.command == "quote":
            return asyncio.run(_quote(args, mode))
        if args.command == "trade":
            return asyncio.run(_trade(args, mode))
        if args.command == "reserve":
            return asyncio.run(_reserve(args, mode))
        if args.command == "run":
            from arbcore.service import run_service

            print(f"Starting arbcore service (mode: {mode or 'from config'}, env: {args.env})")
            return run_service(mode=mode, config_dir=args.config_dir, env=args.env)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
