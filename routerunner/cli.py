#!/usr/bin/env python3
"""Command line runner for planned routes"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from .config import settings
from .core.route import (
    ChainRegistry,
    ExecutionObserver,
    ExecutionReport,
    Route,
    RouteExecutionError,
    SocketPlanningService,
    StepTransaction,
    WalletOrchestrator,
)
from .logging_config import setup_logging
from .providers.socket import SocketProvider
from .providers.wallet_rpc import JsonRpcWalletProvider


class PrintingObserver(ExecutionObserver):
    """Prints execution progress to stdout."""

    def on_tx(self, step: StepTransaction) -> None:
        print(f"\n▶️  Step {step.user_tx_index + 1}/{step.total_user_tx} on chain {step.chain_id} ({step.user_tx_type.value})")

    def on_chain_switch(self, from_chain_id: int, to_chain_id: int) -> None:
        print(f"   🔀 Switching network {from_chain_id} → {to_chain_id}")

    def on_approve(self, step: StepTransaction) -> None:
        print("   📝 Requesting token approval...")

    def on_approve_submitted(self, step: StepTransaction, tx_hash: str) -> None:
        print(f"   ⏳ Approval submitted: {tx_hash}")

    def on_approve_confirmed(self, step: StepTransaction, tx_hash: str) -> None:
        print("   ✅ Approval confirmed")

    def on_send(self, step: StepTransaction) -> None:
        print("   📤 Sending transaction...")

    def on_send_submitted(self, step: StepTransaction, tx_hash: str) -> None:
        print(f"   ⏳ Transaction submitted: {tx_hash}")

    def on_send_confirmed(self, step: StepTransaction, tx_hash: str) -> None:
        print("   ✅ Transaction confirmed")


def load_route(path: str, start_index: Optional[int] = None) -> Route:
    """Load a route JSON file (the planning service's active route shape)."""
    data = json.loads(Path(path).read_text())
    route = Route.model_validate(data.get("result", data))
    if start_index is not None:
        route = route.resume_from(start_index)
    return route


def print_resume_hint(report: Optional[ExecutionReport]) -> None:
    if report is None or report.failed_step is None:
        return
    if not report.failed_after_confirmation:
        print(f"   Resume with: --start-index {report.resume_from}")
        return

    print(f"   ⚠️  Step {report.failed_step} is already confirmed on-chain ({report.last_hash}); do not re-send it.")
    if report.resume_from is None:
        print("   Every transaction of the route is confirmed; only the planning service update is missing.")
    else:
        print("   Re-fetch the route with that hash from the planning service, then")
        print(f"   resume with: --start-index {report.resume_from}")


async def cli_run(route_file: str, rpc_url: Optional[str], from_address: Optional[str], start_index: Optional[int]) -> int:
    route = load_route(route_file, start_index)
    print(f"🚀 Executing route {route.active_route_id} ({route.total_user_tx} transactions)")

    wallet = JsonRpcWalletProvider(rpc_url, from_address=from_address)
    provider = SocketProvider()
    orchestrator = WalletOrchestrator(
        wallet,
        SocketPlanningService(provider),
        ChainRegistry(provider=provider),
    )

    try:
        report = await orchestrator.execute(route, PrintingObserver())
    except RouteExecutionError as e:
        print(f"\n❌ {type(e).__name__}: {e}")
        print_resume_hint(e.report)
        return 1
    finally:
        await wallet.close()

    print(f"\n🎉 Route {report.route_id} completed in {len(report.steps)} step(s)")
    for result in report.steps:
        approval = f" (approval {result.approval_hash})" if result.approval_hash else ""
        print(f"   {result.user_tx_index}: {result.send_hash}{approval}")
    return 0


async def cli_chains() -> int:
    registry = ChainRegistry()
    await registry.ensure_loaded()
    print(f"🔗 {registry.chain_count} supported chains")
    print("-" * 50)
    for chain in registry.list_chains():
        print(f"{chain.chain_id:>10}  {chain.name:<24} {chain.native_currency.symbol}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", default=None, help=f"Log level (default: {settings.log_level})")
    common.add_argument(
        "--log-format",
        choices=["auto", "json", "console"],
        default=None,
        help=f"Log renderer (default: {settings.log_format})",
    )

    parser = argparse.ArgumentParser(description="Planned route runner")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Execute a route file through a JSON-RPC wallet"
    )
    run_parser.add_argument("route_file", help="Path to the route JSON")
    run_parser.add_argument("--rpc-url", help=f"Wallet JSON-RPC URL (default: {settings.wallet_rpc_url})")
    run_parser.add_argument("--from-address", help="Sender address when the wallet has several accounts")
    run_parser.add_argument("--start-index", type=int, help="Resume from this user transaction index")

    subparsers.add_parser("chains", parents=[common], help="List supported chains")
    return parser


async def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "log_level", None), getattr(args, "log_format", None))

    if args.command == "run":
        return await cli_run(args.route_file, args.rpc_url, args.from_address, args.start_index)
    if args.command == "chains":
        return await cli_chains()

    parser.print_help()
    return 2


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
