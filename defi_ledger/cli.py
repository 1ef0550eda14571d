"""Command-line interface for the lending ledger."""
from __future__ import annotations

import argparse
import sys
import time
from typing import List, Optional

from .accrual import TickResult, health_status
from .config import LOG_LEVELS, AppConfig, load_config
from .logging_setup import configure_logging
from .pricing_source import StaticPricingSource
from .scheduler import AccrualScheduler
from .service import LendingService


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="defi-ledger",
        description="Simulated collateralized lending ledger",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: ./config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=list(LOG_LEVELS),
        help="Logging level (default: from config, else INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show pools, users and open positions")
    sub.add_parser("tick", help="Run one accrual pass and save")

    run_parser = sub.add_parser("run", help="Accrue continuously")
    run_parser.add_argument(
        "seconds",
        nargs="?",
        type=float,
        default=None,
        help="Stop after this many seconds (default: until interrupted)",
    )

    return parser


def open_service(config: AppConfig) -> LendingService:
    return LendingService.open(
        config.snapshot_path,
        prices=StaticPricingSource(config.prices),
        auto_verify=config.rwa.auto_verify,
    )


def print_status(service: LendingService) -> None:
    print("Pools:")
    for pool in service.list_pools():
        print(
            f"  {pool.id:<10} {pool.asset_type.value:<5} "
            f"deposited={pool.total_deposited} borrowed={pool.total_borrowed} "
            f"apy={pool.interest_rate}% utilization={pool.utilization_rate:.2f}%"
        )

    store = service.store
    current = service.get_current_user()
    print(f"Users: {len(store.users)} (signed in: {current.email if current else '-'})")
    for user in store.users.values():
        summary = service.portfolio_summary(user.id)
        print(
            f"  {user.email:<30} net={summary.net_value:.2f} USD "
            f"deposits={len(service.list_deposits(user.id))} "
            f"active loans={summary.active_loans}"
        )
        for loan in service.list_loans(user.id):
            if loan.is_active:
                print(
                    f"    {loan.id} debt={loan.total_debt:.8f} "
                    f"hf={loan.health_factor:.4f} ({health_status(loan.health_factor).value})"
                )


def print_tick(result: TickResult) -> None:
    print(
        f"Tick at {result.timestamp.isoformat()}: "
        f"{result.deposits_updated} deposits, {result.loans_updated} loans updated"
    )
    for loan_id in result.liquidated:
        print(f"  liquidated {loan_id}")


def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    config = load_config(args.config)
    configure_logging(args.log_level or config.logging.level)
    service = open_service(config)

    try:
        if args.command == "status":
            print_status(service)
        elif args.command == "tick":
            print_tick(service.tick())
        elif args.command == "run":
            scheduler = AccrualScheduler(service.tick, config.accrual.tick_interval_seconds)
            with scheduler:
                try:
                    if args.seconds is None:
                        while True:
                            time.sleep(3600)
                    else:
                        time.sleep(args.seconds)
                except KeyboardInterrupt:
                    pass
            print(f"Ran {scheduler.ticks_run} ticks ({scheduler.ticks_failed} failed)")
        else:
            build_parser().print_help()
            return 1
    finally:
        service.close()
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(_run(args))
