"""Payroll reconciliation command line interface.

Provides operational tools for:
- Schema bootstrap
- Scheduled period reconciliation
- Clock event sync over a time range
- Finalization readiness and finalization

Usage:
    payroll-recon init-db
    payroll-recon reconcile --period 2026-01-15
    payroll-recon sync-job --job 6f1c2d3e-0000-4000-8000-000000000001
    payroll-recon sync-clock --start 2026-01-01T00:00:00Z --end 2026-01-16T00:00:00Z
    payroll-recon missing-rates --period 2026-01-15
    payroll-recon finalize --period 2026-01-15 --actor ops@example.com
    payroll-recon serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

import uvicorn

from payroll_recon.config import configure_logging, get_settings
from payroll_recon.database import create_all, dispose_db, get_session, init_db
from payroll_recon.exceptions import PayrollError
from payroll_recon.services.authorization import Actor, Role
from payroll_recon.services.finalize_service import Finalizer
from payroll_recon.services.reconciliation import reconcile_period
from payroll_recon.services.sync_service import EntrySynchronizer


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _json_default(value: Any) -> str:
    return str(value)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=_json_default))


class PayrollCli:
    """Payroll reconciliation command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="payroll-recon",
            description="Payroll reconciliation operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            help="Log level (default: LOG_LEVEL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        subparsers.add_parser("init-db", help="Create all tables")

        # reconcile command
        reconcile = subparsers.add_parser(
            "reconcile",
            help="Sync jobs, clock events and deductions for a period",
        )
        reconcile.add_argument(
            "--period",
            type=str,
            required=True,
            help="Period id (pay date, YYYY-MM-DD)",
        )

        # sync-job command
        sync_job = subparsers.add_parser(
            "sync-job",
            help="Sync one completed job into the period of its service date",
        )
        sync_job.add_argument(
            "--job",
            type=UUID,
            required=True,
            help="Job id",
        )

        # sync-clock command
        sync_clock = subparsers.add_parser(
            "sync-clock",
            help="Sync closed clock events with clock-in in [start, end)",
        )
        sync_clock.add_argument(
            "--start",
            type=parse_datetime,
            required=True,
            help="Range start (ISO format)",
        )
        sync_clock.add_argument(
            "--end",
            type=parse_datetime,
            required=True,
            help="Range end, exclusive (ISO format)",
        )

        # missing-rates command
        missing = subparsers.add_parser(
            "missing-rates",
            help="List employees with work but no pay rate",
        )
        missing.add_argument(
            "--period",
            type=str,
            required=True,
            help="Period id (pay date, YYYY-MM-DD)",
        )

        # finalize command
        finalize = subparsers.add_parser(
            "finalize",
            help="Lock an approved period and write its expense record",
        )
        finalize.add_argument(
            "--period",
            type=str,
            required=True,
            help="Period id (pay date, YYYY-MM-DD)",
        )
        finalize.add_argument(
            "--actor",
            type=str,
            required=True,
            help="Identity recorded as finalized_by",
        )
        finalize.add_argument(
            "--role",
            type=str,
            choices=[Role.OWNER.value, Role.ADMIN.value],
            default=Role.ADMIN.value,
            help="Role of the actor (default: admin)",
        )

        # serve command
        serve = subparsers.add_parser("serve", help="Run the HTTP API")
        serve.add_argument("--host", type=str, help="Bind address")
        serve.add_argument("--port", type=int, help="Bind port")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        if parsed.command == "serve":
            return self._cmd_serve(parsed)

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "reconcile": self._cmd_reconcile,
            "sync-job": self._cmd_sync_job,
            "sync-clock": self._cmd_sync_clock,
            "missing-rates": self._cmd_missing_rates,
            "finalize": self._cmd_finalize,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        return asyncio.run(self._run_async(handler, parsed))

    async def _run_async(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        init_db(args.database_url)
        try:
            return await handler(args)
        except PayrollError as e:
            _print_json(e.to_dict())
            return 2
        finally:
            await dispose_db()

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""
        engine, _ = init_db(args.database_url)
        await create_all(engine)
        print("Database schema created.")
        return 0

    async def _cmd_reconcile(self, args: argparse.Namespace) -> int:
        """Reconcile one period."""
        async with get_session() as session:
            result = await reconcile_period(session, args.period)

        _print_json(
            {
                "period_id": result.period_id,
                "jobs": asdict(result.jobs),
                "clock": asdict(result.clock),
                "deductions": asdict(result.deductions),
                "missing_rate_employee_ids": result.missing_rate_employee_ids,
            }
        )
        return 1 if result.missing_rate_employee_ids else 0

    async def _cmd_sync_job(self, args: argparse.Namespace) -> int:
        """Sync one completed job."""
        async with get_session() as session:
            result = await EntrySynchronizer(session).sync_job(args.job)

        _print_json(asdict(result))
        return 1 if result.missing_rate_employee_ids else 0

    async def _cmd_sync_clock(self, args: argparse.Namespace) -> int:
        """Sync clock events over a range."""
        if args.end <= args.start:
            print("--end must be after --start", file=sys.stderr)
            return 1

        async with get_session() as session:
            result = await EntrySynchronizer(session).sync_clock_events(args.start, args.end)

        _print_json(asdict(result))
        return 0

    async def _cmd_missing_rates(self, args: argparse.Namespace) -> int:
        """Print employees blocking finalization."""
        async with get_session() as session:
            employee_ids = await EntrySynchronizer(session).find_missing_rate_employee_ids(
                args.period
            )

        _print_json({"period_id": args.period, "employee_ids": employee_ids})
        return 1 if employee_ids else 0

    async def _cmd_finalize(self, args: argparse.Namespace) -> int:
        """Finalize one period."""
        actor = Actor(actor_id=args.actor, role=Role(args.role))
        async with get_session() as session:
            result = await Finalizer(session).finalize(args.period, actor)

        _print_json(asdict(result))
        return 0

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the HTTP API with uvicorn."""
        settings = get_settings()
        uvicorn.run(
            "payroll_recon.api.app:app",
            host=args.host or settings.HOST,
            port=args.port or settings.PORT,
            reload=settings.DEBUG,
            log_level=settings.log_level.lower(),
        )
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
