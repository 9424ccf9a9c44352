"""Sweep of dangling proxies, as a one-shot command or a periodic worker.

Exit status of a one-shot run: 0 when every dangling proxy was repaired (or
none was found), 1 when at least one unit could not be restored, 2 when the
database could not be reached.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable, Sequence
from typing import TextIO

from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import StoreUnavailable
from assembly.services.reconciliation import ProxyReconciler, ReconciliationReport
from assembly.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_STORE_UNAVAILABLE = 2


def run_once(session: Session, *, settings: Settings | None = None) -> ReconciliationReport:
    """Execute a single sweep."""

    with worker_span("reconciliation.sweep"):
        report = ProxyReconciler(session, settings=settings).sweep()
        LOGGER.info(
            "reconciliation sweep complete",
            extra={
                "proxies_found": report.proxies_found,
                "proxies_deleted": len(report.proxies_deleted),
                "units_repaired": len(report.repaired),
                "units_failed": len(report.failures),
            },
        )
    return report


def print_report(report: ReconciliationReport, out: TextIO) -> None:
    for repair in report.repairs:
        if repair.ok:
            out.write(f"repaired unit {repair.unit_number} -> {repair.principal_id} (proxy {repair.proxy_id})\n")
        else:
            out.write(f"FAILED unit {repair.unit_number} (proxy {repair.proxy_id}): {repair.error}\n")


async def run(session_factory: Callable[[], Session], settings: Settings) -> None:
    """Continuously sweep at the configured cadence."""

    interval = max(10, settings.reconciliation_interval_seconds)
    LOGGER.info("starting reconciliation worker", extra={"interval_seconds": interval})
    while True:
        try:
            with session_factory() as session:
                await asyncio.to_thread(run_once, session, settings=settings)
        except StoreUnavailable:
            LOGGER.exception("reconciliation sweep skipped, store unavailable")
        await asyncio.sleep(interval)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assembly-reconcile",
        description="Return units held through dangling proxies to their principals.",
    )
    parser.add_argument("--loop", action="store_true", help="keep running, sweeping periodically")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=None,
        help="only repair proxies older than this (default from settings)",
    )
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    out: TextIO | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.grace_seconds is not None:
        settings = settings.model_copy(update={"reconciliation_grace_seconds": args.grace_seconds})
    configure_worker("reconciliation-worker")

    if session_factory is None:
        from assembly.db.session import SessionLocal

        session_factory = SessionLocal

    if args.loop:
        try:
            asyncio.run(run(session_factory, settings))
        except KeyboardInterrupt:  # pragma: no cover - manual shutdown
            LOGGER.info("reconciliation worker stopped")
        return EXIT_CLEAN

    try:
        with session_factory() as session:
            report = run_once(session, settings=settings)
    except StoreUnavailable:
        LOGGER.exception("reconciliation sweep failed, store unavailable")
        return EXIT_STORE_UNAVAILABLE

    print_report(report, out or sys.stdout)
    return EXIT_CLEAN if report.clean else EXIT_PARTIAL_FAILURE


if __name__ == "__main__":
    sys.exit(main())
