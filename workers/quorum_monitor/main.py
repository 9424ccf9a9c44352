"""Worker recomputing quorum whenever an assembly's state may have changed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import AssemblyError
from assembly.obs import report_quorum
from assembly.services.change_events import ChangeEventConsumer
from assembly.services.quorum import QuorumCalculator
from assembly.workers.observability import configure_worker, worker_span

logger = logging.getLogger(__name__)


class QuorumMonitor:
    """Recomputes quorum from the store for each assembly named in a change event."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        settings: Settings | None = None,
        consumer: ChangeEventConsumer | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._consumer = consumer or ChangeEventConsumer(on_change=self.recompute, settings=self._settings)

    def recompute(self, assembly_id: str, traceparent: str | None = None) -> None:
        with worker_span("quorum_monitor.recompute", traceparent, assembly_id=assembly_id):
            try:
                with self._session_factory() as session:
                    snapshot = QuorumCalculator(session, settings=self._settings).compute(assembly_id)
            except AssemblyError:
                logger.exception("quorum recomputation failed", extra={"assembly_id": assembly_id})
                return
        report_quorum(assembly_id, snapshot.fraction)
        logger.info(
            "quorum recomputed",
            extra={
                "assembly_id": assembly_id,
                "fraction": str(snapshot.fraction),
                "reached": snapshot.reached,
            },
        )

    async def run_forever(self) -> None:
        logger.info("quorum monitor started")
        while True:
            processed = await asyncio.to_thread(self._consumer.poll_once)
            if not processed:
                await asyncio.sleep(1)


async def run() -> None:
    from assembly.db.session import SessionLocal

    configure_worker("quorum-monitor-worker")
    await QuorumMonitor(SessionLocal).run_forever()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - signal handling for CLI
        logger.info("quorum monitor stopped")


if __name__ == "__main__":
    main()
