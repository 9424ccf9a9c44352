from __future__ import annotations

from assembly.obs import QUORUM_FRACTION
from assembly.services.quorum import check_in
from workers.quorum_monitor.main import QuorumMonitor

from conftest import TestingSessionLocal


def _gauge(assembly_id: str) -> float:
    family = next(iter(QUORUM_FRACTION.collect()))
    return next(sample.value for sample in family.samples if sample.labels["assembly_id"] == assembly_id)


class _IdleConsumer:
    def poll_once(self) -> int:
        return 0


def test_recompute_publishes_quorum_gauge(db_session, assembly_data, settings, publisher) -> None:
    check_in(db_session, unit_id=assembly_data.unit_102, publisher=publisher)
    monitor = QuorumMonitor(TestingSessionLocal, settings=settings, consumer=_IdleConsumer())

    monitor.recompute("asm-1")

    assert _gauge("asm-1") == 0.45


def test_recompute_ignores_unknown_assembly(db_session, settings) -> None:
    monitor = QuorumMonitor(TestingSessionLocal, settings=settings, consumer=_IdleConsumer())

    monitor.recompute("does-not-exist")

    family = next(iter(QUORUM_FRACTION.collect()))
    assert all(sample.labels["assembly_id"] != "does-not-exist" for sample in family.samples)
