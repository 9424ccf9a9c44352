"""Repair of proxies approved without their evidence reference.

Such a proxy is the trace of an interrupted registration. The sweep hands the
affected units back to the principal and deletes the proxy once every unit
has been restored. A proxy with a failed unit is kept so the next sweep
retries it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import AssemblyError, ConflictError
from assembly.db.store import EntityStore, is_serialization_failure, serializable_transaction, store_errors
from assembly.models import InternalHolder, Proxy, ProxyStatus, as_utc, utcnow
from assembly.obs import RECONCILIATION_PROXIES_DELETED, RECONCILIATION_UNITS
from assembly.services.change_events import ChangeEventPublisher, ChangeTopic

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class UnitRepair:
    proxy_id: str
    unit_id: str
    unit_number: str
    principal_id: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ReconciliationReport:
    """Outcome of one sweep; ``failures`` is the partial-failure record."""

    proxies_found: int = 0
    proxies_deleted: list[str] = field(default_factory=list)
    proxies_kept: list[str] = field(default_factory=list)
    repairs: list[UnitRepair] = field(default_factory=list)

    @property
    def failures(self) -> list[UnitRepair]:
        return [repair for repair in self.repairs if not repair.ok]

    @property
    def repaired(self) -> list[UnitRepair]:
        return [repair for repair in self.repairs if repair.ok]

    @property
    def clean(self) -> bool:
        return not self.failures


class ProxyReconciler:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        publisher: ChangeEventPublisher | None = None,
    ) -> None:
        self._session = session
        self._store = EntityStore(session)
        self._settings = settings or get_settings()
        self._publisher = publisher or ChangeEventPublisher(settings=self._settings)

    def sweep(self, *, now: datetime | None = None) -> ReconciliationReport:
        """Find dangling proxies older than the grace window and repair them."""

        current = now or utcnow()
        cutoff = current - timedelta(seconds=self._settings.reconciliation_grace_seconds)
        report = ReconciliationReport()

        with store_errors():
            candidates = [proxy.id for proxy in self._store.dangling_proxies(created_before=cutoff)]
        self._session.rollback()
        report.proxies_found = len(candidates)
        if not candidates:
            logger.info("no dangling proxies found")
            return report

        logger.info("repairing dangling proxies", extra={"count": len(candidates)})
        for proxy_id in candidates:
            try:
                self._repair(proxy_id, cutoff, report)
            except ConflictError:
                logger.info("dangling proxy handled by a concurrent sweep", extra={"proxy_id": proxy_id})
        return report

    def _repair(self, proxy_id: str, cutoff: datetime, report: ReconciliationReport) -> None:
        repairs: list[UnitRepair] = []
        with serializable_transaction(self._session):
            proxy = self._store.get_proxy(proxy_id)
            if proxy is None or not _is_dangling(proxy, cutoff):
                # Another sweep got here first, or the registration completed.
                return

            assembly_id = proxy.assembly_id
            principal = InternalHolder(member_id=proxy.principal_id)
            representative = proxy.representative
            linked = set(self._store.linked_unit_ids(proxy_id))
            affected = [
                unit
                for unit in self._store.units_held_by(assembly_id, representative)
                if unit.owner_id == proxy.principal_id or unit.id in linked
            ]

            for unit in affected:
                unit_id, unit_number = unit.id, unit.number
                error = None
                try:
                    with self._session.begin_nested():
                        self._store.update_unit_rights_holder(unit_id, principal, expected=representative)
                except (AssemblyError, SQLAlchemyError) as exc:
                    if is_serialization_failure(exc):
                        raise ConflictError("Concurrent sweep touched the same proxy") from exc
                    error = str(exc)
                    logger.error(
                        "failed to restore unit rights",
                        extra={"proxy_id": proxy_id, "unit_id": unit_id, "error": error},
                    )
                repairs.append(
                    UnitRepair(
                        proxy_id=proxy_id,
                        unit_id=unit_id,
                        unit_number=unit_number,
                        principal_id=principal.member_id,
                        error=error,
                    )
                )

            failed = any(not repair.ok for repair in repairs)
            if not failed:
                self._store.delete_proxy(proxy_id)

        # Outcomes count only once the transaction has committed.
        report.repairs.extend(repairs)
        for repair in repairs:
            RECONCILIATION_UNITS.labels(outcome="repaired" if repair.ok else "failed").inc()
        if failed:
            report.proxies_kept.append(proxy_id)
        else:
            report.proxies_deleted.append(proxy_id)
            RECONCILIATION_PROXIES_DELETED.inc()
            logger.info("deleted dangling proxy", extra={"proxy_id": proxy_id, "units": len(repairs)})
        self._publisher.publish(assembly_id=assembly_id, topic=ChangeTopic.PROXY, kind="reconciled")


def _is_dangling(proxy: Proxy, cutoff: datetime) -> bool:
    return (
        proxy.status == ProxyStatus.APPROVED
        and proxy.evidence_ref is None
        and as_utc(proxy.created_at) < cutoff
    )


__all__ = ["ProxyReconciler", "ReconciliationReport", "UnitRepair"]
