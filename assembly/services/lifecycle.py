"""Proxy rights lifecycle: register, review, revoke.

A principal's units move to the representative in the same transaction that
approves the proxy, and move back in the same transaction that revokes it.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import DuplicateActiveProxyError, NotFoundError, ValidationError
from assembly.db.store import EntityStore, serializable_transaction
from assembly.models import (
    ExternalHolder,
    InternalHolder,
    Member,
    Proxy,
    ProxyStatus,
    ProxyType,
    RightsHolder,
    Unit,
    VerificationMethod,
    utcnow,
)
from assembly.obs import PROXY_TRANSITIONS
from assembly.services.change_events import ChangeEventPublisher, ChangeTopic
from assembly.services.verification import consume_verified_challenge

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProxyEvidence:
    """Evidence attached to a registration.

    Digital proxies carry a verified challenge id; document proxies carry a
    locator for the signed or uploaded document.
    """

    challenge_id: str | None = None
    document_ref: str | None = None


def _check_evidence(proxy_type: ProxyType, evidence: ProxyEvidence) -> None:
    if proxy_type.requires_document:
        if not (evidence.document_ref or "").strip():
            raise ValidationError(f"{proxy_type.value} proxies require an attached document")
    elif not evidence.challenge_id:
        raise ValidationError("Digital proxies require a verified code")


def _check_representative(principal_id: str, representative: RightsHolder) -> None:
    if isinstance(representative, InternalHolder):
        if representative.member_id == principal_id:
            raise ValidationError("A principal cannot delegate to themselves")
    elif not representative.name.strip() or not representative.document_number.strip():
        raise ValidationError("External representatives need a name and a document number")


class ProxyLifecycleService:
    """Owns the delegation state machine and the rights transfer on units."""

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

    def register(
        self,
        *,
        principal_id: str,
        representative: RightsHolder,
        proxy_type: ProxyType,
        evidence: ProxyEvidence,
        now: datetime | None = None,
    ) -> Proxy:
        """Create an approved proxy and hand the principal's units to the representative."""

        _check_representative(principal_id, representative)
        _check_evidence(proxy_type, evidence)
        current = now or utcnow()

        with serializable_transaction(self._session):
            principal = self._require_member(principal_id)
            representative = self._resolve_representative(principal, representative)
            self._ensure_no_active_proxy(principal_id)

            if proxy_type is ProxyType.DIGITAL:
                challenge = consume_verified_challenge(
                    self._session,
                    challenge_id=evidence.challenge_id or "",
                    principal_id=principal_id,
                    now=current,
                )
                evidence_ref = f"verification:{challenge.id}"
                method = VerificationMethod.OTP
            else:
                evidence_ref = evidence.document_ref
                method = VerificationMethod.DOCUMENT

            proxy = self._store.create_proxy(
                assembly_id=principal.assembly_id,
                principal_id=principal_id,
                type=proxy_type,
                status=ProxyStatus.APPROVED,
                verification_method=method,
                evidence_ref=evidence_ref,
                created_at=current,
                representative=representative,
            )
            units = self._transfer_units(proxy, principal)

        self._after_transition(proxy, "registered", units=len(units))
        return proxy

    def submit_for_review(
        self,
        *,
        principal_id: str,
        representative: RightsHolder,
        proxy_type: ProxyType,
        document_ref: str,
    ) -> Proxy:
        """Record a physically presented proxy awaiting operator validation."""

        if not proxy_type.requires_document:
            raise ValidationError("Only document proxies can be submitted for review")
        _check_representative(principal_id, representative)
        _check_evidence(proxy_type, ProxyEvidence(document_ref=document_ref))

        with serializable_transaction(self._session):
            principal = self._require_member(principal_id)
            representative = self._resolve_representative(principal, representative)
            self._ensure_no_active_proxy(principal_id)
            proxy = self._store.create_proxy(
                assembly_id=principal.assembly_id,
                principal_id=principal_id,
                type=proxy_type,
                status=ProxyStatus.PENDING,
                evidence_ref=document_ref,
                representative=representative,
            )

        self._after_transition(proxy, "submitted")
        return proxy

    def approve(self, proxy_id: str) -> Proxy:
        """Operator approval of a pending proxy, with the same transfer as ``register``."""

        with serializable_transaction(self._session):
            proxy = self._require_proxy(proxy_id, ProxyStatus.PENDING)
            principal = self._require_member(proxy.principal_id)
            self._ensure_no_active_proxy(proxy.principal_id)
            proxy = self._store.update_proxy_status(
                proxy_id,
                ProxyStatus.APPROVED,
                expected_status=ProxyStatus.PENDING,
                verification_method=VerificationMethod.OPERATOR,
            )
            units = self._transfer_units(proxy, principal)

        self._after_transition(proxy, "approved", units=len(units))
        return proxy

    def reject(self, proxy_id: str, *, reason: str | None = None) -> Proxy:
        with serializable_transaction(self._session):
            self._require_proxy(proxy_id, ProxyStatus.PENDING)
            proxy = self._store.update_proxy_status(
                proxy_id,
                ProxyStatus.REJECTED,
                expected_status=ProxyStatus.PENDING,
                rejection_reason=reason,
            )

        self._after_transition(proxy, "rejected")
        return proxy

    def revoke(self, proxy_id: str, *, now: datetime | None = None) -> Proxy:
        """Revoke an approved proxy and return its units to the principal."""

        current = now or utcnow()
        with serializable_transaction(self._session):
            proxy = self._require_proxy(proxy_id, ProxyStatus.APPROVED)
            representative = proxy.representative
            principal_holder = InternalHolder(member_id=proxy.principal_id)
            proxy = self._store.update_proxy_status(
                proxy_id,
                ProxyStatus.REVOKED,
                expected_status=ProxyStatus.APPROVED,
                revoked_at=current,
            )
            restored = 0
            for unit_id in self._store.linked_unit_ids(proxy_id):
                unit = self._store.get_unit(unit_id)
                if unit is None or unit.rights_holder != representative:
                    logger.warning(
                        "unit no longer held by representative at revoke",
                        extra={"proxy_id": proxy_id, "unit_id": unit_id},
                    )
                    continue
                self._store.update_unit_rights_holder(unit_id, principal_holder, expected=representative)
                restored += 1

        self._after_transition(proxy, "revoked", units=restored)
        return proxy

    def given_proxy(self, member_id: str) -> Proxy | None:
        """The pending or approved proxy a member has granted, if any."""

        statement = (
            select(Proxy)
            .where(
                Proxy.principal_id == member_id,
                or_(Proxy.status == ProxyStatus.APPROVED, Proxy.status == ProxyStatus.PENDING),
            )
            .order_by(Proxy.created_at.desc())
        )
        return self._session.scalars(statement).first()

    def received_proxies(self, member_id: str) -> Sequence[Proxy]:
        statement = (
            select(Proxy)
            .where(
                Proxy.representative_member_id == member_id,
                Proxy.status == ProxyStatus.APPROVED,
            )
            .order_by(Proxy.created_at.desc())
        )
        return self._session.scalars(statement).all()

    def _require_member(self, member_id: str) -> Member:
        member = self._store.get_member(member_id)
        if member is None:
            raise NotFoundError(f"Member '{member_id}' was not found")
        return member

    def _require_proxy(self, proxy_id: str, status: ProxyStatus) -> Proxy:
        proxy = self._store.get_proxy(proxy_id)
        if proxy is None or proxy.status != status:
            raise NotFoundError(f"No {status.value.lower()} proxy '{proxy_id}'")
        return proxy

    def _ensure_no_active_proxy(self, principal_id: str) -> None:
        if self._store.active_proxy_for(principal_id) is not None:
            raise DuplicateActiveProxyError("Principal already has an approved proxy")

    def _resolve_representative(self, principal: Member, representative: RightsHolder) -> RightsHolder:
        """Prefer the registered member when an external document matches one."""

        if isinstance(representative, ExternalHolder):
            member = self._store.find_member_by_document(
                principal.assembly_id, representative.document_number.strip()
            )
            if member is None:
                return ExternalHolder(
                    name=representative.name.strip(),
                    document_number=representative.document_number.strip(),
                )
            representative = InternalHolder(member_id=member.id)

        member = self._store.get_member(representative.member_id)
        if member is None or member.assembly_id != principal.assembly_id:
            raise NotFoundError(f"Representative '{representative.member_id}' was not found")
        if member.id == principal.id:
            raise ValidationError("A principal cannot delegate to themselves")
        return representative

    def _transfer_units(self, proxy: Proxy, principal: Member) -> Sequence[Unit]:
        units = self._store.units_owned_by(principal.assembly_id, principal.id)
        if not units:
            raise ValidationError("Principal owns no units in this assembly")
        principal_holder = InternalHolder(member_id=principal.id)
        representative = proxy.representative
        for unit in units:
            self._store.update_unit_rights_holder(unit.id, representative, expected=principal_holder)
        self._store.link_proxy_units(proxy, units)
        return units

    def _after_transition(self, proxy: Proxy, action: str, **extra: object) -> None:
        PROXY_TRANSITIONS.labels(type=proxy.type.value, status=proxy.status.value).inc()
        logger.info(
            "proxy %s",
            action,
            extra={"proxy_id": proxy.id, "principal_id": proxy.principal_id, **extra},
        )
        self._publisher.publish(assembly_id=proxy.assembly_id, topic=ChangeTopic.PROXY, kind=action)


__all__ = ["ProxyEvidence", "ProxyLifecycleService"]
