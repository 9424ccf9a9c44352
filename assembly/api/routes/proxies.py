"""Proxy registration, review, revocation and verification endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from assembly.api.deps import get_code_delivery, get_db_session, get_publisher
from assembly.api.errors import service_errors
from assembly.schemas import (
    CodeIssued,
    CodeRequest,
    CodeVerified,
    CodeVerifyRequest,
    ProxyRead,
    ProxyRegisterRequest,
    ProxyRejectRequest,
    ProxyReviewRequest,
)
from assembly.services.change_events import ChangeEventPublisher
from assembly.services.lifecycle import ProxyEvidence, ProxyLifecycleService
from assembly.services.verification import CodeDelivery, VerificationService

router = APIRouter()


def _lifecycle(
    session: Session = Depends(get_db_session),
    publisher: ChangeEventPublisher = Depends(get_publisher),
) -> ProxyLifecycleService:
    return ProxyLifecycleService(session, publisher=publisher)


def _verification(
    session: Session = Depends(get_db_session),
    delivery: CodeDelivery = Depends(get_code_delivery),
) -> VerificationService:
    return VerificationService(session, delivery=delivery)


@router.post("/proxies", response_model=ProxyRead, status_code=status.HTTP_201_CREATED)
def register_proxy(
    payload: ProxyRegisterRequest,
    service: ProxyLifecycleService = Depends(_lifecycle),
) -> ProxyRead:
    """Register an approved proxy and transfer the principal's units."""

    with service_errors():
        proxy = service.register(
            principal_id=payload.principal_id,
            representative=payload.representative.to_holder(),
            proxy_type=payload.type,
            evidence=ProxyEvidence(challenge_id=payload.challenge_id, document_ref=payload.document_ref),
        )
    return ProxyRead.from_proxy(proxy)


@router.post("/proxies/review", response_model=ProxyRead, status_code=status.HTTP_201_CREATED)
def submit_proxy_for_review(
    payload: ProxyReviewRequest,
    service: ProxyLifecycleService = Depends(_lifecycle),
) -> ProxyRead:
    with service_errors():
        proxy = service.submit_for_review(
            principal_id=payload.principal_id,
            representative=payload.representative.to_holder(),
            proxy_type=payload.type,
            document_ref=payload.document_ref,
        )
    return ProxyRead.from_proxy(proxy)


@router.post("/proxies/{proxy_id}/approve", response_model=ProxyRead)
def approve_proxy(proxy_id: str, service: ProxyLifecycleService = Depends(_lifecycle)) -> ProxyRead:
    with service_errors():
        proxy = service.approve(proxy_id)
    return ProxyRead.from_proxy(proxy)


@router.post("/proxies/{proxy_id}/reject", response_model=ProxyRead)
def reject_proxy(
    proxy_id: str,
    payload: ProxyRejectRequest,
    service: ProxyLifecycleService = Depends(_lifecycle),
) -> ProxyRead:
    with service_errors():
        proxy = service.reject(proxy_id, reason=payload.reason)
    return ProxyRead.from_proxy(proxy)


@router.post("/proxies/{proxy_id}/revoke", response_model=ProxyRead)
def revoke_proxy(proxy_id: str, service: ProxyLifecycleService = Depends(_lifecycle)) -> ProxyRead:
    """Revoke an approved proxy and hand the units back to the principal."""

    with service_errors():
        proxy = service.revoke(proxy_id)
    return ProxyRead.from_proxy(proxy)


@router.get("/members/{member_id}/proxies/given", response_model=ProxyRead | None)
def given_proxy(member_id: str, service: ProxyLifecycleService = Depends(_lifecycle)) -> ProxyRead | None:
    proxy = service.given_proxy(member_id)
    return ProxyRead.from_proxy(proxy) if proxy is not None else None


@router.get("/members/{member_id}/proxies/received", response_model=list[ProxyRead])
def received_proxies(
    member_id: str, service: ProxyLifecycleService = Depends(_lifecycle)
) -> list[ProxyRead]:
    return [ProxyRead.from_proxy(proxy) for proxy in service.received_proxies(member_id)]


@router.post("/proxies/codes", response_model=CodeIssued, status_code=status.HTTP_201_CREATED)
def request_code(
    payload: CodeRequest,
    service: VerificationService = Depends(_verification),
) -> CodeIssued:
    with service_errors():
        issued = service.request_code(payload.principal_id)
    return CodeIssued(
        challenge_id=issued.challenge_id,
        expires_at=issued.expires_at,
        resend_available_at=issued.resend_available_at,
    )


@router.post("/proxies/codes/verify", response_model=CodeVerified)
def verify_code(
    payload: CodeVerifyRequest,
    service: VerificationService = Depends(_verification),
) -> CodeVerified:
    with service_errors():
        challenge = service.verify_code(payload.challenge_id, payload.code)
    return CodeVerified(challenge_id=challenge.id, verified_at=challenge.verified_at)


__all__ = [
    "approve_proxy",
    "given_proxy",
    "received_proxies",
    "register_proxy",
    "reject_proxy",
    "request_code",
    "revoke_proxy",
    "router",
    "submit_proxy_for_review",
    "verify_code",
]
