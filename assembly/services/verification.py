"""One-time verification codes for digitally signed proxies."""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import bcrypt
import httpx
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from assembly.core.config import Settings, get_settings
from assembly.core.errors import AssemblyError, NotFoundError, StoreUnavailable, ValidationError
from assembly.db.store import serializable_transaction
from assembly.models import Member, VerificationChallenge, as_utc, utcnow

logger = logging.getLogger(__name__)


class CodeDeliveryError(StoreUnavailable):
    """Raised when the out-of-band delivery gateway rejects or drops a code."""


class CodeDelivery(Protocol):
    def deliver(self, *, member: Member, code: str, challenge_id: str) -> None:
        """Send ``code`` to the member through an out-of-band channel."""


class HTTPCodeDelivery:
    """Posts codes to an SMS gateway."""

    def __init__(self, *, endpoint: str, timeout_seconds: float, client: httpx.Client | None = None) -> None:
        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._client = client or httpx.Client()

    def deliver(self, *, member: Member, code: str, challenge_id: str) -> None:
        if not member.phone_number:
            raise ValidationError("Member has no phone number for code delivery")
        payload = {"to": member.phone_number, "message": f"Your proxy code is {code}", "reference": challenge_id}
        try:
            response = self._client.post(self._endpoint, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CodeDeliveryError("Failed to deliver verification code") from exc


@dataclass(slots=True, frozen=True)
class IssuedChallenge:
    challenge_id: str
    expires_at: datetime
    resend_available_at: datetime


class VerificationService:
    """Issues, checks and consumes single-use codes keyed by principal and attempt."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        delivery: CodeDelivery | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._delivery = delivery or HTTPCodeDelivery(
            endpoint=self._settings.otp_delivery_url,
            timeout_seconds=self._settings.otp_delivery_timeout_seconds,
        )

    def request_code(self, principal_id: str, *, now: datetime | None = None) -> IssuedChallenge:
        """Issue a fresh code, honouring the resend cooldown."""

        current = now or utcnow()
        cooldown = timedelta(seconds=self._settings.otp_resend_cooldown_seconds)

        with serializable_transaction(self._session):
            member = self._session.get(Member, principal_id)
            if member is None:
                raise NotFoundError(f"Member '{principal_id}' was not found")

            latest = self._session.scalars(
                select(VerificationChallenge)
                .where(VerificationChallenge.principal_id == principal_id)
                .order_by(VerificationChallenge.issued_at.desc())
                .limit(1)
            ).first()
            if latest is not None:
                available_at = as_utc(latest.issued_at) + cooldown
                if current < available_at:
                    remaining = int((available_at - current).total_seconds()) + 1
                    raise ValidationError(f"A new code can be requested in {remaining} seconds")

            self._session.execute(
                update(VerificationChallenge)
                .where(
                    VerificationChallenge.principal_id == principal_id,
                    VerificationChallenge.verified_at.is_(None),
                    VerificationChallenge.invalidated_at.is_(None),
                )
                .values(invalidated_at=current)
                .execution_options(synchronize_session=False)
            )

            code = "".join(secrets.choice("0123456789") for _ in range(self._settings.otp_length))
            challenge = VerificationChallenge(
                principal_id=principal_id,
                code_hash=bcrypt.hashpw(code.encode("utf-8"), bcrypt.gensalt()).decode("utf-8"),
                issued_at=current,
                expires_at=current + timedelta(seconds=self._settings.otp_ttl_seconds),
            )
            self._session.add(challenge)
            self._session.flush()
            challenge_id = challenge.id
            expires_at = as_utc(challenge.expires_at)

        # The write lock is released before the gateway call.
        try:
            self._delivery.deliver(member=member, code=code, challenge_id=challenge_id)
        except AssemblyError:
            self._withdraw(challenge_id, principal_id=principal_id, superseded_at=current)
            raise

        logger.info("verification code issued", extra={"principal_id": principal_id, "challenge_id": challenge_id})
        return IssuedChallenge(
            challenge_id=challenge_id,
            expires_at=expires_at,
            resend_available_at=current + cooldown,
        )

    def _withdraw(self, challenge_id: str, *, principal_id: str, superseded_at: datetime) -> None:
        """Undo an undelivered challenge so neither the cooldown nor the supersession applies."""

        with serializable_transaction(self._session):
            self._session.execute(delete(VerificationChallenge).where(VerificationChallenge.id == challenge_id))
            self._session.execute(
                update(VerificationChallenge)
                .where(
                    VerificationChallenge.principal_id == principal_id,
                    VerificationChallenge.invalidated_at == superseded_at,
                )
                .values(invalidated_at=None)
                .execution_options(synchronize_session=False)
            )
        logger.warning(
            "verification code delivery failed", extra={"principal_id": principal_id, "challenge_id": challenge_id}
        )

    def verify_code(self, challenge_id: str, code: str, *, now: datetime | None = None) -> VerificationChallenge:
        """Accept exactly one correct code; wrong codes count against the attempt."""

        current = now or utcnow()
        challenge = self._session.get(VerificationChallenge, challenge_id)
        if challenge is None:
            raise NotFoundError(f"Verification challenge '{challenge_id}' was not found")
        if challenge.invalidated_at is not None:
            raise ValidationError("Verification code was superseded by a newer one")
        if challenge.verified_at is not None:
            raise ValidationError("Verification code was already used")
        if current >= as_utc(challenge.expires_at):
            raise ValidationError("Verification code has expired")

        if not bcrypt.checkpw(code.encode("utf-8"), challenge.code_hash.encode("utf-8")):
            challenge.failed_attempts += 1
            self._session.commit()
            logger.info(
                "verification code rejected",
                extra={"challenge_id": challenge_id, "failed_attempts": challenge.failed_attempts},
            )
            raise ValidationError("Incorrect verification code")

        challenge.verified_at = current
        self._session.commit()
        return challenge


def consume_verified_challenge(
    session: Session, *, challenge_id: str, principal_id: str, now: datetime
) -> VerificationChallenge:
    """Mark a verified challenge as used by a registration.

    Must run inside the registration's transaction so that the code is spent
    only if the proxy is created.
    """

    challenge = session.get(VerificationChallenge, challenge_id)
    if challenge is None or challenge.principal_id != principal_id:
        raise ValidationError("Digital proxies require a verification code issued to the principal")
    if challenge.verified_at is None:
        raise ValidationError("Verification code has not been confirmed")
    if challenge.consumed_at is not None or challenge.invalidated_at is not None:
        raise ValidationError("Verification code was already used")
    if now >= as_utc(challenge.expires_at):
        raise ValidationError("Verification code has expired")
    challenge.consumed_at = now
    session.flush()
    return challenge


__all__ = [
    "CodeDelivery",
    "CodeDeliveryError",
    "HTTPCodeDelivery",
    "IssuedChallenge",
    "VerificationService",
    "consume_verified_challenge",
]
