"""Schemas for proxy registration, review and verification endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from assembly.models import ExternalHolder, InternalHolder, Proxy, ProxyStatus, ProxyType, RightsHolder


class InternalRepresentative(BaseModel):
    kind: Literal["INTERNAL"] = "INTERNAL"
    member_id: str = Field(..., max_length=36)

    def to_holder(self) -> RightsHolder:
        return InternalHolder(member_id=self.member_id)


class ExternalRepresentative(BaseModel):
    kind: Literal["EXTERNAL"] = "EXTERNAL"
    name: str = Field(..., min_length=1, max_length=255)
    document_number: str = Field(..., min_length=1, max_length=64)

    def to_holder(self) -> RightsHolder:
        return ExternalHolder(name=self.name, document_number=self.document_number)


Representative = Annotated[
    Union[InternalRepresentative, ExternalRepresentative], Field(discriminator="kind")
]


def representative_of(holder: RightsHolder) -> InternalRepresentative | ExternalRepresentative:
    if isinstance(holder, InternalHolder):
        return InternalRepresentative(member_id=holder.member_id)
    return ExternalRepresentative(name=holder.name, document_number=holder.document_number)


class ProxyRegisterRequest(BaseModel):
    """Registration of an immediately approved proxy."""

    principal_id: str = Field(..., max_length=36)
    representative: Representative
    type: ProxyType
    challenge_id: str | None = Field(default=None, description="Verified challenge for digital proxies")
    document_ref: str | None = Field(
        default=None, max_length=512, description="Locator of the signed or uploaded document"
    )


class ProxyReviewRequest(BaseModel):
    principal_id: str = Field(..., max_length=36)
    representative: Representative
    type: ProxyType
    document_ref: str = Field(..., max_length=512)


class ProxyRejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1024)


class ProxyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assembly_id: str
    principal_id: str
    representative: Representative
    type: ProxyType
    status: ProxyStatus
    evidence_ref: str | None
    rejection_reason: str | None = None
    created_at: datetime
    revoked_at: datetime | None = None

    @classmethod
    def from_proxy(cls, proxy: Proxy) -> "ProxyRead":
        return cls(
            id=proxy.id,
            assembly_id=proxy.assembly_id,
            principal_id=proxy.principal_id,
            representative=representative_of(proxy.representative),
            type=proxy.type,
            status=proxy.status,
            evidence_ref=proxy.evidence_ref,
            rejection_reason=proxy.rejection_reason,
            created_at=proxy.created_at,
            revoked_at=proxy.revoked_at,
        )


class CodeRequest(BaseModel):
    principal_id: str = Field(..., max_length=36)


class CodeIssued(BaseModel):
    challenge_id: str
    expires_at: datetime
    resend_available_at: datetime


class CodeVerifyRequest(BaseModel):
    challenge_id: str = Field(..., max_length=36)
    code: str = Field(..., min_length=4, max_length=10, pattern=r"^\d+$")


class CodeVerified(BaseModel):
    challenge_id: str
    verified_at: datetime


__all__ = [
    "CodeIssued",
    "CodeRequest",
    "CodeVerified",
    "CodeVerifyRequest",
    "ExternalRepresentative",
    "InternalRepresentative",
    "ProxyRead",
    "ProxyRegisterRequest",
    "ProxyRejectRequest",
    "ProxyReviewRequest",
    "Representative",
    "representative_of",
]
