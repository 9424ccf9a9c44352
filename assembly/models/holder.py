"""Rights holder descriptors shared by units and proxies.

A unit's rights are always held by exactly one party: a registered member
(the owner or an internal representative) or an external person identified
only by name and document number.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union


class HolderKind(str, enum.Enum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"


@dataclass(frozen=True, slots=True)
class InternalHolder:
    member_id: str

    kind = HolderKind.INTERNAL


@dataclass(frozen=True, slots=True)
class ExternalHolder:
    name: str
    document_number: str

    kind = HolderKind.EXTERNAL


RightsHolder = Union[InternalHolder, ExternalHolder]


def holder_from_columns(
    kind: HolderKind,
    member_id: str | None,
    external_name: str | None,
    external_document: str | None,
) -> RightsHolder:
    if kind is HolderKind.INTERNAL:
        if member_id is None:
            raise ValueError("internal holder requires a member id")
        return InternalHolder(member_id=member_id)
    if external_name is None or external_document is None:
        raise ValueError("external holder requires a name and document number")
    return ExternalHolder(name=external_name, document_number=external_document)


def holder_to_columns(holder: RightsHolder) -> tuple[HolderKind, str | None, str | None, str | None]:
    if isinstance(holder, InternalHolder):
        return HolderKind.INTERNAL, holder.member_id, None, None
    return HolderKind.EXTERNAL, None, holder.name, holder.document_number


__all__ = [
    "ExternalHolder",
    "HolderKind",
    "InternalHolder",
    "RightsHolder",
    "holder_from_columns",
    "holder_to_columns",
]
