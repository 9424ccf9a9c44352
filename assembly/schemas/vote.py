"""Schemas for vote administration and ballots."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from assembly.models import VoteStatus


class VoteCreate(BaseModel):
    assembly_id: str = Field(..., max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    options: list[str] = Field(..., min_length=2)


class VoteOptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    position: int


class VoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assembly_id: str
    title: str
    status: VoteStatus
    options: list[VoteOptionRead]


class BallotCreate(BaseModel):
    unit_id: str = Field(..., max_length=36)
    option_id: str = Field(..., max_length=36)


class BallotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vote_id: str
    option_id: str
    unit_id: str
    weight: Decimal
    cast_by: str | None
    created_at: datetime


class OptionResult(BaseModel):
    option_id: str
    option: str
    count: int
    weight: Decimal
    percentage: Decimal


class VoteResults(BaseModel):
    vote_id: str
    title: str
    status: VoteStatus
    total_weight: Decimal
    results: list[OptionResult]


__all__ = [
    "BallotCreate",
    "BallotRead",
    "OptionResult",
    "VoteCreate",
    "VoteOptionRead",
    "VoteRead",
    "VoteResults",
]
