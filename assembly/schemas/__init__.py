"""Pydantic schemas package."""

from .attendance import AttendanceRead, CheckInRequest, QuorumRead
from .proxy import (
    CodeIssued,
    CodeRequest,
    CodeVerified,
    CodeVerifyRequest,
    ExternalRepresentative,
    InternalRepresentative,
    ProxyRead,
    ProxyRegisterRequest,
    ProxyRejectRequest,
    ProxyReviewRequest,
)
from .report import (
    AbsenceReportRead,
    AbsenceRowRead,
    AttendanceReportRead,
    AttendanceRowRead,
    ProxyRowRead,
)
from .vote import BallotCreate, BallotRead, OptionResult, VoteCreate, VoteOptionRead, VoteRead, VoteResults

__all__ = [
    "AbsenceReportRead",
    "AbsenceRowRead",
    "AttendanceRead",
    "AttendanceReportRead",
    "AttendanceRowRead",
    "BallotCreate",
    "BallotRead",
    "CheckInRequest",
    "CodeIssued",
    "CodeRequest",
    "CodeVerified",
    "CodeVerifyRequest",
    "ExternalRepresentative",
    "InternalRepresentative",
    "OptionResult",
    "ProxyRead",
    "ProxyRegisterRequest",
    "ProxyRejectRequest",
    "ProxyReviewRequest",
    "ProxyRowRead",
    "QuorumRead",
    "VoteCreate",
    "VoteOptionRead",
    "VoteRead",
    "VoteResults",
]
