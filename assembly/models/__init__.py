"""ORM models package."""
from .assembly import Assembly
from .attendance import AttendanceRecord
from .base import Base, TimestampMixin, as_utc, utcnow
from .holder import ExternalHolder, HolderKind, InternalHolder, RightsHolder
from .member import Member, MemberRole
from .proxy import Proxy, ProxyStatus, ProxyType, ProxyUnit, VerificationMethod
from .unit import Unit
from .verification import VerificationChallenge
from .vote import Ballot, Vote, VoteOption, VoteStatus

__all__ = [
    "Assembly",
    "AttendanceRecord",
    "Ballot",
    "Base",
    "ExternalHolder",
    "HolderKind",
    "InternalHolder",
    "Member",
    "MemberRole",
    "Proxy",
    "ProxyStatus",
    "ProxyType",
    "ProxyUnit",
    "RightsHolder",
    "TimestampMixin",
    "Unit",
    "VerificationChallenge",
    "VerificationMethod",
    "Vote",
    "VoteOption",
    "VoteStatus",
    "as_utc",
    "utcnow",
]
