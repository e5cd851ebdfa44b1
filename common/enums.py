"""Enumerations for claim lifecycle states and principals."""

from enum import Enum

# member claim statuses
class ClaimStatus(str, Enum):
    """Member claim lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"  # Set by payment settlement, terminal


class ProviderClaimStatus(str, Enum):
    """Provider claim lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"  # Terminal, record is locked
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"  # Still undecided, past its review window


class ClaimAction(str, Enum):
    """Review actions on the treatment claims workflow."""

    APPROVE = "approve"
    DECLINE = "decline"


class ClaimKind(str, Enum):
    """Which claim table a note or notification refers to."""

    MEMBER = "MEMBER"
    PROVIDER = "PROVIDER"


class UserRole(str, Enum):
    """Roles a principal can act under."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    PROVIDER = "PROVIDER"
