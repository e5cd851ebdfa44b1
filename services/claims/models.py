"""SQLAlchemy models for member claims, provider claims and notes."""

from sqlalchemy import (
    Column,
    String,
    Numeric,
    Date,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    JSON,
    CheckConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from common.db import Base
from common.enums import ClaimStatus, ProviderClaimStatus
from common.errors import LockedError
from services.hmo.models import Hmo, User, Hospital  # noqa: F401  (registers related mappers)

# a member-submitted reimbursement claim
class Claim(Base):
    """Member claim entity."""

    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)

    status = Column(String(20), default=ClaimStatus.PENDING, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    service_date = Column(Date, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Metadata
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    member = relationship("User", back_populates="claims")
    hospital = relationship("Hospital", back_populates="claims")
    notes = relationship("Note", back_populates="claim", order_by="Note.id")


class ProviderClaim(Base):
    """Claim submitted by a hospital directly to an HMO."""

    __tablename__ = "provider_claims"

    id = Column(Integer, primary_key=True, index=True)
    hmo_id = Column(Integer, ForeignKey("hmos.id"), nullable=False, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)

    enrollee_no = Column(String(255), nullable=False)
    claim_reference = Column(String(255), nullable=False, index=True)
    diagnosis = Column(Text, nullable=True)
    service_breakdown = Column(JSON, nullable=True)  # List of {service, quantity, cost}
    documents = Column(JSON, nullable=True)  # List of supporting document descriptors
    test_results = Column(JSON, nullable=True)
    discharge_summary = Column(Text, nullable=True)

    status = Column(String(20), default=ProviderClaimStatus.PENDING, nullable=False, index=True)
    authorization_code = Column(String(100), nullable=True)

    # Links into the payment and pre-authorization subsystems
    payment_id = Column(Integer, nullable=True)
    pre_auth_request_id = Column(Integer, nullable=True)

    # Metadata
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    hmo = relationship("Hmo", back_populates="provider_claims")
    hospital = relationship("Hospital", back_populates="provider_claims")
    notes = relationship("Note", back_populates="provider_claim", order_by="Note.id")


class Note(Base):
    """Immutable annotation written alongside a claim status change."""

    __tablename__ = "notes"
    __table_args__ = (
        CheckConstraint(
            "(claim_id IS NULL) <> (provider_claim_id IS NULL)",
            name="ck_notes_single_claim_ref",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    body = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=True, index=True)
    provider_claim_id = Column(Integer, ForeignKey("provider_claims.id"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    # Relationships
    author = relationship("User", back_populates="notes")
    claim = relationship("Claim", back_populates="notes")
    provider_claim = relationship("ProviderClaim", back_populates="notes")


@event.listens_for(Note, "before_update")
def _refuse_note_update(mapper, connection, target):
    raise ValueError(f"Note {target.id} is immutable")


@event.listens_for(Note, "before_delete")
def _refuse_note_delete(mapper, connection, target):
    raise ValueError(f"Note {target.id} cannot be deleted")


def _committed_status(target):
    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    return target.status


def _has_column_changes(mapper, target):
    # notes appended through the relationship mark the parent dirty too
    state = inspect(target)
    return any(state.attrs[attr.key].history.has_changes() for attr in mapper.column_attrs)


@event.listens_for(Claim, "before_update")
def _refuse_paid_claim_update(mapper, connection, target):
    if _has_column_changes(mapper, target) and _committed_status(target) == ClaimStatus.PAID.value:
        raise LockedError(f"Claim {target.id} is paid and can no longer change")


@event.listens_for(ProviderClaim, "before_update")
def _refuse_approved_provider_claim_update(mapper, connection, target):
    if _has_column_changes(mapper, target) and _committed_status(target) == ProviderClaimStatus.APPROVED.value:
        raise LockedError(f"Provider claim {target.id} is approved and can no longer change")
