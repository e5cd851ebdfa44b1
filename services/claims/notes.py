"""Append-only note ledger for claim status changes."""

from dataclasses import dataclass
from typing import List, Optional
from sqlalchemy.orm import Session
from common.enums import ClaimKind
from services.claims.models import Note
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimRef:
    """Reference to exactly one member claim or provider claim."""

    member_claim_id: Optional[int] = None
    provider_claim_id: Optional[int] = None

    def __post_init__(self):
        if (self.member_claim_id is None) == (self.provider_claim_id is None):
            raise ValueError("A note must reference exactly one claim")

    @classmethod
    def member(cls, claim_id: int) -> "ClaimRef":
        return cls(member_claim_id=claim_id)

    @classmethod
    def provider(cls, provider_claim_id: int) -> "ClaimRef":
        return cls(provider_claim_id=provider_claim_id)

    @property
    def kind(self) -> ClaimKind:
        return ClaimKind.MEMBER if self.member_claim_id is not None else ClaimKind.PROVIDER


class NoteLedger:
    """Insert-only store of claim notes.

    ``append`` only flushes: the note becomes durable when the caller commits
    the transaction that also carries the status change it documents.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, author_id: int, body: str, claim_ref: ClaimRef) -> Note:
        """Create a note authored by ``author_id`` against one claim."""
        note = Note(
            body=body,
            author_id=author_id,
            claim_id=claim_ref.member_claim_id,
            provider_claim_id=claim_ref.provider_claim_id,
        )
        self.db.add(note)
        self.db.flush()  # Get ID without committing
        logger.debug(f"Note {note.id} appended to {claim_ref.kind.value} claim by user {author_id}")
        return note

    def list_for(self, claim_ref: ClaimRef) -> List[Note]:
        """Notes of a claim, oldest first."""
        query = self.db.query(Note)
        if claim_ref.member_claim_id is not None:
            query = query.filter(Note.claim_id == claim_ref.member_claim_id)
        else:
            query = query.filter(Note.provider_claim_id == claim_ref.provider_claim_id)
        return query.order_by(Note.id).all()
