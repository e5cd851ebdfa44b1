"""Claim mutation service - the single write path for claim lifecycle changes.

Every mutation follows the same sequence:
- Load the claim (scoped to the principal's HMO for member claims)
- Authorize the principal against the owning HMO (provider claims)
- Validate the requested status with the claim kind's state machine
- Append the note and compare-and-set the claim row in one transaction
- Dispatch the notification after commit
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Type, Union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from common.auth import Principal
from common.enums import ClaimAction, ClaimKind, ClaimStatus, ProviderClaimStatus, UserRole
from common.errors import (
    ClaimEngineError,
    ForbiddenError,
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    PersistenceError,
)
from services.claims.models import Claim, ProviderClaim
from services.claims.notes import ClaimRef, NoteLedger
from services.claims.state_machine import (
    MEMBER_CLAIM_MACHINE,
    PROVIDER_CLAIM_MACHINE,
    ClaimStateMachine,
)
from services.claims.tasks import dispatch_status_notification
from services.hmo.models import User
from services.hmo.ownership import Authorizer, OwnershipGate
import logging

logger = logging.getLogger(__name__)

AmountLike = Union[Decimal, float, int, str]

# Claim.amount is Numeric(12, 2)
AMOUNT_QUANTUM = Decimal("0.01")
MAX_AMOUNT = Decimal("1e10")


@dataclass(frozen=True)
class MemberClaimQuery:
    """Identifies a member claim through the member it belongs to."""

    claim_id: int
    member_id: int


class ClaimMutationService:
    """Applies status and field changes to member and provider claims."""

    MEMBER_CLAIM_FIELDS = ("description", "amount", "service_date")
    PROVIDER_CLAIM_FIELDS = (
        "diagnosis",
        "service_breakdown",
        "documents",
        "test_results",
        "discharge_summary",
        "authorization_code",
    )

    def __init__(
        self,
        db: Session,
        authorizer: Optional[Authorizer] = None,
        notifier: Optional[Callable[..., Any]] = dispatch_status_notification,
    ):
        self.db = db
        self.authorizer = authorizer or OwnershipGate(db)
        self.notes = NoteLedger(db)
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_member_claim_status(
        self,
        query: MemberClaimQuery,
        principal: Principal,
        new_status: Union[ClaimStatus, str],
        reason: Optional[str] = None,
        approved_amount: Optional[AmountLike] = None,
    ) -> Claim:
        """
        Move a member claim to APPROVED or REJECTED.

        Raises ForbiddenError, NotFoundError, LockedError,
        InvalidTransitionError, MissingReasonError or InvalidAmountError;
        nothing is written then.
        """
        self._require_admin(principal)
        claim = self._load_member_claim(query, principal)
        return self._transition_member_claim(claim, principal, new_status, reason, approved_amount)

    def update_provider_claim_status(
        self,
        provider_claim_id: int,
        principal: Principal,
        new_status: Union[ProviderClaimStatus, str],
        reason: Optional[str] = None,
    ) -> ProviderClaim:
        """
        Move a provider claim to APPROVED or REJECTED on behalf of its HMO.

        The principal must administer the HMO owning the claim. Raises
        NotFoundError, ForbiddenError, LockedError, InvalidTransitionError or
        MissingReasonError; nothing is written then.
        """
        self._require_admin(principal)
        provider_claim = self._load_provider_claim(provider_claim_id)
        self.authorizer.authorize(principal.id, provider_claim.hmo_id)

        observed_status = provider_claim.status
        next_status = self._validate(
            PROVIDER_CLAIM_MACHINE, provider_claim, observed_status, new_status, reason
        )

        return self._commit_transition(
            model=ProviderClaim,
            claim=provider_claim,
            machine=PROVIDER_CLAIM_MACHINE,
            claim_ref=ClaimRef.provider(provider_claim.id),
            principal=principal,
            observed_status=observed_status,
            next_status=next_status,
            reason=reason,
            values={"status": next_status.value},
        )

    def approve_or_decline_claim(
        self,
        claim_id: int,
        principal: Principal,
        action: Union[ClaimAction, str],
        reason: Optional[str] = None,
        approved_amount: Optional[AmountLike] = None,
    ) -> Claim:
        """
        Treatment claim review: approve or decline a PENDING member claim.

        Stricter than ``update_member_claim_status``: the claim must be
        exactly PENDING, otherwise InvalidStateError. Paid claims answer
        LockedError instead, like every other mutation of a paid claim.
        """
        self._require_admin(principal)
        try:
            action = ClaimAction(action)
        except ValueError:
            raise InvalidTransitionError(f"Unknown review action: {action}")

        claim = self._load_reviewable_claim(claim_id, principal)

        if MEMBER_CLAIM_MACHINE.is_locked(claim.status):
            logger.warning(f"Review of claim {claim.id} refused: claim is paid")
            raise LockedError("Cannot update status of a paid claim")

        if claim.status != ClaimStatus.PENDING.value:
            logger.warning(f"Review of claim {claim.id} refused: claim is {claim.status}")
            raise InvalidStateError("Only pending claims can be approved or declined")

        new_status = ClaimStatus.APPROVED if action == ClaimAction.APPROVE else ClaimStatus.REJECTED
        return self._transition_member_claim(claim, principal, new_status, reason, approved_amount)

    # ------------------------------------------------------------------
    # Field changes
    # ------------------------------------------------------------------

    def update_member_claim(
        self, query: MemberClaimQuery, principal: Principal, changes: Dict[str, Any]
    ) -> Claim:
        """Edit descriptive fields of a member claim that is not yet paid."""
        self._require_admin(principal)
        claim = self._load_member_claim(query, principal)

        if MEMBER_CLAIM_MACHINE.is_locked(claim.status):
            logger.warning(f"Update of claim {claim.id} refused: claim is paid")
            raise LockedError("Cannot update a paid claim")

        values = {k: v for k, v in changes.items() if k in self.MEMBER_CLAIM_FIELDS}
        if "amount" in values:
            values["amount"] = self._normalize_amount(values["amount"])

        return self._commit_fields(Claim, claim, MEMBER_CLAIM_MACHINE, values)

    def update_provider_claim(
        self, provider_claim_id: int, principal: Principal, changes: Dict[str, Any]
    ) -> ProviderClaim:
        """Edit clinical fields of a provider claim that is not yet approved."""
        self._require_admin(principal)
        provider_claim = self._load_provider_claim(provider_claim_id)
        self.authorizer.authorize(principal.id, provider_claim.hmo_id)

        if PROVIDER_CLAIM_MACHINE.is_locked(provider_claim.status):
            logger.warning(f"Update of provider claim {provider_claim.id} refused: claim is approved")
            raise LockedError("Cannot update an approved provider claim")

        values = {k: v for k, v in changes.items() if k in self.PROVIDER_CLAIM_FIELDS}
        return self._commit_fields(ProviderClaim, provider_claim, PROVIDER_CLAIM_MACHINE, values)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @staticmethod
    def _require_admin(principal: Principal) -> None:
        """Only HMO staff may mutate claims; members and providers never do."""
        if principal.role != UserRole.ADMIN:
            logger.warning(f"User {principal.id} with role {principal.role} refused a claim mutation")
            raise ForbiddenError("Only HMO administrators can modify claims")

    def _load_member_claim(self, query: MemberClaimQuery, principal: Principal) -> Claim:
        if principal.hmo_id is None:
            raise NotFoundError("Claim not found")

        claim = (
            self.db.query(Claim)
            .join(User, Claim.member_id == User.id)
            .filter(
                Claim.id == query.claim_id,
                Claim.member_id == query.member_id,
                User.hmo_id == principal.hmo_id,
            )
            .first()
        )
        if not claim:
            raise NotFoundError("Claim not found")
        return claim

    def _load_reviewable_claim(self, claim_id: int, principal: Principal) -> Claim:
        if principal.hmo_id is None:
            raise NotFoundError("Treatment claim not found")

        claim = (
            self.db.query(Claim)
            .join(User, Claim.member_id == User.id)
            .filter(Claim.id == claim_id, User.hmo_id == principal.hmo_id)
            .first()
        )
        if not claim:
            raise NotFoundError("Treatment claim not found")
        return claim

    def _load_provider_claim(self, provider_claim_id: int) -> ProviderClaim:
        provider_claim = (
            self.db.query(ProviderClaim).filter(ProviderClaim.id == provider_claim_id).first()
        )
        if not provider_claim:
            raise NotFoundError("Provider claim not found")
        return provider_claim

    # ------------------------------------------------------------------
    # Shared write path
    # ------------------------------------------------------------------

    def _transition_member_claim(
        self,
        claim: Claim,
        principal: Principal,
        new_status: Union[ClaimStatus, str],
        reason: Optional[str],
        approved_amount: Optional[AmountLike],
    ) -> Claim:
        observed_status = claim.status
        next_status = self._validate(MEMBER_CLAIM_MACHINE, claim, observed_status, new_status, reason)

        values: Dict[str, Any] = {"status": next_status.value}
        if next_status == ClaimStatus.REJECTED:
            values["rejection_reason"] = reason

        # Adjudicators may settle a different amount than was claimed
        if approved_amount is not None:
            amount = self._normalize_amount(approved_amount)
            if amount != Decimal(str(claim.amount)):
                values["amount"] = amount

        return self._commit_transition(
            model=Claim,
            claim=claim,
            machine=MEMBER_CLAIM_MACHINE,
            claim_ref=ClaimRef.member(claim.id),
            principal=principal,
            observed_status=observed_status,
            next_status=next_status,
            reason=reason,
            values=values,
        )

    def _validate(self, machine: ClaimStateMachine, claim, observed_status, new_status, reason):
        try:
            return machine.transition(observed_status, new_status, reason)
        except ClaimEngineError as e:
            logger.warning(
                f"Status change of {type(claim).__name__} {claim.id} "
                f"from {observed_status} refused: {e}"
            )
            raise

    def _commit_transition(
        self,
        model: Type,
        claim,
        machine: ClaimStateMachine,
        claim_ref: ClaimRef,
        principal: Principal,
        observed_status: str,
        next_status,
        reason: Optional[str],
        values: Dict[str, Any],
    ):
        body = reason if reason and reason.strip() else (
            f"Status changed from {observed_status} to {next_status.value}"
        )

        try:
            self.notes.append(author_id=principal.id, body=body, claim_ref=claim_ref)
            if not self._compare_and_set(model, claim.id, observed_status, values):
                self.db.rollback()
                self._raise_for_concurrent_change(model, claim.id, machine, next_status, reason)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to persist status change of {model.__name__} {claim.id}: {e}",
                exc_info=True,
            )
            raise PersistenceError("Failed to update claim status") from e

        self.db.refresh(claim)
        logger.info(
            f"{model.__name__} {claim.id} moved from {observed_status} to {next_status.value} "
            f"by user {principal.id}"
        )

        if self.notifier is not None:
            try:
                self.notifier(claim_ref.kind, claim.id, next_status.value, principal.id, reason)
            except Exception as e:
                logger.warning(f"Notification for {model.__name__} {claim.id} failed: {e}")

        return claim

    def _commit_fields(self, model: Type, claim, machine: ClaimStateMachine, values: Dict[str, Any]):
        if not values:
            return claim

        observed_status = claim.status
        try:
            if not self._compare_and_set(model, claim.id, observed_status, values):
                self.db.rollback()
                current = self.db.get(model, claim.id)
                if current is not None and machine.is_locked(current.status):
                    raise LockedError(f"{model.__name__} was locked while being updated")
                raise InvalidTransitionError(
                    f"{model.__name__} was modified concurrently, retry the request"
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update {model.__name__} {claim.id}: {e}", exc_info=True)
            raise PersistenceError("Failed to update claim") from e

        self.db.refresh(claim)
        logger.info(f"{model.__name__} {claim.id} updated: {sorted(values)}")
        return claim

    def _compare_and_set(self, model: Type, claim_id: int, observed_status: str, values: Dict[str, Any]) -> bool:
        """Update the row only if its status is still the one that was validated."""
        updated = (
            self.db.query(model)
            .filter(model.id == claim_id, model.status == observed_status)
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def _raise_for_concurrent_change(self, model: Type, claim_id: int, machine: ClaimStateMachine, requested, reason):
        # The row moved on since it was loaded; judge the request against its current status
        current = self.db.get(model, claim_id)
        if current is None:
            raise NotFoundError(f"{model.__name__} not found")
        machine.transition(current.status, requested, reason)
        raise InvalidTransitionError(f"{model.__name__} was modified concurrently, retry the request")

    @staticmethod
    def _normalize_amount(value: AmountLike) -> Decimal:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Invalid amount: {value}")
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError("Approved amount must be greater than zero")
        if amount >= MAX_AMOUNT:
            raise InvalidAmountError(f"Amount must be less than {MAX_AMOUNT:,.0f}")
        if amount != amount.quantize(AMOUNT_QUANTUM):
            raise InvalidAmountError("Amount cannot have more than 2 decimal places")
        return amount.quantize(AMOUNT_QUANTUM)
