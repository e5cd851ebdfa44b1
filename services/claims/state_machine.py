"""Claim state machine implementation."""

from typing import FrozenSet, List, Optional, Type
from enum import Enum
from common.enums import ClaimStatus, ProviderClaimStatus
from common.errors import InvalidTransitionError, LockedError, MissingReasonError


class ClaimStateMachine:
    """Enforces the review transitions shared by member and provider claims.

    An undecided claim can be approved or rejected, and nothing else. The two
    claim kinds differ only in which status locks the record for good: PAID
    for member claims, APPROVED for provider claims.
    """

    def __init__(
        self,
        status_enum: Type[Enum],
        terminal_status: Enum,
        open_statuses: FrozenSet[Enum],
    ):
        self.status_enum = status_enum
        self.terminal_status = terminal_status
        self.open_statuses = frozenset(open_statuses)
        # Decision targets reachable from any open status
        self.decision_statuses = frozenset(
            (status_enum("APPROVED"), status_enum("REJECTED"))
        )

    def _coerce(self, status) -> Enum:
        try:
            return self.status_enum(status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown claim status: {status}")

    def is_locked(self, status) -> bool:
        """Check whether a status is the terminal, locked one."""
        return self._coerce(status) == self.terminal_status

    def can_transition(self, from_status, to_status) -> bool:
        """Check if a transition is valid."""
        from_status = self._coerce(from_status)
        to_status = self._coerce(to_status)

        if from_status == self.terminal_status or from_status == to_status:
            return False

        return from_status in self.open_statuses and to_status in self.decision_statuses

    def get_valid_next_states(self, current_status) -> List[Enum]:
        """Get all valid next states from current status."""
        current_status = self._coerce(current_status)
        return [
            status
            for status in self.status_enum
            if status in self.decision_statuses and self.can_transition(current_status, status)
        ]

    def transition(self, current_status, requested_status, reason: Optional[str] = None) -> Enum:
        """
        Validate a requested status change and return the new status.

        Checks run in order: locked terminal status, legal edge, then the
        mandatory reason on rejection.

        Raises LockedError, InvalidTransitionError or MissingReasonError.
        """
        current = self._coerce(current_status)
        requested = self._coerce(requested_status)

        if current == self.terminal_status:
            raise LockedError(
                f"Cannot update status of a {current.value.lower()} claim"
            )

        if not self.can_transition(current, requested):
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {requested.value}. "
                f"Valid next states: {[s.value for s in self.get_valid_next_states(current)]}"
            )

        if requested.value == "REJECTED" and not (reason and reason.strip()):
            raise MissingReasonError("Rejection reason is required")

        return requested


MEMBER_CLAIM_MACHINE = ClaimStateMachine(
    ClaimStatus,
    terminal_status=ClaimStatus.PAID,
    open_statuses=frozenset({ClaimStatus.PENDING}),
)

# OVERDUE provider claims are still undecided and can be reviewed
PROVIDER_CLAIM_MACHINE = ClaimStateMachine(
    ProviderClaimStatus,
    terminal_status=ProviderClaimStatus.APPROVED,
    open_statuses=frozenset({ProviderClaimStatus.PENDING, ProviderClaimStatus.OVERDUE}),
)
