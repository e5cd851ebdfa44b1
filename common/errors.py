"""Typed errors raised by the claim engine.

Every ``ClaimEngineError`` is a rejected request the caller can correct; it
carries the HTTP status code the service boundary should answer with.
``PersistenceError`` is the separate, unrecoverable category for data store
failures.
"""


class ClaimEngineError(Exception):
    """Base class for recoverable claim engine errors."""

    status_code = 400


class NotFoundError(ClaimEngineError):
    """Claim or HMO does not exist (or is not visible to the principal)."""

    status_code = 404


class ForbiddenError(ClaimEngineError):
    """Principal is not an administrator of the owning HMO."""

    status_code = 403


class LockedError(ClaimEngineError):
    """Claim is in its terminal status and cannot change any more."""


class InvalidTransitionError(ClaimEngineError):
    """Requested status is not a legal outbound edge from the current one."""


class MissingReasonError(ClaimEngineError):
    """A rejection was requested without a justification."""


class InvalidStateError(ClaimEngineError):
    """Approve/decline was invoked on a claim that is not PENDING."""


class InvalidAmountError(ClaimEngineError):
    """Approved amount override is not a positive value."""


class PersistenceError(Exception):
    """Data store failure; the operation was rolled back."""
