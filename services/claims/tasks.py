"""Celery tasks for post-transition claim notifications."""

from typing import Optional
from common.celery_app import celery_app
from common.config import NOTIFICATIONS_ENABLED
from common.enums import ClaimKind
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="notify_claim_status_changed")
def notify_claim_status_changed_task(
    kind: str,
    claim_id: int,
    status: str,
    actor_id: int,
    reason: Optional[str] = None,
):
    """
    Async task announcing a committed claim status change.

    The payload carries everything the message needs so the task never has
    to read the claim back. Delivery channels (email, in-app) subscribe to the
    log record this task emits.
    """
    try:
        claim_kind = ClaimKind(kind)
    except ValueError:
        logger.error(f"Unknown claim kind {kind!r} for notification of claim {claim_id}")
        return {"status": "error", "message": f"Unknown claim kind: {kind}"}

    label = "Provider claim" if claim_kind == ClaimKind.PROVIDER else "Claim"
    message = f"{label} #{claim_id} is now {status}"
    if reason:
        message += f": {reason}"

    logger.info(f"Notification for user {actor_id}: {message}")
    return {
        "status": "success",
        "claim_id": claim_id,
        "kind": claim_kind.value,
        "message": message,
    }


def dispatch_status_notification(
    kind: ClaimKind,
    claim_id: int,
    status: str,
    actor_id: int,
    reason: Optional[str] = None,
) -> bool:
    """Queue a status-change notification. Never raises; returns whether it was queued."""
    if not NOTIFICATIONS_ENABLED:
        return False

    try:
        notify_claim_status_changed_task.delay(kind.value, claim_id, status, actor_id, reason)
        return True
    except Exception as e:
        logger.warning(f"Failed to queue notification for {kind.value} claim {claim_id}: {e}")
        return False
