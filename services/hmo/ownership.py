"""HMO ownership check for HMO-scoped mutations."""

from typing import Protocol
from sqlalchemy.orm import Session, selectinload
from common.errors import ForbiddenError, NotFoundError
from services.hmo.models import Hmo
import logging

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    """Decides whether a principal may mutate resources owned by an HMO."""

    def authorize(self, principal_id: int, hmo_id: int) -> None:
        ...


class OwnershipGate:
    """Allows a principal through only if they administer the owning HMO.

    The check is read-only: it loads the HMO with its administrator set and
    never touches the resource being mutated.
    """

    def __init__(self, db: Session):
        self.db = db

    def authorize(self, principal_id: int, hmo_id: int) -> None:
        """
        Verify that ``principal_id`` is an administrator of ``hmo_id``.

        Raises NotFoundError if the HMO does not exist and ForbiddenError if
        the principal is not in its administrator set.
        """
        hmo = (
            self.db.query(Hmo)
            .options(selectinload(Hmo.administrators))
            .filter(Hmo.id == hmo_id)
            .first()
        )
        if hmo is None:
            raise NotFoundError("HMO not found")

        if not any(admin.id == principal_id for admin in hmo.administrators):
            logger.warning(f"User {principal_id} is not an administrator of HMO {hmo_id}")
            raise ForbiddenError("Unauthorized to perform this action for this HMO")
