"""Acting principal for HMO-scoped requests.

Authentication happens upstream; the gateway forwards the session's user id,
role and HMO scope in trusted headers. The resulting ``Principal`` is passed
explicitly into every core call.
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, status
from common.enums import UserRole


@dataclass(frozen=True)
class Principal:
    """Authenticated staff user acting on behalf of an HMO."""

    id: int
    role: UserRole
    hmo_id: Optional[int] = None


def get_principal(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[UserRole] = Header(None),
    x_hmo_id: Optional[int] = Header(None),
) -> Principal:
    """Dependency building the principal from the forwarded session headers."""
    if x_user_id is None or x_user_role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated principal",
        )
    return Principal(id=x_user_id, role=x_user_role, hmo_id=x_hmo_id)
