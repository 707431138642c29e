"""Request dependencies shared by the FMS routes."""

from typing import Optional

from fastapi import Header, HTTPException

from models.enums import UserRole
from services.access_service import Actor


def get_current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_facility_ids: Optional[str] = Header(default=None),
) -> Actor:
    """Build the caller's Actor from the upstream auth layer's headers.

    The auth gateway in front of this service authenticates the request
    and forwards ``X-User-Id``, ``X-User-Role`` and a comma-separated
    ``X-Facility-Ids``.

    Raises:
        HTTPException: 401 if the identity headers are missing or malformed.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication required") from None
    facility_ids = frozenset(
        part.strip() for part in (x_facility_ids or "").split(",") if part.strip()
    )
    return Actor(user_id=x_user_id.strip(), role=role, facility_ids=facility_ids)
