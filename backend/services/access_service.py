"""Facility-scoped access checks for FMS operations."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from models import FMSSyncLog
from models.enums import FMS_ROLES, GLOBAL_ADMIN_ROLES, UserRole
from services.exceptions import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the auth layer."""

    user_id: str
    role: UserRole
    facility_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_global_admin(self) -> bool:
        return self.role in GLOBAL_ADMIN_ROLES


class AccessService:
    """Decides whether an actor may touch a facility's FMS data."""

    @staticmethod
    def can_access_facility(actor: Actor, facility_id: str) -> bool:
        """Check facility-scoped admin access.

        Args:
            actor: The caller.
            facility_id: Facility being acted on.

        Returns:
            True for global admins, and for facility admins whose accessible
            set contains the facility. False for every other role.
        """
        if actor.role not in FMS_ROLES:
            return False
        if actor.is_global_admin:
            return True
        return facility_id in actor.facility_ids

    @staticmethod
    def require_fms_role(actor: Actor) -> None:
        """Raise AuthorizationError for roles with no FMS access at all."""
        if actor.role not in FMS_ROLES:
            logger.warning("FMS access denied: user %s has role %s", actor.user_id, actor.role.value)
            raise AuthorizationError("Insufficient permissions for FMS operations")

    @staticmethod
    def require_global_admin(actor: Actor) -> None:
        """Raise AuthorizationError unless the actor is a global admin."""
        if not actor.is_global_admin:
            raise AuthorizationError("Only administrators can manage FMS configuration")

    @staticmethod
    def require_facility_access(actor: Actor, facility_id: str) -> None:
        """Raise AuthorizationError unless the actor may act on the facility.

        The message deliberately does not echo the facility id.
        """
        AccessService.require_fms_role(actor)
        if not AccessService.can_access_facility(actor, facility_id):
            logger.warning(
                "FMS access denied: user %s is not scoped to facility %s",
                actor.user_id, facility_id,
            )
            raise AuthorizationError("You do not have access to this facility")

    @staticmethod
    def get_sync_log_for_actor(db: Session, actor: Actor, sync_log_id: str) -> FMSSyncLog:
        """Load a sync log and check the actor may see its facility.

        Args:
            db: Database session.
            actor: The caller.
            sync_log_id: Sync log to load.

        Returns:
            The sync log.

        Raises:
            AuthorizationError: Role has no FMS access, or the log belongs to
                a facility outside the actor's scope.
            NotFoundError: No such sync log.
        """
        AccessService.require_fms_role(actor)
        sync_log = db.query(FMSSyncLog).filter(FMSSyncLog.id == sync_log_id).first()
        if sync_log is None:
            raise NotFoundError("Sync log not found")
        AccessService.require_facility_access(actor, sync_log.facility_id)
        return sync_log
