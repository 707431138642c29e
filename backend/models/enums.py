"""Enumerations shared by the FMS models, services and API."""

from enum import Enum


class SyncStatus(str, Enum):
    """Lifecycle of a single sync run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggeredBy(str, Enum):
    """What started a sync run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class EntityType(str, Enum):
    """Kinds of external entity the FMS reports."""

    TENANT = "tenant"
    UNIT = "unit"


class ChangeType(str, Enum):
    """Kinds of detected difference between the FMS and internal state."""

    TENANT_ADDED = "tenant_added"
    TENANT_REMOVED = "tenant_removed"
    TENANT_UPDATED = "tenant_updated"
    UNIT_ADDED = "unit_added"
    UNIT_REMOVED = "unit_removed"
    UNIT_UPDATED = "unit_updated"


class ChangeAction(str, Enum):
    """Mutation intents recorded on a change for the reviewer."""

    CREATE_MAPPING = "create_mapping"
    CREATE_USER = "create_user"
    UPDATE_USER = "update_user"
    DEACTIVATE_USER = "deactivate_user"
    REACTIVATE_USER = "reactivate_user"
    ASSIGN_UNIT = "assign_unit"
    UNASSIGN_UNIT = "unassign_unit"
    ADD_ACCESS = "add_access"
    REMOVE_ACCESS = "remove_access"
    CREATE_UNIT = "create_unit"
    UPDATE_UNIT = "update_unit"
    RETIRE_UNIT = "retire_unit"


# Identity-, access- and unit-retiring intents. A change carrying any of
# these is never auto-applied.
SECURITY_SENSITIVE_ACTIONS: frozenset[ChangeAction] = frozenset(
    {
        ChangeAction.CREATE_USER,
        ChangeAction.DEACTIVATE_USER,
        ChangeAction.REACTIVATE_USER,
        ChangeAction.ADD_ACCESS,
        ChangeAction.REMOVE_ACCESS,
        ChangeAction.RETIRE_UNIT,
    }
)


class UserRole(str, Enum):
    """Roles an authenticated actor may hold."""

    ADMIN = "admin"
    DEV_ADMIN = "dev_admin"
    FACILITY_ADMIN = "facility_admin"
    TENANT = "tenant"
    MAINTENANCE = "maintenance"


GLOBAL_ADMIN_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.DEV_ADMIN})
FMS_ROLES: frozenset[UserRole] = GLOBAL_ADMIN_ROLES | {UserRole.FACILITY_ADMIN}


class FMSProviderType(str, Enum):
    """Closed set of supported FMS providers."""

    GENERIC_REST = "generic_rest"
    SIMULATED = "simulated"
