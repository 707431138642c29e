"""SQLAlchemy ORM models."""

from .facility import Facility
from .fms_change import FMSChange
from .fms_configuration import FMSConfiguration
from .fms_entity_mapping import FMSEntityMapping
from .fms_sync_log import FMSSyncLog
from .unit import Unit
from .unit_assignment import UnitAssignment
from .user import User
from .utils import generate_uuid

__all__ = ["FMSChange", "FMSConfiguration", "FMSEntityMapping", "FMSSyncLog", "Facility", "Unit", "UnitAssignment", "User", "generate_uuid"]
