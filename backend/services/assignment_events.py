"""Outbound unit-assignment events emitted by the apply engine.

Consumers (lock gateway sync, notifications) receive ID-based events
through an explicitly injected publisher. There is no process-wide
registry: whoever constructs the apply engine decides who listens.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

ASSIGNED = "assigned"
UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class AssignmentEvent:
    """A tenant gained or lost access to a unit."""

    event_type: str  # ASSIGNED | UNASSIGNED
    facility_id: str
    unit_id: str
    user_id: str
    sync_log_id: str | None
    performed_by: str
    source: str = "fms_sync"
    occurred_at: datetime | None = None

    def to_payload(self) -> dict:
        """Return a JSON-friendly dict of the event."""
        payload = asdict(self)
        if self.occurred_at is not None:
            payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


class AssignmentEventPublisher(Protocol):
    """Anything that can accept assignment events."""

    def publish(self, event: AssignmentEvent) -> None:
        ...


class LoggingEventPublisher:
    """Default publisher: writes each event to the application log."""

    def publish(self, event: AssignmentEvent) -> None:
        logger.info(
            "Assignment event %s: user %s unit %s (facility %s, sync %s)",
            event.event_type, event.user_id, event.unit_id,
            event.facility_id, event.sync_log_id,
        )


class InMemoryEventPublisher:
    """Records every event and fans out to subscribers in list order.

    Args:
        subscribers: Callables invoked with each event, first to last.
    """

    def __init__(self, subscribers: list[Callable[[AssignmentEvent], None]] | None = None):
        self.events: list[AssignmentEvent] = []
        self._subscribers = list(subscribers or [])

    def publish(self, event: AssignmentEvent) -> None:
        self.events.append(event)
        for subscriber in self._subscribers:
            subscriber(event)


def make_event(
    event_type: str,
    facility_id: str,
    unit_id: str,
    user_id: str,
    sync_log_id: str | None,
    performed_by: str,
) -> AssignmentEvent:
    """Build an event stamped with the current UTC time."""
    return AssignmentEvent(
        event_type=event_type,
        facility_id=facility_id,
        unit_id=unit_id,
        user_id=user_id,
        sync_log_id=sync_log_id,
        performed_by=performed_by,
        occurred_at=datetime.now(timezone.utc),
    )
