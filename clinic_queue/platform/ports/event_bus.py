from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

VISIT_EVENTS_STREAM = "clinic.visits"

@dataclass(frozen=True)
class VisitEvent:
    """One relayed outbox row: what happened to which visit, and when."""
    event_type: str
    visit_id: str
    occurred_at: datetime
    outbox_id: str
    payload: dict = field(default_factory=dict)

    def as_fields(self) -> dict[str, str | dict]:
        return {
            "event_type": self.event_type,
            "visit_id": self.visit_id,
            "occurred_at": self.occurred_at.isoformat(),
            "outbox_id": self.outbox_id,
            "payload": self.payload,
        }

@runtime_checkable
class VisitEventSink(Protocol):
    """Integration feed for visit lifecycle events. Clients still poll the queue."""
    async def publish(self, event: VisitEvent) -> None: ...

    async def close(self) -> None: ...
