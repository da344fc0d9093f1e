import logging
from clinic_queue.platform.ports.event_bus import VisitEvent, VisitEventSink

log = logging.getLogger("bus.noop")

class LoggingEventSink(VisitEventSink):
    """Default sink: the feed is only written to the log."""

    async def publish(self, event: VisitEvent) -> None:
        log.info("%s visit=%s at %s payload=%s", event.event_type, event.visit_id, event.occurred_at.isoformat(), event.payload)

    async def close(self) -> None:
        return None
