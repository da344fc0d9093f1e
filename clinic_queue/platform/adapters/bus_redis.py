import json
import logging
from redis.asyncio import Redis, from_url as redis_from_url
from clinic_queue.core.config import settings
from clinic_queue.platform.ports.event_bus import VisitEvent, VisitEventSink, VISIT_EVENTS_STREAM

log = logging.getLogger("bus.redis")

class RedisStreamSink(VisitEventSink):
    """Appends visit events to a capped Redis stream, one entry per outbox row."""

    def __init__(self, redis: Redis | None = None, stream: str | None = None):
        if redis is None:
            if not settings.REDIS_URL:
                raise RuntimeError("EVENT_BUS_PROVIDER=redis needs REDIS_URL")
            redis = redis_from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        self.redis = redis
        self.stream = stream or settings.REDIS_STREAM or VISIT_EVENTS_STREAM

    async def publish(self, event: VisitEvent) -> None:
        fields = event.as_fields()
        fields["payload"] = json.dumps(event.payload, default=str)
        entry_id = await self.redis.xadd(self.stream, fields, maxlen=settings.REDIS_STREAM_MAXLEN, approximate=True)
        log.debug("XADD %s %s -> %s", self.stream, event.event_type, entry_id)

    async def close(self) -> None:
        await self.redis.aclose()
