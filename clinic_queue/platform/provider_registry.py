from clinic_queue.core.config import settings
from clinic_queue.platform.ports.event_bus import VisitEventSink
from clinic_queue.platform.adapters.bus_noop import LoggingEventSink
from clinic_queue.platform.adapters.bus_redis import RedisStreamSink

class ProviderRegistry:
    """Lazily built process-wide adapters, chosen by configuration."""
    _event_sink: VisitEventSink | None = None

    @classmethod
    def event_sink(cls) -> VisitEventSink:
        if cls._event_sink is None:
            if settings.EVENT_BUS_PROVIDER.lower() == "redis":
                cls._event_sink = RedisStreamSink()
            else:
                cls._event_sink = LoggingEventSink()
        return cls._event_sink

    @classmethod
    async def aclose(cls) -> None:
        if cls._event_sink is not None:
            await cls._event_sink.close()
            cls._event_sink = None

registry = ProviderRegistry()
