"""Visit audit trail written through a transactional outbox.

Services call ``OutboxService.record`` inside the same transaction as the
visit change, so an event exists iff the change committed. A background relay
later forwards pending rows to the configured ``VisitEventSink``.
"""
import uuid
import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP, String, Integer, Text, JSON, Index, select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_queue.core.base import Base, TimestampedMixin, utcnow, as_utc
from clinic_queue.core.config import settings
from clinic_queue.core.db import SessionLocal
from clinic_queue.platform.ports.event_bus import VisitEvent, VisitEventSink
from clinic_queue.platform.provider_registry import registry

log = logging.getLogger("event.outbox")

PENDING = "pending"
CLAIMED = "claimed"
DELIVERED = "delivered"

MAX_RETRY_DELAY_SECONDS = 60

def retry_delay(attempts: int) -> timedelta:
    # 2, 4, 8, 16, 32, then 60s
    return timedelta(seconds=min(MAX_RETRY_DELAY_SECONDS, 2 ** min(attempts, 6)))

class EventOutbox(Base, TimestampedMixin):
    __tablename__ = "visit_event_outbox"

    event_type: Mapped[str] = mapped_column(String(64))
    visit_id: Mapped[str] = mapped_column(String(64), index=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=utcnow)

    delivery: Mapped[str] = mapped_column(String(16), default=PENDING)  # pending | claimed | delivered
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    deliver_after: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=utcnow)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_outbox_due", "delivery", "deliver_after"),)

    def to_event(self) -> VisitEvent:
        return VisitEvent(
            event_type=self.event_type,
            visit_id=self.visit_id,
            occurred_at=as_utc(self.occurred_at),
            outbox_id=str(self.id),
            payload=self.payload or {},
        )

class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event_type: str, visit_id: str, payload: dict, occurred_at: datetime) -> EventOutbox:
        obj = EventOutbox(
            event_type=event_type,
            visit_id=visit_id,
            payload=payload,
            occurred_at=occurred_at,
            deliver_after=occurred_at,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def claim_due(self, now: datetime, limit: int = 50) -> list[EventOutbox]:
        # FOR UPDATE SKIP LOCKED lets several relays share the table on Postgres; SQLite ignores it
        q = (
            select(EventOutbox)
            .where(EventOutbox.delivery == PENDING, EventOutbox.deliver_after <= now)
            .order_by(EventOutbox.occurred_at.asc(), EventOutbox.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list((await self.session.execute(q)).scalars().all())
        for row in rows:
            row.delivery = CLAIMED
        await self.session.flush()
        return rows

    async def delivered(self, row: EventOutbox) -> None:
        row.delivery = DELIVERED
        row.last_error = None
        await self.session.flush()

    async def retry_later(self, row: EventOutbox, error: str, now: datetime) -> None:
        row.attempts = (row.attempts or 0) + 1
        row.delivery = PENDING
        row.deliver_after = now + retry_delay(row.attempts)
        row.last_error = error[:2000]
        await self.session.flush()

    async def prune_delivered(self, before: datetime) -> int:
        res = await self.session.execute(
            delete(EventOutbox).where(EventOutbox.delivery == DELIVERED, EventOutbox.occurred_at < before)
        )
        return res.rowcount

class OutboxService:
    def __init__(self, session: AsyncSession):
        self.repo = OutboxRepository(session)

    async def record(self, event_type: str, visit_id: str | uuid.UUID, payload: dict | None = None, occurred_at: datetime | None = None) -> EventOutbox:
        return await self.repo.add(event_type, str(visit_id), payload or {}, occurred_at or utcnow())

# ---- Background relay ----

async def relay_once(session: AsyncSession, sink: VisitEventSink, now: datetime | None = None, limit: int = 50) -> int:
    """Forward one batch of due events and commit. Returns how many rows were claimed."""
    now = now or utcnow()
    repo = OutboxRepository(session)
    batch = await repo.claim_due(now, limit=limit)
    for row in batch:
        try:
            await sink.publish(row.to_event())
        except Exception as ex:
            log.exception("Delivery of %s for visit %s failed (attempt %d)", row.event_type, row.visit_id, (row.attempts or 0) + 1)
            await repo.retry_later(row, str(ex), now)
        else:
            await repo.delivered(row)
    await session.commit()
    return len(batch)

async def run_outbox_relay(poll_interval_seconds: float = 1.0):
    sink = registry.event_sink()
    log.info("Outbox relay started with sink=%s", type(sink).__name__)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    claimed = await relay_once(session, sink)
                except Exception:
                    log.exception("Outbox relay iteration failed")
                    await session.rollback()
                    claimed = 0
            # drain a backlog without sleeping
            await asyncio.sleep(0 if claimed else poll_interval_seconds)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise

# ---- Retention ----

async def prune_once(session: AsyncSession, now: datetime | None = None, retention: timedelta | None = None) -> int:
    """Delete delivered rows older than the retention window. Pending and claimed rows are never pruned."""
    retention = retention or timedelta(hours=settings.OUTBOX_RETENTION_HOURS)
    n = await OutboxRepository(session).prune_delivered((now or utcnow()) - retention)
    await session.commit()
    return n

async def run_outbox_retention(interval_seconds: float | None = None):
    interval = interval_seconds or settings.OUTBOX_PRUNE_INTERVAL_SECONDS
    log.info("Outbox retention started (every %ss, keep %sh)", interval, settings.OUTBOX_RETENTION_HOURS)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    n = await prune_once(session)
                    if n:
                        log.info("Pruned %d delivered outbox rows", n)
                except Exception:
                    log.exception("Outbox retention sweep failed")
                    await session.rollback()
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        log.info("Outbox retention cancelled; shutting down")
        raise
