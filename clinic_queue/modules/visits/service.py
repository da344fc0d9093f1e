"""Staff-driven visit transitions.

Every status change is a single conditional UPDATE keyed on the status the
transition expects (see ``VisitRepository.transition``). Two nurses racing to
claim the same waiting visit therefore cannot both win: the second UPDATE
matches no row and the caller gets ``InvalidTransition`` with the status the
winner left behind.
"""
import uuid
import logging
from datetime import datetime
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.base import utcnow
from clinic_queue.core.errors import NotFound, InvalidTransition
from clinic_queue.modules.events.outbox import OutboxService
from clinic_queue.modules.queue import lifecycle
from clinic_queue.modules.visits.models import Visit
from clinic_queue.modules.visits.repository import VisitRepository
from clinic_queue.modules.visits.schemas import VisitSnapshot
from clinic_queue.platform.ports.name_resolver import StaffNameResolverPort

logger = logging.getLogger(__name__)

def snapshot(visit: Visit) -> dict:
    return VisitSnapshot.model_validate(visit).model_dump(by_alias=True, mode="json")

class VisitService:
    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = utcnow):
        self.session = session
        self.visits = VisitRepository(session)
        self.outbox = OutboxService(session)
        self.now = now

    async def get(self, visit_id: uuid.UUID) -> Visit:
        obj = await self.visits.get(visit_id)
        if not obj:
            raise NotFound("Visit not found")
        return obj

    async def history(self, student_id: str, limit: int = 10):
        return await self.visits.history_for(student_id, limit=limit)

    async def _transition(self, action: str, visit_id: uuid.UUID, **values) -> Visit:
        now = self.now()
        obj = await self.visits.transition(
            visit_id, lifecycle.sources(action), now=now, queue_status=lifecycle.target(action), **values
        )
        if obj is None:
            await self.session.rollback()
            current = await self.visits.get(visit_id)
            if current is None:
                raise NotFound("Visit not found")
            logger.warning("Rejected %s on visit %s: status is %s", action, visit_id, current.queue_status)
            raise InvalidTransition(
                f"Cannot {action} a visit that is {current.queue_status}",
                current_status=current.queue_status,
            )
        return obj

    async def start(self, visit_id: uuid.UUID, actor_id: str, resolver: StaffNameResolverPort, notes: str | None = None) -> Visit:
        values = {
            "assigned_nurse": actor_id,
            "assigned_nurse_name": await resolver.display_name(actor_id),
        }
        if notes is not None:
            values["notes"] = notes
        obj = await self._transition("start", visit_id, **values)
        await self.outbox.record("VISIT_STARTED", obj.id, {"assigned_nurse": actor_id}, occurred_at=self.now())
        await self.session.commit()
        logger.info("Visit %s started by %s", obj.id, actor_id)
        return obj

    async def complete(self, visit_id: uuid.UUID, notes: str | None = None) -> Visit:
        values = {"notes": notes} if notes is not None else {}
        obj = await self._transition("complete", visit_id, **values)
        await self.outbox.record("VISIT_COMPLETED", obj.id, {"assigned_nurse": obj.assigned_nurse}, occurred_at=self.now())
        await self.session.commit()
        logger.info("Visit %s completed", obj.id)
        return obj

    async def update_notes(self, visit_id: uuid.UUID, notes: str | None) -> Visit:
        obj = await self.visits.update_fields(visit_id, now=self.now(), notes=notes)
        if not obj:
            raise NotFound("Visit not found")
        await self.outbox.record("VISIT_NOTES_UPDATED", obj.id, occurred_at=self.now())
        await self.session.commit()
        return obj

    async def update_priority(self, visit_id: uuid.UUID, priority: str) -> Visit:
        before = await self.visits.get(visit_id)
        if not before:
            raise NotFound("Visit not found")
        previous = before.priority
        obj = await self.visits.update_fields(visit_id, now=self.now(), priority=priority)
        if not obj:
            raise NotFound("Visit not found")
        await self.outbox.record("VISIT_PRIORITY_CHANGED", obj.id, {"from": previous, "to": priority}, occurred_at=self.now())
        await self.session.commit()
        logger.info("Visit %s re-triaged %s -> %s", obj.id, previous, priority)
        return obj

    async def mark_emergency(self, student_id: str) -> Visit:
        # only a waiting visit can be escalated; a claimed visit is already with a nurse
        obj = await self.visits.escalate_waiting(student_id, now=self.now())
        if not obj:
            raise NotFound("No active visit found")
        await self.outbox.record("VISIT_MARKED_EMERGENCY", obj.id, {"student_id": student_id}, occurred_at=self.now())
        await self.session.commit()
        logger.info("Visit %s for student_id=%s marked emergency", obj.id, student_id)
        return obj
