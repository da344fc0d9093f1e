import logging
from datetime import datetime, timedelta
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.base import utcnow
from clinic_queue.core.config import settings
from clinic_queue.core.errors import NotFound, ValidationFailed
from clinic_queue.modules.queue.guard import is_stale
from clinic_queue.modules.queue.ranking import rank, paginate, queue_position, total_pages
from clinic_queue.modules.queue.schemas import QueueStats
from clinic_queue.modules.visits.models import QUEUE_STATUSES, WAITING, IN_PROGRESS, COMPLETED
from clinic_queue.modules.visits.repository import VisitRepository
from clinic_queue.modules.visits.schemas import RankedVisitOut, EmergencyVisitOut, VisitOut
from clinic_queue.modules.visits.service import snapshot

logger = logging.getLogger(__name__)

def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)

class QueueService:
    """Read side of the queue: listings, positions and counters, always derived from the store."""

    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = utcnow, stale_after: timedelta | None = None):
        self.session = session
        self.visits = VisitRepository(session)
        self.now = now
        self.stale_after = stale_after or timedelta(minutes=settings.STALE_VISIT_MINUTES)

    async def listing(self, *, status: str | None = None, page: int = 1, limit: int = 50) -> dict:
        if status == "all":
            status = None
        if status is not None and status not in QUEUE_STATUSES:
            raise ValidationFailed(f"Unknown status filter: {status}")
        if page < 1 or limit < 1:
            raise ValidationFailed("page and limit must be positive")

        ranked = rank(await self.visits.list_by_status(status))
        visits = [
            RankedVisitOut.model_validate({**VisitOut.model_validate(v).model_dump(), "queue_position": pos})
            for pos, v in paginate(ranked, page, limit)
        ]

        by_status = await self.visits.count_by_status()
        total_count = len(ranked)
        avg = await self.visits.average_estimated_wait()
        stats = QueueStats(
            total_waiting=by_status.get(WAITING, 0),
            total_in_progress=by_status.get(IN_PROGRESS, 0),
            total_completed=by_status.get(COMPLETED, 0),
            emergency_cases=await self.visits.count(active_only=True, emergency_only=True),
            total_today=await self.visits.count(since=_start_of_day(self.now())),
            average_wait_time=round(avg) if avg is not None else settings.DEFAULT_AVERAGE_WAIT_MINUTES,
            total_pages=total_pages(total_count, limit),
            current_page=page,
            total_count=total_count,
        )
        return {
            "visits": [v.model_dump(by_alias=True, mode="json") for v in visits],
            "stats": stats.model_dump(by_alias=True),
        }

    async def position(self, student_id: str) -> dict:
        visit = await self.visits.waiting_for(student_id)
        if visit is None:
            raise NotFound("No active visit found")

        if is_stale(visit, self.now(), self.stale_after):
            return {
                "success": False,
                "error": "Visit expired",
                "canRecheckIn": True,
                "message": "Your previous visit has expired. You can check in again.",
            }

        waiting = await self.visits.list_waiting()
        number = queue_position(visit, waiting)
        if number is None:
            # completed or claimed between our two reads
            logger.debug("Visit %s left the waiting set mid-query", visit.id)
            return {"success": False, "error": "stale", "message": "Queue changed; fetch again."}
        return {
            "success": True,
            "queueNumber": number,
            "totalWaiting": len(waiting),
            "currentVisit": snapshot(visit),
        }

    async def emergencies(self) -> list[dict]:
        rows = await self.visits.list_emergencies()
        return [
            EmergencyVisitOut.model_validate({**VisitOut.model_validate(v).model_dump(), "position": i + 1}).model_dump(by_alias=True, mode="json")
            for i, v in enumerate(rows)
        ]
