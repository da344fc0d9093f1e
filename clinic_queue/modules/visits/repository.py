import uuid
from datetime import datetime
from typing import Iterable, Sequence
from sqlalchemy import select, update, func, case, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.base import utcnow
from clinic_queue.modules.visits.models import Visit, WAITING, COMPLETED, ACTIVE_STATUSES

# mirrors clinic_queue.modules.queue.ranking.PRIORITY_TIER
_PRIORITY_TIER = case(
    (Visit.priority == "emergency", 3),
    (Visit.priority == "high", 2),
    (Visit.priority == "medium", 1),
    else_=0,
)

RANK_ORDER = (Visit.emergency_flag.desc(), _PRIORITY_TIER.desc(), Visit.created_at.asc(), Visit.id.asc())

class VisitRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Visit:
        obj = Visit(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, visit_id: uuid.UUID) -> Visit | None:
        q = select(Visit).where(Visit.id == visit_id).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def transition(self, visit_id: uuid.UUID, expected: Iterable[str], *, now: datetime | None = None, **values) -> Visit | None:
        """Compare-and-swap: apply ``values`` only while the visit is in one of ``expected``.

        Returns the refreshed visit, or None if no row matched.
        """
        stmt = (
            update(Visit)
            .where(Visit.id == visit_id, Visit.queue_status.in_(tuple(expected)))
            .values(updated_at=now or utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        if res.rowcount == 0:
            return None
        return await self.get(visit_id)

    async def update_fields(self, visit_id: uuid.UUID, *, now: datetime | None = None, **values) -> Visit | None:
        stmt = (
            update(Visit)
            .where(Visit.id == visit_id)
            .values(updated_at=now or utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        if res.rowcount == 0:
            return None
        return await self.get(visit_id)

    async def escalate_waiting(self, student_id: str, *, now: datetime | None = None) -> Visit | None:
        stmt = (
            update(Visit)
            .where(Visit.student_id == student_id, Visit.queue_status == WAITING)
            .values(emergency_flag=True, priority="emergency", updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        if res.rowcount == 0:
            return None
        return await self.waiting_for(student_id)

    async def count(self, *, status: str | None = None, active_only: bool = False, emergency_only: bool = False, since: datetime | None = None) -> int:
        cond = []
        if status:
            cond.append(Visit.queue_status == status)
        if active_only:
            cond.append(Visit.queue_status.in_(ACTIVE_STATUSES))
        if emergency_only:
            cond.append(Visit.emergency_flag.is_(True))
        if since is not None:
            cond.append(Visit.created_at >= since)
        q = select(func.count()).select_from(Visit)
        if cond:
            q = q.where(and_(*cond))
        res = await self.session.execute(q)
        return res.scalar_one()

    async def count_by_status(self) -> dict[str, int]:
        q = select(Visit.queue_status, func.count()).group_by(Visit.queue_status)
        res = await self.session.execute(q)
        return {status: n for status, n in res.all()}

    async def average_estimated_wait(self) -> float | None:
        q = select(func.avg(Visit.estimated_wait_time)).where(Visit.queue_status == WAITING)
        res = await self.session.execute(q)
        return res.scalar_one()

    async def list_waiting(self) -> Sequence[Visit]:
        q = select(Visit).where(Visit.queue_status == WAITING).order_by(*RANK_ORDER)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_by_status(self, status: str | None = None) -> Sequence[Visit]:
        # unordered; callers rank in Python
        q = select(Visit)
        if status:
            q = q.where(Visit.queue_status == status)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_emergencies(self) -> Sequence[Visit]:
        q = select(Visit).where(
            Visit.emergency_flag.is_(True),
            Visit.queue_status.in_(ACTIVE_STATUSES),
        ).order_by(_PRIORITY_TIER.desc(), Visit.created_at.asc(), Visit.id.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def latest_active_for(self, student_id: str) -> Visit | None:
        q = select(Visit).where(
            Visit.student_id == student_id,
            Visit.queue_status.in_(ACTIVE_STATUSES),
        ).order_by(Visit.created_at.desc()).limit(1).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def active_for_identity(self, *, student_id: str, user_id: str | None = None) -> Visit | None:
        who = Visit.student_id == student_id
        if user_id:
            who = or_(who, Visit.user_id == user_id)
        q = select(Visit).where(
            who,
            Visit.queue_status.in_(ACTIVE_STATUSES),
        ).order_by(Visit.created_at.desc()).limit(1)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def waiting_for(self, student_id: str) -> Visit | None:
        q = select(Visit).where(
            Visit.student_id == student_id,
            Visit.queue_status == WAITING,
        ).order_by(Visit.created_at.desc()).limit(1).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def history_for(self, student_id: str, limit: int = 10) -> Sequence[Visit]:
        q = select(Visit).where(
            Visit.student_id == student_id,
            Visit.queue_status == COMPLETED,
        ).order_by(Visit.created_at.desc()).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()
