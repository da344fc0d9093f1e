from datetime import datetime
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.modules.sessions.models import GuestSession

class GuestSessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> GuestSession:
        obj = GuestSession(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_live(self, session_token: str, now: datetime) -> GuestSession | None:
        q = select(GuestSession).where(
            GuestSession.session_token == session_token,
            GuestSession.expires_at > now,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def purge_expired(self, now: datetime) -> int:
        res = await self.session.execute(delete(GuestSession).where(GuestSession.expires_at <= now))
        return res.rowcount
