import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.base import utcnow
from clinic_queue.core.config import settings
from clinic_queue.core.db import SessionLocal
from clinic_queue.core.errors import ValidationFailed
from clinic_queue.core.security import Principal, sign_guest_token, read_guest_token
from clinic_queue.modules.sessions.models import GuestSession
from clinic_queue.modules.sessions.repository import GuestSessionRepository
from clinic_queue.modules.sessions.schemas import GuestLoginIn, Identity, IdentityKind

logger = logging.getLogger(__name__)

def resolve_identity(
    principal: Principal | None,
    *,
    name: str | None = None,
    student_id: str | None = None,
    mobile: str | None = None,
    class_name: str | None = None,
    guest: GuestSession | None = None,
) -> Identity | None:
    """Pick the acting identity: signed-in user, then a direct submission, then a live guest session."""
    if principal is not None:
        return Identity(
            kind=IdentityKind.authenticated,
            name=principal.name,
            student_id=principal.student_id,
            mobile=principal.email,
            user_id=str(principal.user_id),
            class_name=principal.class_name,
        )
    if name and student_id:
        return Identity(
            kind=IdentityKind.direct_submission,
            name=name,
            student_id=student_id,
            mobile=mobile,
            class_name=class_name,
        )
    if guest is not None:
        return Identity(
            kind=IdentityKind.guest,
            name=guest.name,
            student_id=guest.student_id,
            mobile=guest.mobile,
        )
    return None

class GuestSessionService:
    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = utcnow):
        self.session = session
        self.repo = GuestSessionRepository(session)
        self.now = now

    async def login(self, payload: GuestLoginIn) -> tuple[GuestSession, str]:
        name = payload.name.strip()
        student_id = payload.student_id.strip()
        if not name or not student_id:
            raise ValidationFailed("Name and Student ID are required")
        expires_at = self.now() + timedelta(seconds=settings.GUEST_SESSION_TTL_SECONDS)
        obj = await self.repo.create(
            name=name,
            student_id=student_id,
            mobile=payload.mobile,
            session_token=secrets.token_hex(32),
            expires_at=expires_at,
        )
        await self.session.commit()
        logger.info("Guest session opened for student_id=%s until %s", student_id, expires_at.isoformat())
        return obj, sign_guest_token(obj.session_token)

    async def current(self, cookie_value: str | None) -> GuestSession | None:
        token = read_guest_token(cookie_value)
        if not token:
            return None
        return await self.repo.get_live(token, self.now())

    async def purge_expired(self) -> int:
        n = await self.repo.purge_expired(self.now())
        await self.session.commit()
        return n

# ---- Background hygiene ----

async def run_guest_session_purge(interval_seconds: float | None = None):
    interval = interval_seconds or settings.GUEST_PURGE_INTERVAL_SECONDS
    logger.info("Guest session purge started (every %ss)", interval)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    n = await GuestSessionService(session).purge_expired()
                    if n:
                        logger.debug("Purged %d expired guest sessions", n)
                except Exception:
                    logger.exception("Guest session purge failed")
                    await session.rollback()
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("Guest session purge cancelled; shutting down")
        raise
