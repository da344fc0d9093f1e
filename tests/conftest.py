import os

# configure before anything imports clinic_queue.core.config
os.environ["ENV"] = "test"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///:memory:"
os.environ["EVENT_BUS_PROVIDER"] = "noop"

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from clinic_queue.core.base import Base
from clinic_queue.core.clock import get_clock
from clinic_queue.core.db import get_session
from clinic_queue.core.config import settings
from clinic_queue.core.security import Principal
from clinic_queue.main import app
import clinic_queue.modules.visits.models  # noqa: F401
import clinic_queue.modules.sessions.models  # noqa: F401
import clinic_queue.modules.events.outbox  # noqa: F401


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def client(session_factory, clock):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_clock] = lambda: clock
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def bearer(claims: dict) -> dict:
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
    return {"Authorization": f"Bearer {token}"}


def make_staff(name: str, role: str = "nurse") -> tuple[Principal, dict]:
    user_id = uuid.uuid4()
    principal = Principal(user_id=user_id, name=name, roles=[role])
    return principal, bearer({"sub": str(user_id), "name": name, "roles": [role]})


@pytest.fixture
def nurse():
    return make_staff("Nurse Joy")


@pytest.fixture
def other_nurse():
    return make_staff("Nurse Ratched")


@pytest.fixture
def student_auth():
    def headers(student_id: str, name: str = "Signed In Student") -> dict:
        return bearer({"sub": str(uuid.uuid4()), "name": name, "student_id": student_id, "roles": ["student"]})
    return headers
