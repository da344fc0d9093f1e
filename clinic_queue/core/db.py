from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.DATABASE_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models():
    ## In dev-only "create_all" mode build the schema here; otherwise migrations own it.
    if settings.DB_MANAGE == "create_all":
        # register every table on Base.metadata
        import clinic_queue.modules.visits.models  # noqa: F401
        import clinic_queue.modules.sessions.models  # noqa: F401
        import clinic_queue.modules.events.outbox  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
