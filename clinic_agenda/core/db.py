from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Booking commits run on their own isolation level; everything else uses the driver default.
TxSessionLocal = async_sessionmaker(
    engine.execution_options(isolation_level=settings.COMMIT_ISOLATION_LEVEL),
    expire_on_commit=False,
    class_=AsyncSession,
)

async def get_session():
    async with SessionLocal() as session:
        yield session

def load_models():
    # register every mapped table on Base.metadata
    from clinic_agenda.modules.directory import models as _directory  # noqa: F401
    from clinic_agenda.modules.operating_hours import models as _hours  # noqa: F401
    from clinic_agenda.modules.appointments import models as _appointments  # noqa: F401
    from clinic_agenda.modules.events import outbox as _outbox  # noqa: F401

async def init_models():
    ## In dev-only "create_all" mode create tables directly; otherwise migrations own the schema.
    if settings.DB_MANAGE == "create_all":
        load_models()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
