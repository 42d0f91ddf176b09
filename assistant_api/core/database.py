from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from assistant_api.core.config import Settings, settings


def engine_options(config: Settings) -> dict:
    options = {"echo": config.DB_ECHO}
    # A file database has no server side connection to go stale
    if not config.uses_sqlite:
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings))

# Rows returned by the gateway are read after commit, keep them loaded
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


# Request scoped session for the endpoints and the gateway
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


class Base(DeclarativeBase):
    pass
