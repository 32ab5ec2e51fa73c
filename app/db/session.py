from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Keyword arguments for create_async_engine, depending on the database backend."""
    options: Dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        # aiosqlite runs the connection on a worker thread
        options["connect_args"] = {"check_same_thread": False}
    else:
        # pool_pre_ping: check connection is alive before use (server may close idle connections).
        # pool_recycle: discard connections after this many seconds.
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 300
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
