"""
Document Gateway: Database Engines
===================================

What:  Async SQLAlchemy engines for the primary store and the optional read
       replica, the declarative base, and shutdown disposal.
Who:   The SQL document store builds its session factories on these engines;
       Alembic reads `Base.metadata`.
When:  Engines are created at module import; connections are opened lazily.

Connection Pooling:
    pool_size / max_overflow come from settings (20 + 10 by default) and are
    applied to each engine separately. pool_pre_ping catches connections
    killed by a database restart; pool_recycle retires them after an hour.

Replica:
    When REPLICA_DATABASE_URL is empty, `replica_engine` IS `engine`, so
    replica reads simply hit the primary. Callers never need to branch.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from docgateway.config import settings


def _engine_options() -> Dict[str, Any]:
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
        # SQL echo only when debugging; it is very noisy otherwise
        "echo": settings.log_level == "DEBUG",
    }


engine: AsyncEngine = create_async_engine(settings.database_url, **_engine_options())

replica_engine: AsyncEngine = (
    create_async_engine(settings.replica_database_url, **_engine_options())
    if settings.has_replica
    else engine
)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object so Alembic sees every table.
    """
    pass


async def dispose_engine() -> None:
    """
    Closes every pooled connection on both engines.

    Called from the lifespan handler on shutdown.
    """
    await engine.dispose()
    if replica_engine is not engine:
        await replica_engine.dispose()
