# parkalert/db/session.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from parkalert.core.errors import StorageUnavailable
from parkalert.core.settings import get_settings
from parkalert.db.models import Base

log = logging.getLogger(__name__)

T = TypeVar("T")

# deadlock_detected, serialization_failure
RETRYABLE_SQLSTATES = frozenset({"40P01", "40001"})

# pytest or ENV=test/ci: no pooling, every session gets its own connection
_IS_TEST = bool(os.getenv("PYTEST_CURRENT_TEST")) or os.getenv("ENV") in {"test", "ci"}


def build_engine(url: str) -> AsyncEngine:
    opts: dict[str, Any] = {"echo": False}
    if _IS_TEST or url.startswith("sqlite"):
        opts["poolclass"] = NullPool
    else:
        opts["pool_pre_ping"] = True
    return create_async_engine(url, **opts)


_settings = get_settings()
engine = build_engine(_settings.DATABASE_URL)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(bind: Optional[AsyncEngine] = None, *, drop: bool = False) -> None:
    from parkalert.db import models  # noqa
    async with (bind or engine).begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def _sqlstate(e: DBAPIError) -> Optional[str]:
    orig = e.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


async def run_in_transaction(
    sessions: async_sessionmaker,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """
    Run ``fn(session, *args, **kwargs)`` inside a single transaction.

    Commits when fn returns, rolls back when it raises. Timeouts, lost
    connections and deadlock/serialization aborts surface as
    StorageUnavailable; domain errors and IntegrityError pass through untouched.
    """
    async def _work() -> T:
        async with sessions() as session:
            async with session.begin():
                return await fn(session, *args, **kwargs)

    try:
        return await asyncio.wait_for(_work(), timeout=timeout)
    except asyncio.TimeoutError as e:
        log.warning("[storage] operation %s timed out after %ss", getattr(fn, "__name__", fn), timeout)
        raise StorageUnavailable("storage timed out") from e
    except (OperationalError, InterfaceError) as e:
        log.warning("[storage] %s failed: %s", getattr(fn, "__name__", fn), e)
        raise StorageUnavailable("storage unavailable") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise StorageUnavailable("storage connection lost") from e
        if _sqlstate(e) in RETRYABLE_SQLSTATES:
            log.warning("[storage] %s aborted by the database (%s)", getattr(fn, "__name__", fn), _sqlstate(e))
            raise StorageUnavailable("storage contention, retry the request") from e
        raise
    except OSError as e:
        log.warning("[storage] connection error: %s", e)
        raise StorageUnavailable("storage unreachable") from e
