"""
skystand.database.engine — Database Connection & Async Helper
==============================================================

FastAPI handlers run on an ``asyncio`` event loop while SQLAlchemy +
psycopg2 is synchronous.  Handlers that also talk to the CDN are
``async`` and push their database work onto a worker thread with
:func:`run_db`; plain ``def`` handlers are already run in Starlette's
thread pool and call the sync services directly.

Usage::

    from skystand.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()
    init_db(engine)                      # dev/test only; production uses alembic

    # Inside an async route:
    parking = await run_db(parking_service.get_parking, engine, parking_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from skystand.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Return a pooled :class:`Engine` for ``DATABASE_URL``.

    Raises
    ------
    RuntimeError
        When ``DATABASE_URL`` is empty or unset.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is missing; set it in the environment or in .env "
            "(see .env.example)."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,      # seconds to wait for a free connection
        pool_recycle=3600,
    )
    logger.info("Connected engine to %s/%s", engine.url.host, engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`skystand.database.models`.

    Production schemas are managed by Alembic (``alembic upgrade head``);
    this is for dev/test databases where migrations have not run.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema ensured (%d tables).", len(Base.metadata.tables))


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay readable after the block (``expire_on_commit=False``) so
    services can serialize them once the transaction is closed.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking service call (*func*) on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
