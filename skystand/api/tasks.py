"""
skystand.api.tasks — Periodic Background Tasks
===============================================

Scheduled jobs started from the API lifespan:

- **Command log retention** — once a day at ``retention_hour_utc``,
  removes command logs older than ``log_retention_days`` (default 30).

Tasks run inside the API process to keep the deployment simple.  The
purge goes through ``run_db()`` so requests keep being served while it
deletes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine

from skystand.config import SkystandConfig
from skystand.database.engine import run_db
from skystand.services.retention_service import run_retention_cleanup

logger = logging.getLogger(__name__)


def seconds_until(hour_utc: int, now: datetime | None = None) -> float:
    """Seconds from *now* to the next ``hour_utc:00`` UTC."""
    now = now or datetime.now(UTC)
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def retention_loop(engine: Engine, cfg: SkystandConfig) -> None:
    """Purge old command logs every day until cancelled."""
    while True:
        await asyncio.sleep(seconds_until(cfg.retention_hour_utc))
        try:
            result = await run_db(run_retention_cleanup, engine, cfg.log_retention_days)
            logger.info(
                "Scheduled retention removed %d command logs",
                result["deleted"], extra={"task": "retention"},
            )
        except Exception:
            logger.exception("Scheduled retention cleanup failed", extra={"task": "retention"})


def start_retention_task(engine: Engine, cfg: SkystandConfig) -> asyncio.Task:
    logger.info(
        "Command log retention scheduled daily at %02d:00 UTC (keeping %d days)",
        cfg.retention_hour_utc, cfg.log_retention_days,
    )
    return asyncio.create_task(retention_loop(engine, cfg), name="command-log-retention")
