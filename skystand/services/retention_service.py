"""
skystand.services.retention_service — Command log retention cleanup
====================================================================

Discord command logs are kept for ``log_retention_days`` (30 by default).
The purge runs once a day from :mod:`skystand.api.tasks` and on demand
from ``POST /api/discord-logs/clean``.

**Deletion is batched** to avoid locking the table for too long:
rows are removed in chunks of ``BATCH_SIZE`` so the bot can keep writing
while the purge runs.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta

from sqlalchemy import Engine, delete, select

from skystand.database.engine import get_session
from skystand.database.models import CommandLog

logger = logging.getLogger(__name__)

# How many rows to delete in each batch (avoids long-held row locks)
BATCH_SIZE = 5_000

DEFAULT_DAYS_KEPT = 30


def retention_cutoff(days_to_keep: int, now: datetime | None = None) -> datetime:
    """Midnight (UTC) *days_to_keep* days before *now*."""
    now = now or datetime.now(UTC)
    day = (now - timedelta(days=days_to_keep)).date()
    return datetime.combine(day, time.min, tzinfo=UTC)


def parse_days(raw: object, default: int = DEFAULT_DAYS_KEPT) -> int:
    """Positive integer from a query/body value, else *default*."""
    try:
        days = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        if raw not in (None, ""):
            logger.warning("Invalid retention days %r, using %d", raw, default)
        return default
    if days <= 0:
        logger.warning("Invalid retention days %r, using %d", raw, default)
        return default
    return days


def purge_command_logs(engine: Engine, cutoff: datetime) -> int:
    """Delete command logs older than *cutoff*.  Returns the row count."""
    deleted = 0
    while True:
        with get_session(engine) as session:
            ids = session.scalars(
                select(CommandLog.id)
                .where(CommandLog.timestamp < cutoff)
                .limit(BATCH_SIZE)
            ).all()
            if not ids:
                break
            result = session.execute(delete(CommandLog).where(CommandLog.id.in_(ids)))
            deleted += result.rowcount  # type: ignore[operator]
            logger.info(
                "Retention: deleted %d command_logs rows (total so far: %d)",
                result.rowcount, deleted,
            )
    return deleted


def run_retention_cleanup(engine: Engine, retention_days: int = DEFAULT_DAYS_KEPT) -> dict:
    """Purge logs older than midnight *retention_days* ago.

    Returns ``{"deleted": N, "days_kept": D, "cutoff": datetime}``.
    """
    cutoff = retention_cutoff(retention_days)
    deleted = purge_command_logs(engine, cutoff)
    logger.info(
        "Retention cleanup complete — %d command logs removed (retention_days=%d, cutoff=%s)",
        deleted, retention_days, cutoff.isoformat(),
    )
    return {"deleted": deleted, "days_kept": retention_days, "cutoff": cutoff}
