"""
skystand.services.command_log_service — Discord command usage logs
===================================================================

Read side of the ``command_logs`` table the bot writes to: a filtered
listing and the usage statistics shown on the dashboard.  Statistics are
recomputed from the raw rows on every call; nothing is cached or rolled up.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, case, distinct, func, or_, select

from skystand.constants import COMMAND_LOG_PAGE_SIZE
from skystand.database.engine import get_session
from skystand.database.models import CommandLog
from skystand.errors import NotFoundError
from skystand.services.common import build_page, clamp_page, day_key, iso

logger = logging.getLogger(__name__)

DEFAULT_STATS_DAYS = 30


def serialize_command_log(c: CommandLog) -> dict:
    return {
        "id": c.id,
        "command": c.command,
        "user": {"id": c.user_id, "tag": c.user_tag, "nickname": c.user_nickname},
        "guild": {"id": c.guild_id, "name": c.guild_name},
        "timestamp": iso(c.timestamp),
        "details": {
            "airport": c.airport,
            "airline": c.airline,
            "found": c.found,
            "parkingsCount": c.parkings_count,
            "responseTime": c.response_time,
            "acars": {
                "used": c.acars_used,
                "network": c.acars_network,
                "callsign": c.acars_callsign,
                "success": c.acars_success,
                "responseTime": c.acars_response_time,
                "timestamp": iso(c.acars_timestamp),
            },
        },
    }


def resolve_period(raw: str | None, default: int | None) -> int | None:
    """Days covered by *raw*: ``"all"`` → ``None`` (unbounded).

    Missing or invalid values fall back to *default*.
    """
    if raw is None or raw == "":
        return default
    if raw == "all":
        return None
    try:
        days = int(raw)
    except ValueError:
        days = 0
    if days <= 0:
        logger.warning("Invalid period %r, using %s", raw, default or "all")
        return default
    return days


def _since(days: int | None) -> datetime | None:
    return datetime.now(UTC) - timedelta(days=days) if days is not None else None


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
def list_command_logs(
    engine: Engine,
    *,
    search: str | None = None,
    period: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> dict:
    """Newest-first command logs, searchable by nickname, airport or airline."""
    request = clamp_page(page, limit, default_limit=COMMAND_LOG_PAGE_SIZE)
    conditions = []
    since = _since(resolve_period(period, None))
    if since is not None:
        conditions.append(CommandLog.timestamp >= since)
    term = (search or "").strip()
    if term:
        conditions.append(or_(
            CommandLog.user_nickname.icontains(term, autoescape=True),
            CommandLog.airport.icontains(term, autoescape=True),
            CommandLog.airline.icontains(term, autoescape=True),
        ))

    with get_session(engine) as session:
        total = session.scalar(select(func.count()).select_from(CommandLog).where(*conditions)) or 0
        rows = session.scalars(
            select(CommandLog)
            .where(*conditions)
            .order_by(CommandLog.timestamp.desc(), CommandLog.id.desc())
            .offset(request.offset)
            .limit(request.limit)
        ).all()
        docs = [serialize_command_log(c) for c in rows]
    return build_page(docs, total, request)


def delete_command_log(engine: Engine, log_id: int) -> dict:
    with get_session(engine) as session:
        row = session.get(CommandLog, log_id)
        if row is None:
            raise NotFoundError("Log non trouvé.")
        snapshot = serialize_command_log(row)
        session.delete(row)
    return snapshot


def oldest_command_log(engine: Engine) -> dict:
    now = datetime.now(UTC)
    with get_session(engine) as session:
        oldest = session.scalar(select(func.min(CommandLog.timestamp)))
    if oldest is None:
        return {"message": "Aucun log trouvé", "oldestLogTimestamp": None, "currentDate": now.isoformat()}
    if oldest.tzinfo is None:
        oldest = oldest.replace(tzinfo=UTC)
    days_ago = math.ceil(abs((now - oldest).total_seconds()) / 86400)
    return {
        "message": "Log le plus ancien trouvé",
        "oldestLogTimestamp": oldest.isoformat(),
        "daysAgo": days_ago,
        "currentDate": now.isoformat(),
    }


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
def _rate(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0


def _daily_usage(session, conditions: list, success_column, first_day: date) -> list[dict]:
    """``[{date, count, successRate}]`` from *first_day* to today, zero-filled."""
    day = func.date(CommandLog.timestamp)
    rows = session.execute(
        select(
            day.label("day"),
            func.count().label("n"),
            func.sum(case((success_column.is_(True), 1), else_=0)).label("ok"),
        )
        .where(*conditions)
        .group_by(day)
    ).all()
    by_day = {day_key(row.day): (row.n, row.ok or 0) for row in rows}

    usage = []
    current, today = first_day, datetime.now(UTC).date()
    while current <= today:
        count, ok = by_day.get(current.isoformat(), (0, 0))
        usage.append({"date": current.isoformat(), "count": count, "successRate": _rate(ok, count)})
        current += timedelta(days=1)
    return usage


def command_stats(engine: Engine, days: int | None = DEFAULT_STATS_DAYS) -> dict:
    """Usage statistics over the last *days* days (``None`` = all history)."""
    since = _since(days)
    window = [CommandLog.timestamp >= since] if since is not None else []
    acars_window = [*window, CommandLog.acars_used.is_(True)]

    with get_session(engine) as session:
        totals = session.execute(
            select(
                func.count().label("total"),
                func.sum(case((CommandLog.found.is_(True), 1), else_=0)).label("ok"),
                func.sum(CommandLog.response_time).label("response_sum"),
                func.count(distinct(CommandLog.user_id)).label("users"),
                func.count(distinct(CommandLog.airport)).label("airports"),
                func.count(distinct(CommandLog.airline)).label("airlines"),
            ).where(*window)
        ).one()
        acars = session.execute(
            select(
                func.count().label("used"),
                func.sum(case((CommandLog.acars_success.is_(True), 1), else_=0)).label("ok"),
                func.sum(CommandLog.acars_response_time).label("response_sum"),
            ).where(*acars_window)
        ).one()

        if since is not None:
            first_day = since.date()
        else:
            oldest = session.scalar(select(func.min(CommandLog.timestamp)))
            first_day = oldest.date() if oldest else datetime.now(UTC).date() - timedelta(days=DEFAULT_STATS_DAYS)

        usage_by_day = _daily_usage(session, window, CommandLog.found, first_day)
        acars_by_day = _daily_usage(session, acars_window, CommandLog.acars_success, first_day)

        def _top(column, *, where: list, limit: int):
            return session.execute(
                select(column, func.count().label("n"))
                .where(*where)
                .group_by(column)
                .order_by(func.count().desc(), column.asc())
                .limit(limit)
            ).all()

        top_airports = _top(CommandLog.airport, where=window, limit=10)
        top_airlines = _top(CommandLog.airline, where=window, limit=10)
        top_networks = _top(CommandLog.acars_network, where=acars_window, limit=5)

    total = totals.total or 0
    used = acars.used or 0
    return {
        "totalCommands": total,
        "successfulCommands": totals.ok or 0,
        "averageResponseTime": (totals.response_sum or 0) / total if total else 0,
        "uniqueUsers": totals.users or 0,
        "uniqueAirports": totals.airports or 0,
        "uniqueAirlines": totals.airlines or 0,
        "usageByDay": usage_by_day,
        "topAirports": [{"airport": code, "count": n} for code, n in top_airports],
        "topAirlines": [{"airline": code, "count": n} for code, n in top_airlines],
        "acarsStats": {
            "totalUsed": used,
            "successRate": _rate(acars.ok or 0, used),
            "averageResponseTime": (acars.response_sum or 0) / used if used else 0,
            "usageByDay": acars_by_day,
            "topNetworks": [{"network": net, "count": n} for net, n in top_networks],
        },
    }
