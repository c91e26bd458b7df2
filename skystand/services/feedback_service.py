"""
skystand.services.feedback_service — Stand information sent from Discord
=========================================================================

The bot posts one feedback per Discord interaction.  When ``notes`` holds
a JSON object (the bot's modal form), its ``stands`` / ``terminal`` /
``additionalInfo`` / ``email`` keys are copied into ``parsed_details``.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError

from skystand.constants import FEEDBACK_PAGE_SIZE, normalize_icao
from skystand.database.engine import get_session
from skystand.database.models import DiscordFeedback, FeedbackStatus
from skystand.errors import ConflictError, NotFoundError
from skystand.services.common import apply_changes, build_page, clamp_page, day_key, iso

logger = logging.getLogger(__name__)

DETAIL_KEYS = ("stands", "terminal", "additionalInfo", "email")


def parse_notes(notes: str | None) -> dict | None:
    """Extract structured details from JSON-object notes, else ``None``."""
    text = (notes or "").strip()
    if not (text.startswith("{") and text.endswith("}")):
        return None
    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Feedback notes look like JSON but do not parse; keeping raw text")
        return None
    if not isinstance(raw, dict):
        return None
    return {key: str(raw.get(key) or "") for key in DETAIL_KEYS}


def display_name(f: DiscordFeedback) -> str:
    """``"AFR à LFPG (T2)"`` style label for dashboards."""
    name = ""
    if f.airline:
        name += f"{f.airline} "
    if f.airport:
        name += f"à {f.airport}"
    terminal = (f.parsed_details or {}).get("terminal")
    if terminal:
        name += f" ({terminal})"
    return name.strip() or "Parking inconnu"


def serialize_feedback(f: DiscordFeedback) -> dict:
    return {
        "id": f.id,
        "feedbackId": f.feedback_id,
        "timestamp": iso(f.timestamp),
        "userId": f.user_id,
        "username": f.username,
        "hasInformation": f.has_information,
        "airport": f.airport,
        "airline": f.airline,
        "messageId": f.message_id,
        "channelId": f.channel_id,
        "status": str(f.status),
        "notes": f.notes,
        "parsedDetails": f.parsed_details,
        "adminNotes": f.admin_notes,
        "assignedTo": f.assigned_to,
        "completedAt": iso(f.completed_at),
        "displayName": display_name(f),
        "createdAt": iso(f.created_at),
        "updatedAt": iso(f.updated_at),
    }


# ---------------------------------------------------------------------------
# Ingestion (bot)
# ---------------------------------------------------------------------------
def create_feedback(engine: Engine, data: dict) -> dict:
    """Store a feedback posted by the bot.  Duplicate ids raise 409."""
    conflict = ConflictError("Ce feedback existe déjà.", status_code=409)
    notes = data.get("notes")
    feedback = DiscordFeedback(
        feedback_id=data["id"],
        timestamp=data.get("timestamp") or datetime.now(UTC),
        user_id=data["userId"],
        username=data.get("username"),
        has_information=bool(data.get("hasInformation")),
        airport=normalize_icao(data.get("airport")) or None,
        airline=normalize_icao(data.get("airline")) or None,
        message_id=data.get("messageId"),
        channel_id=data.get("channelId"),
        status=data.get("status") or FeedbackStatus.NEW,
        notes=notes,
        parsed_details=parse_notes(notes),
    )
    try:
        with get_session(engine) as session:
            taken = session.scalar(
                select(DiscordFeedback.id).where(DiscordFeedback.feedback_id == feedback.feedback_id)
            )
            if taken is not None:
                raise conflict
            session.add(feedback)
            session.flush()
            logger.info("Received Discord feedback %s", feedback.feedback_id)
            return serialize_feedback(feedback)
    except IntegrityError:
        raise conflict


# ---------------------------------------------------------------------------
# Admin queries
# ---------------------------------------------------------------------------
def list_feedback(
    engine: Engine,
    *,
    status: FeedbackStatus | None = None,
    has_information: bool | None = None,
    airport: str | None = None,
    airline: str | None = None,
    sort: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> dict:
    request = clamp_page(page, limit, default_limit=FEEDBACK_PAGE_SIZE)
    conditions = []
    if status is not None:
        conditions.append(DiscordFeedback.status == status)
    if has_information is not None:
        conditions.append(DiscordFeedback.has_information.is_(has_information))
    if airport:
        conditions.append(DiscordFeedback.airport == normalize_icao(airport))
    if airline:
        conditions.append(DiscordFeedback.airline == normalize_icao(airline))

    order = DiscordFeedback.timestamp.asc() if sort == "timestamp" else DiscordFeedback.timestamp.desc()
    if sort not in (None, "timestamp", "-timestamp"):
        logger.warning("Unknown feedback sort key %r, using -timestamp", sort)

    with get_session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(DiscordFeedback).where(*conditions)
        ) or 0
        rows = session.scalars(
            select(DiscordFeedback)
            .where(*conditions)
            .order_by(order, DiscordFeedback.id.desc())
            .offset(request.offset)
            .limit(request.limit)
        ).all()
        docs = [serialize_feedback(f) for f in rows]
    return build_page(docs, total, request)


def get_feedback(engine: Engine, feedback_pk: int) -> dict:
    with get_session(engine) as session:
        feedback = session.get(DiscordFeedback, feedback_pk)
        if feedback is None:
            raise NotFoundError("Feedback non trouvé.")
        return serialize_feedback(feedback)


def feedback_stats(engine: Engine, *, top: int = 5, days: int = 7) -> dict:
    """Counts by status, top airports & airlines, and daily totals."""
    since = datetime.now(UTC) - timedelta(days=days)
    with get_session(engine) as session:
        by_status = session.execute(
            select(DiscordFeedback.status, func.count())
            .group_by(DiscordFeedback.status)
            .order_by(func.count().desc())
        ).all()

        def _top(column):
            return session.execute(
                select(column, func.count().label("n"))
                .where(column.is_not(None), column != "")
                .group_by(column)
                .order_by(func.count().desc(), column.asc())
                .limit(top)
            ).all()

        by_airport = _top(DiscordFeedback.airport)
        by_airline = _top(DiscordFeedback.airline)

        day = func.date(DiscordFeedback.timestamp)
        daily = session.execute(
            select(day.label("day"), func.count())
            .where(DiscordFeedback.timestamp >= since)
            .group_by(day)
            .order_by(day)
        ).all()

    return {
        "byStatus": [{"status": str(status), "count": count} for status, count in by_status],
        "byAirport": [{"airport": code, "count": count} for code, count in by_airport],
        "byAirline": [{"airline": code, "count": count} for code, count in by_airline],
        "daily": [{"date": day_key(d), "count": count} for d, count in daily],
    }


# ---------------------------------------------------------------------------
# Admin mutations
# ---------------------------------------------------------------------------
def update_feedback(
    engine: Engine,
    feedback_pk: int,
    changes: dict,
    *,
    actor_id: int | None,
) -> tuple[dict, dict]:
    """Update status / notes / admin notes.  Returns ``(feedback, diff)``.

    Moving to ``COMPLETED`` stamps ``completed_at`` and assigns the
    feedback to the acting admin; leaving it clears the stamp.
    """
    with get_session(engine) as session:
        feedback = session.get(DiscordFeedback, feedback_pk)
        if feedback is None:
            raise NotFoundError("Feedback non trouvé.")

        values: dict[str, Any] = {}
        if changes.get("status") is not None:
            values["status"] = FeedbackStatus(changes["status"])
        if "notes" in changes:
            values["notes"] = changes["notes"]
            values["parsed_details"] = parse_notes(changes["notes"])
        if "adminNotes" in changes:
            values["admin_notes"] = changes["adminNotes"]

        diff = apply_changes(feedback, values, labels={
            "admin_notes": "adminNotes", "parsed_details": "parsedDetails",
        })
        if not diff:
            return serialize_feedback(feedback), {}

        if "status" in diff:
            if feedback.status == FeedbackStatus.COMPLETED:
                feedback.completed_at = datetime.now(UTC)
                feedback.assigned_to = actor_id
            else:
                feedback.completed_at = None
        session.flush()
        return serialize_feedback(feedback), diff


def delete_feedback(engine: Engine, feedback_pk: int) -> dict:
    with get_session(engine) as session:
        feedback = session.get(DiscordFeedback, feedback_pk)
        if feedback is None:
            raise NotFoundError("Feedback non trouvé.")
        snapshot = serialize_feedback(feedback)
        session.delete(feedback)
    return snapshot
