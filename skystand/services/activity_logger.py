"""
skystand.services.activity_logger — Audit trail writer & reader
================================================================

Every successful mutation produces exactly one :class:`AuditEvent`.
Events are a closed family of frozen dataclasses, one per action, each
carrying only the payload its action needs; :meth:`AuditEvent.details`
turns that payload into the JSON stored in ``activity_logs.details``.

Writes are **decoupled from the response**: routers hand the event to
:meth:`ActivityLogger.emit`, which schedules :meth:`ActivityLogger.record`
as a Starlette background task that runs after the response is sent.
``record`` never raises: failures are logged and counted, and the count
is reported by ``/api/health``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, time
from typing import Any, ClassVar

from fastapi import BackgroundTasks
from sqlalchemy import Engine, func, select

from skystand.constants import REFERENCE_PAGE_SIZE
from skystand.database.engine import get_session
from skystand.database.models import ActivityLog, AuditAction, TargetType, User
from skystand.errors import NotFoundError, ValidationError
from skystand.services.common import build_page, clamp_page, iso

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event family
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True, kw_only=True)
class AuditEvent:
    """Base of every audit event.  Never instantiated directly."""

    action: ClassVar[AuditAction]

    actor_id: int | None
    target_type: TargetType
    target_id: str | int | None = None

    def details(self) -> dict[str, Any] | None:
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class Created(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.CREATE
    snapshot: dict[str, Any]

    def details(self) -> dict[str, Any]:
        return {"created": self.snapshot}


@dataclass(frozen=True, slots=True, kw_only=True)
class Updated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.UPDATE
    changes: dict[str, dict[str, Any]]

    def details(self) -> dict[str, Any]:
        return {"changes": self.changes}


@dataclass(frozen=True, slots=True, kw_only=True)
class Deleted(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.DELETE
    snapshot: dict[str, Any] | None = None

    def details(self) -> dict[str, Any] | None:
        return {"deleted": self.snapshot} if self.snapshot is not None else None


@dataclass(frozen=True, slots=True, kw_only=True)
class BulkCreated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.BULK_CREATE
    inserted_ids: list[int] = field(default_factory=list)
    duplicates: int = 0

    def details(self) -> dict[str, Any]:
        return {
            "inserted": len(self.inserted_ids),
            "duplicates": self.duplicates,
            "ids": self.inserted_ids,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class BulkDeleted(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.BULK_DELETE
    deleted_ids: list[int] = field(default_factory=list)

    def details(self) -> dict[str, Any]:
        return {"deletedCount": len(self.deleted_ids), "ids": self.deleted_ids}


@dataclass(frozen=True, slots=True, kw_only=True)
class MapUpdated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.UPDATE_MAP
    previous_url: str | None
    new_url: str | None
    source: str | None

    def details(self) -> dict[str, Any]:
        return {"from": self.previous_url, "to": self.new_url, "source": self.source}


@dataclass(frozen=True, slots=True, kw_only=True)
class LogoUpdated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.UPDATE_LOGO
    previous_url: str | None
    new_url: str | None

    def details(self) -> dict[str, Any]:
        return {"from": self.previous_url, "to": self.new_url}


@dataclass(frozen=True, slots=True, kw_only=True)
class UserValidated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.VALIDATE_USER
    username: str
    roles: list[str]

    def details(self) -> dict[str, Any]:
        return {"username": self.username, "roles": self.roles}


@dataclass(frozen=True, slots=True, kw_only=True)
class RoleChanged(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.CHANGE_ROLE
    previous_roles: list[str]
    roles: list[str]

    def details(self) -> dict[str, Any]:
        return {"from": self.previous_roles, "to": self.roles}


@dataclass(frozen=True, slots=True, kw_only=True)
class UserDeactivated(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.DEACTIVATE_USER
    username: str

    def details(self) -> dict[str, Any]:
        return {"username": self.username}


@dataclass(frozen=True, slots=True, kw_only=True)
class LogsCleaned(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.CLEAN_LOGS
    deleted_count: int
    days_kept: int
    cutoff: datetime

    def details(self) -> dict[str, Any]:
        return {
            "deletedCount": self.deleted_count,
            "daysKept": self.days_kept,
            "cutoffDate": self.cutoff.isoformat(),
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class LoggedIn(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.LOGIN
    username: str

    def details(self) -> dict[str, Any]:
        return {"username": self.username}


@dataclass(frozen=True, slots=True, kw_only=True)
class LoggedOut(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.LOGOUT
    username: str

    def details(self) -> dict[str, Any]:
        return {"username": self.username}


@dataclass(frozen=True, slots=True, kw_only=True)
class Registered(AuditEvent):
    action: ClassVar[AuditAction] = AuditAction.REGISTER
    username: str
    self_service: bool = False

    def details(self) -> dict[str, Any]:
        return {"username": self.username, "selfService": self.self_service}


# ---------------------------------------------------------------------------
# Failure metric
# ---------------------------------------------------------------------------
_failure_lock = threading.Lock()
_failure_count = 0


def _count_failure() -> None:
    global _failure_count
    with _failure_lock:
        _failure_count += 1


def audit_failure_count() -> int:
    """Number of audit writes that failed since process start."""
    with _failure_lock:
        return _failure_count


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------
class ActivityLogger:
    """Persist :class:`AuditEvent` instances to ``activity_logs``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, event: AuditEvent) -> None:
        """Write *event* now.  Logs and counts failures, never raises."""
        try:
            with get_session(self._engine) as session:
                session.add(ActivityLog(
                    user_id=event.actor_id,
                    action=event.action,
                    target_type=event.target_type,
                    target_id=str(event.target_id) if event.target_id is not None else None,
                    details=event.details(),
                ))
        except Exception:
            _count_failure()
            logger.exception(
                "Failed to write activity log (%s %s:%s by %s)",
                event.action, event.target_type, event.target_id, event.actor_id,
            )

    def emit(self, background: BackgroundTasks, event: AuditEvent) -> None:
        """Queue *event* to be written after the response has been sent."""
        background.add_task(self.record, event)


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------
_SORT_COLUMNS = {
    "timestamp": ActivityLog.timestamp,
    "action": ActivityLog.action,
    "targetType": ActivityLog.target_type,
}


def _parse_day(raw: str, field_name: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(errors={field_name: [f"Date invalide : {raw!r}."]})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _enum_filter(enum_cls, raw: str, field_name: str):
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(errors={field_name: [f"Valeur inconnue {raw!r} (attendu : {allowed})."]})


def serialize_log(row: ActivityLog, username: str | None) -> dict:
    return {
        "id": row.id,
        "user": {"id": row.user_id, "username": username} if username is not None else None,
        "action": str(row.action),
        "targetType": str(row.target_type),
        "targetId": row.target_id,
        "timestamp": iso(row.timestamp),
        "details": row.details,
    }


def list_activity_logs(
    engine: Engine,
    *,
    user_id: int | None = None,
    action: str | None = None,
    target_type: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: Any = None,
    limit: Any = None,
    sort: str | None = None,
) -> dict:
    """Filtered, paginated audit entries, newest first by default.

    The author is attached through an outer join so entries written by a
    since-deleted user come back with ``user: null`` instead of vanishing.
    A date-only ``end_date`` includes the whole day.
    """
    request = clamp_page(page, limit, default_limit=REFERENCE_PAGE_SIZE)

    conditions = []
    if user_id is not None:
        conditions.append(ActivityLog.user_id == user_id)
    if action:
        conditions.append(ActivityLog.action == _enum_filter(AuditAction, action, "action"))
    if target_type:
        conditions.append(
            ActivityLog.target_type == _enum_filter(TargetType, target_type, "targetType")
        )
    if start_date:
        conditions.append(ActivityLog.timestamp >= _parse_day(start_date, "startDate"))
    if end_date:
        end = _parse_day(end_date, "endDate")
        if len(end_date) == 10:
            end = datetime.combine(end.date(), time.max, tzinfo=UTC)
        conditions.append(ActivityLog.timestamp <= end)

    sort_key = sort or "-timestamp"
    column = _SORT_COLUMNS.get(sort_key.lstrip("-"))
    if column is None:
        logger.warning("Unknown activity log sort key %r, using -timestamp", sort_key)
        column, sort_key = ActivityLog.timestamp, "-timestamp"
    order = column.desc() if sort_key.startswith("-") else column.asc()

    with get_session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(ActivityLog).where(*conditions)
        ) or 0
        rows = session.execute(
            select(ActivityLog, User.username)
            .outerjoin(User, User.id == ActivityLog.user_id)
            .where(*conditions)
            .order_by(order, ActivityLog.id.desc())
            .offset(request.offset)
            .limit(request.limit)
        ).all()

    return build_page([serialize_log(row, username) for row, username in rows], total, request)


def get_activity_log(engine: Engine, log_id: int) -> dict:
    with get_session(engine) as session:
        found = session.execute(
            select(ActivityLog, User.username)
            .outerjoin(User, User.id == ActivityLog.user_id)
            .where(ActivityLog.id == log_id)
        ).first()
    if found is None:
        raise NotFoundError("Entrée du journal introuvable.")
    return serialize_log(*found)


def delete_activity_log(engine: Engine, log_id: int) -> dict:
    """Remove one audit entry and return its last state."""
    with get_session(engine) as session:
        row = session.get(ActivityLog, log_id)
        if row is None:
            raise NotFoundError("Entrée du journal introuvable.")
        username = None
        if row.user_id is not None:
            username = session.scalar(select(User.username).where(User.id == row.user_id))
        snapshot = serialize_log(row, username)
        session.delete(row)
    return snapshot
