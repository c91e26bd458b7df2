"""
skystand.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users             — Dashboard accounts (bcrypt password hash, role list)
- airports          — Reference airports keyed by 4-letter ICAO
- airlines          — Reference airlines keyed by 3-letter ICAO, optional logo
- parkings          — One stand/gate assignment per (airline, airport) pair
- activity_logs     — Append-only audit trail of every admin mutation
- command_logs      — Discord bot command usage (written by the bot)
- discord_feedback  — Stand information submitted from Discord

ICAO references from ``parkings`` to ``airports`` / ``airlines`` are
plain strings, not foreign keys: parkings may name an airport or airline
before its reference record exists.  Deleting a referenced airport or
airline is blocked at the service layer instead.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON anywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Skystand ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AuditAction(enum.StrEnum):
    """Closed set of actions recorded in ``activity_logs``."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BULK_CREATE = "BULK_CREATE"
    BULK_DELETE = "BULK_DELETE"
    UPDATE_MAP = "UPDATE_MAP"
    UPDATE_LOGO = "UPDATE_LOGO"
    VALIDATE_USER = "VALIDATE_USER"
    CHANGE_ROLE = "CHANGE_ROLE"
    DEACTIVATE_USER = "DEACTIVATE_USER"
    CLEAN_LOGS = "CLEAN_LOGS"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"


class TargetType(enum.StrEnum):
    """Closed set of entity kinds an audit entry can point at."""
    PARKING = "Parking"
    AIRPORT = "Airport"
    AIRLINE = "Airline"
    USER = "User"
    DISCORD_LOG = "DiscordLog"
    DISCORD_FEEDBACK = "DiscordFeedback"
    ACTIVITY_LOG = "ActivityLog"
    AUTH = "Auth"
    SYSTEM = "System"


class FeedbackStatus(enum.StrEnum):
    NEW = "NEW"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    """VARCHAR-backed enum column that rejects values outside *enum_cls*."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda cls: [member.value for member in cls],
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    roles: Mapped[list] = mapped_column(JSONType, nullable=False, default=lambda: ["user"])
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------
class Airport(Base):
    __tablename__ = "airports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    icao: Mapped[str] = mapped_column(String(4), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    country: Mapped[str | None] = mapped_column(String(120), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    elevation: Mapped[float | None] = mapped_column(Float, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Airport {self.icao}>"


class Airline(Base):
    __tablename__ = "airlines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    icao: Mapped[str] = mapped_column(String(3), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    callsign: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str] = mapped_column(String(120), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    logo_public_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Airline {self.icao}>"


# ---------------------------------------------------------------------------
# Parkings — one row per (airline, airport)
# ---------------------------------------------------------------------------
class Parking(Base):
    __tablename__ = "parkings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    airline: Mapped[str] = mapped_column(String(5), nullable=False)
    airport: Mapped[str] = mapped_column(String(4), nullable=False)
    gate_terminal: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    gate_porte: Mapped[str] = mapped_column(Text, nullable=False, default="")
    map_has_map: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    map_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    map_source: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("airline", "airport", name="uq_parkings_airline_airport"),
        Index("ix_parkings_airport", "airport"),
        Index("ix_parkings_airline", "airline"),
    )

    def __repr__(self) -> str:
        return f"<Parking id={self.id} {self.airline}@{self.airport}>"


# ---------------------------------------------------------------------------
# ActivityLog — append-only audit trail
# ---------------------------------------------------------------------------
class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[AuditAction] = mapped_column(_enum_column(AuditAction), nullable=False)
    target_type: Mapped[TargetType] = mapped_column(_enum_column(TargetType), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_activity_logs_timestamp", "timestamp"),
        Index("ix_activity_logs_user_time", "user_id", "timestamp"),
        Index("ix_activity_logs_target", "target_type", "target_id"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} {self.action} {self.target_type}:{self.target_id}>"


# ---------------------------------------------------------------------------
# CommandLog — Discord bot usage, written by the bot
# ---------------------------------------------------------------------------
class CommandLog(Base):
    __tablename__ = "command_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    command: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    user_tag: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_nickname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guild_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    guild_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    airport: Mapped[str | None] = mapped_column(String(4), nullable=True)
    airline: Mapped[str | None] = mapped_column(String(5), nullable=True)
    found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parkings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    acars_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acars_network: Mapped[str | None] = mapped_column(String(50), nullable=True)
    acars_callsign: Mapped[str | None] = mapped_column(String(20), nullable=True)
    acars_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acars_response_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    acars_timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_command_logs_timestamp", "timestamp"),
        Index("ix_command_logs_user", "user_id"),
    )


# ---------------------------------------------------------------------------
# DiscordFeedback — stand information submitted through the bot
# ---------------------------------------------------------------------------
class DiscordFeedback(Base):
    __tablename__ = "discord_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feedback_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    has_information: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    airport: Mapped[str | None] = mapped_column(String(4), nullable=True)
    airline: Mapped[str | None] = mapped_column(String(5), nullable=True)
    message_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[FeedbackStatus] = mapped_column(
        _enum_column(FeedbackStatus), nullable=False, default=FeedbackStatus.NEW
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_discord_feedback_status_time", "status", "timestamp"),
    )
