"""Initial schema: users, reference data, parkings, audit and bot tables

Revision ID: 3f1c9a7e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7e2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _authorship() -> list[sa.Column]:
    return [
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("last_updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
    ]


def upgrade() -> None:
    """Create every Skystand table."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(100), nullable=False),
        sa.Column("roles", postgresql.JSONB(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        *_timestamps(),
    )

    op.create_table(
        "airports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("icao", sa.String(4), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("city", sa.String(120)),
        sa.Column("country", sa.String(120)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("elevation", sa.Float()),
        sa.Column("timezone", sa.String(64)),
        *_authorship(),
        *_timestamps(),
    )

    op.create_table(
        "airlines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("icao", sa.String(3), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("callsign", sa.String(100)),
        sa.Column("country", sa.String(120), nullable=False),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("logo_public_id", sa.String(255)),
        *_authorship(),
        *_timestamps(),
    )

    op.create_table(
        "parkings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("airline", sa.String(5), nullable=False),
        sa.Column("airport", sa.String(4), nullable=False),
        sa.Column("gate_terminal", sa.String(200), nullable=False, server_default=""),
        sa.Column("gate_porte", sa.Text(), nullable=False, server_default=""),
        sa.Column("map_has_map", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("map_url", sa.String(500), nullable=False, server_default=""),
        sa.Column("map_source", sa.String(50), nullable=False, server_default=""),
        *_authorship(),
        *_timestamps(),
        sa.UniqueConstraint("airline", "airport", name="uq_parkings_airline_airport"),
    )
    op.create_index("ix_parkings_airport", "parkings", ["airport"])
    op.create_index("ix_parkings_airline", "parkings", ["airline"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("target_type", sa.String(32), nullable=False),
        sa.Column("target_id", sa.String(64)),
        sa.Column("details", postgresql.JSONB()),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_timestamp", "activity_logs", ["timestamp"])
    op.create_index("ix_activity_logs_user_time", "activity_logs", ["user_id", "timestamp"])
    op.create_index("ix_activity_logs_target", "activity_logs", ["target_type", "target_id"])

    op.create_table(
        "command_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("command", sa.String(50), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("user_tag", sa.String(100)),
        sa.Column("user_nickname", sa.String(100)),
        sa.Column("guild_id", sa.String(32)),
        sa.Column("guild_name", sa.String(100)),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("airport", sa.String(4)),
        sa.Column("airline", sa.String(5)),
        sa.Column("found", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("parkings_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("response_time", sa.Float()),
        sa.Column("acars_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acars_network", sa.String(50)),
        sa.Column("acars_callsign", sa.String(20)),
        sa.Column("acars_success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acars_response_time", sa.Float()),
        sa.Column("acars_timestamp", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_command_logs_timestamp", "command_logs", ["timestamp"])
    op.create_index("ix_command_logs_user", "command_logs", ["user_id"])

    op.create_table(
        "discord_feedback",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("feedback_id", sa.String(64), nullable=False, unique=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("username", sa.String(100)),
        sa.Column("has_information", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("airport", sa.String(4)),
        sa.Column("airline", sa.String(5)),
        sa.Column("message_id", sa.String(32)),
        sa.Column("channel_id", sa.String(32)),
        sa.Column("status", sa.String(32), nullable=False, server_default="NEW"),
        sa.Column("notes", sa.Text()),
        sa.Column("parsed_details", postgresql.JSONB()),
        sa.Column("admin_notes", sa.Text()),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index(
        "ix_discord_feedback_status_time", "discord_feedback", ["status", "timestamp"]
    )


def downgrade() -> None:
    """Drop every Skystand table."""
    op.drop_table("discord_feedback")
    op.drop_table("command_logs")
    op.drop_table("activity_logs")
    op.drop_table("parkings")
    op.drop_table("airlines")
    op.drop_table("airports")
    op.drop_table("users")
