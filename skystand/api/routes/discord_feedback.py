"""
skystand.api.routes.discord_feedback — Feedback from the Discord bot
=====================================================================

``POST`` is called by the bot with the shared API key.  Everything else
is for admins.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from skystand.api.deps import (
    get_activity_logger,
    get_current_admin,
    get_engine,
    require_api_key,
)
from skystand.database.models import FeedbackStatus, TargetType
from skystand.services import feedback_service
from skystand.services.activity_logger import ActivityLogger, Deleted, Updated

router = APIRouter(prefix="/discord-feedback", tags=["discord-feedback"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class FeedbackCreate(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    userId: str = Field(min_length=1, max_length=32)
    timestamp: datetime | None = None
    username: str | None = Field(None, max_length=100)
    hasInformation: bool = False
    airport: str | None = Field(None, max_length=4)
    airline: str | None = Field(None, max_length=5)
    messageId: str | None = Field(None, max_length=32)
    channelId: str | None = Field(None, max_length=32)
    status: FeedbackStatus = FeedbackStatus.NEW
    notes: str | None = None


class FeedbackUpdate(BaseModel):
    status: FeedbackStatus | None = None
    notes: str | None = None
    adminNotes: str | None = None


class FeedbackStatusUpdate(BaseModel):
    status: FeedbackStatus
    adminNotes: str | None = None


# ---------------------------------------------------------------------------
# Bot ingestion
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_api_key)])
def create_feedback(body: FeedbackCreate, engine: Engine = Depends(get_engine)):
    feedback = feedback_service.create_feedback(engine, body.model_dump())
    return {
        "message": "Feedback enregistré avec succès.",
        "id": feedback["id"],
        "feedbackId": feedback["feedbackId"],
    }


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.get("")
def list_feedback(
    status_filter: FeedbackStatus | None = Query(None, alias="status"),
    has_information: bool | None = Query(None, alias="hasInformation"),
    airport: str | None = None,
    airline: str | None = None,
    sort: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return feedback_service.list_feedback(
        engine,
        status=status_filter,
        has_information=has_information,
        airport=airport,
        airline=airline,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/stats")
def feedback_stats(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return feedback_service.feedback_stats(engine)


@router.get("/{feedback_pk}")
def get_feedback(
    feedback_pk: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return feedback_service.get_feedback(engine, feedback_pk)


def _apply_update(engine, feedback_pk, changes, admin, audit, background) -> dict:
    feedback, diff = feedback_service.update_feedback(engine, feedback_pk, changes, actor_id=admin["id"])
    if diff:
        audit.emit(background, Updated(
            actor_id=admin["id"], target_type=TargetType.DISCORD_FEEDBACK, target_id=feedback_pk,
            changes=diff,
        ))
    return feedback


@router.patch("/{feedback_pk}")
def update_feedback(
    feedback_pk: int,
    body: FeedbackUpdate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    return _apply_update(engine, feedback_pk, body.model_dump(exclude_unset=True), admin, audit, background)


@router.patch("/{feedback_pk}/status")
def update_feedback_status(
    feedback_pk: int,
    body: FeedbackStatusUpdate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    return _apply_update(engine, feedback_pk, body.model_dump(exclude_unset=True), admin, audit, background)


@router.delete("/{feedback_pk}")
def delete_feedback(
    feedback_pk: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    snapshot = feedback_service.delete_feedback(engine, feedback_pk)
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.DISCORD_FEEDBACK, target_id=feedback_pk,
        snapshot={"feedbackId": snapshot["feedbackId"], "status": snapshot["status"]},
    ))
    return {"message": "Feedback supprimé avec succès.", "id": feedback_pk}
