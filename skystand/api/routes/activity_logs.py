"""
skystand.api.routes.activity_logs — Audit trail browser (admin)
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import Engine

from skystand.api.deps import get_activity_logger, get_current_admin, get_engine
from skystand.database.models import TargetType
from skystand.services import activity_logger as audit_log
from skystand.services.activity_logger import ActivityLogger, Deleted

router = APIRouter(prefix="/activity-logs", tags=["activity-logs"])


@router.get("")
def list_activity_logs(
    user_id: int | None = Query(None, alias="userId"),
    action: str | None = None,
    target_type: str | None = Query(None, alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    page: str | None = None,
    limit: str | None = None,
    sort: str | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return audit_log.list_activity_logs(
        engine,
        user_id=user_id,
        action=action,
        target_type=target_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort=sort,
    )


@router.get("/{log_id}")
def get_activity_log(
    log_id: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return audit_log.get_activity_log(engine, log_id)


@router.delete("/{log_id}")
def delete_activity_log(
    log_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    snapshot = audit_log.delete_activity_log(engine, log_id)
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.ACTIVITY_LOG, target_id=log_id,
        snapshot={"action": snapshot["action"], "targetType": snapshot["targetType"],
                  "targetId": snapshot["targetId"], "timestamp": snapshot["timestamp"]},
    ))
    return {"message": "Entrée du journal supprimée avec succès.", "id": log_id}
