"""
skystand.api.routes.discord_logs — Bot command logs & usage stats (admin)
==========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy import Engine

from skystand.api.deps import get_activity_logger, get_current_admin, get_engine
from skystand.database.models import TargetType
from skystand.services import command_log_service, retention_service
from skystand.services.activity_logger import ActivityLogger, Deleted, LogsCleaned

router = APIRouter(prefix="/discord-logs", tags=["discord-logs"])


@router.get("")
def list_logs(
    search: str | None = None,
    period: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return command_log_service.list_command_logs(
        engine, search=search, period=period, page=page, limit=limit,
    )


@router.get("/oldest")
def oldest_log(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return command_log_service.oldest_command_log(engine)


@router.get("/stats")
def stats(
    period: str | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    """Usage statistics over ``period`` days (default 30, ``all`` for everything)."""
    days = command_log_service.resolve_period(period, command_log_service.DEFAULT_STATS_DAYS)
    return command_log_service.command_stats(engine, days)


@router.post("/stats/reset")
def reset_stats(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    """Recompute statistics over the whole history."""
    return {
        "message": "Statistiques recalculées avec succès (basées sur les logs actuels).",
        "stats": command_log_service.command_stats(engine, None),
    }


@router.post("/clean")
def clean_logs(
    background: BackgroundTasks,
    days: str | None = None,
    body: dict | None = Body(None),
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Delete logs older than midnight ``days`` days ago (query or body, default 30)."""
    raw_days = days if days is not None else (body or {}).get("days")
    days_kept = retention_service.parse_days(raw_days)
    result = retention_service.run_retention_cleanup(engine, days_kept)
    if result["deleted"] > 0:
        audit.emit(background, LogsCleaned(
            actor_id=admin["id"], target_type=TargetType.DISCORD_LOG,
            deleted_count=result["deleted"], days_kept=days_kept, cutoff=result["cutoff"],
        ))
    return {
        "message": f"{result['deleted']} log(s) de plus de {days_kept} jours supprimé(s).",
        "deletedCount": result["deleted"],
        "daysKept": days_kept,
    }


@router.delete("/{log_id}")
def delete_log(
    log_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    snapshot = command_log_service.delete_command_log(engine, log_id)
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.DISCORD_LOG, target_id=log_id,
        snapshot={"command": snapshot["command"], "timestamp": snapshot["timestamp"]},
    ))
    return {"message": "Log supprimé avec succès.", "id": log_id}
