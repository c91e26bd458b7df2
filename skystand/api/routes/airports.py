"""
skystand.api.routes.airports — Airport reference data
======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import Engine

from skystand.api.deps import get_activity_logger, get_current_admin, get_engine
from skystand.constants import AIRPORT_ICAO_RE, normalize_icao
from skystand.database.models import TargetType
from skystand.services import airport_service
from skystand.services.activity_logger import ActivityLogger, Created, Deleted, Updated

router = APIRouter(prefix="/airports", tags=["airports"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
def _airport_icao(value: str) -> str:
    code = normalize_icao(value)
    if not AIRPORT_ICAO_RE.match(code):
        raise ValueError("Le code ICAO d'un aéroport doit contenir exactement 4 lettres.")
    return code


class AirportCreate(BaseModel):
    icao: str
    name: str = Field(min_length=1, max_length=200)
    city: str | None = Field(None, max_length=120)
    country: str | None = Field(None, min_length=2, max_length=120)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    elevation: float | None = None
    timezone: str | None = Field(None, max_length=64)

    @field_validator("icao")
    @classmethod
    def _check_icao(cls, value: str) -> str:
        return _airport_icao(value)


class AirportUpdate(BaseModel):
    icao: str | None = None
    name: str | None = Field(None, min_length=1, max_length=200)
    city: str | None = Field(None, max_length=120)
    country: str | None = Field(None, min_length=2, max_length=120)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    elevation: float | None = None
    timezone: str | None = Field(None, max_length=64)

    @field_validator("icao")
    @classmethod
    def _check_icao(cls, value: str | None) -> str | None:
        return _airport_icao(value) if value is not None else None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_airports(
    page: str | None = None,
    limit: str | None = None,
    search: str | None = None,
    country: str | None = None,
    sort: str | None = None,
    engine: Engine = Depends(get_engine),
):
    """Airports with their parking count."""
    return airport_service.list_airports(
        engine, search=search, country=country, sort=sort, page=page, limit=limit,
    )


@router.get("/icao/{icao}")
def get_airport_by_icao(icao: str, engine: Engine = Depends(get_engine)):
    return airport_service.get_airport(engine, icao=icao)


@router.get("/{airport_id}")
def get_airport(airport_id: int, engine: Engine = Depends(get_engine)):
    return airport_service.get_airport(engine, airport_id=airport_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_airport(
    body: AirportCreate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    airport = airport_service.create_airport(engine, body.model_dump(), actor_id=admin["id"])
    audit.emit(background, Created(
        actor_id=admin["id"], target_type=TargetType.AIRPORT, target_id=airport["id"],
        snapshot={"icao": airport["icao"], "name": airport["name"]},
    ))
    return airport


@router.put("/{airport_id}")
def update_airport(
    airport_id: int,
    body: AirportUpdate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    airport, diff = airport_service.update_airport(
        engine, airport_id, body.model_dump(exclude_unset=True), actor_id=admin["id"],
    )
    if diff:
        audit.emit(background, Updated(
            actor_id=admin["id"], target_type=TargetType.AIRPORT, target_id=airport_id,
            changes=diff,
        ))
    return airport


@router.delete("/{airport_id}")
def delete_airport(
    airport_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    snapshot = airport_service.delete_airport(engine, airport_id)
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.AIRPORT, target_id=airport_id,
        snapshot={"icao": snapshot["icao"], "name": snapshot["name"]},
    ))
    return {"message": f"Aéroport {snapshot['icao']} supprimé avec succès.", "id": airport_id}
