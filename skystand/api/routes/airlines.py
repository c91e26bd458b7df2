"""
skystand.api.routes.airlines — Airline reference data & logos
==============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import Engine

from skystand.api.deps import (
    get_activity_logger,
    get_asset_store,
    get_config,
    get_current_admin,
    get_engine,
)
from skystand.config import SkystandConfig
from skystand.constants import AIRLINE_ICAO_RE, normalize_icao
from skystand.database.engine import run_db
from skystand.database.models import TargetType
from skystand.services import airline_service
from skystand.services.activity_logger import (
    ActivityLogger,
    Created,
    Deleted,
    LogoUpdated,
    Updated,
)
from skystand.services.asset_lifecycle import discard_asset, replace_asset
from skystand.services.asset_store import AssetStore, validate_image, versioned_public_id

router = APIRouter(prefix="/airlines", tags=["airlines"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AirlineCreate(BaseModel):
    icao: str
    name: str = Field(min_length=1, max_length=200)
    callsign: str | None = Field(None, max_length=100)
    country: str = Field(min_length=2, max_length=120)

    @field_validator("icao")
    @classmethod
    def _check_icao(cls, value: str) -> str:
        code = normalize_icao(value)
        if not AIRLINE_ICAO_RE.match(code):
            raise ValueError("Le code ICAO d'une compagnie doit contenir exactement 3 lettres.")
        return code


class AirlineUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    callsign: str | None = Field(None, max_length=100)
    country: str | None = Field(None, min_length=2, max_length=120)
    # "" removes the current logo
    logoUrl: str | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_airlines(
    page: str | None = None,
    limit: str | None = None,
    search: str | None = None,
    country: str | None = None,
    sort: str | None = None,
    engine: Engine = Depends(get_engine),
):
    return airline_service.list_airlines(
        engine, search=search, country=country, sort=sort, page=page, limit=limit,
    )


@router.get("/managed")
def managed_airlines(engine: Engine = Depends(get_engine)):
    """Airlines present in parkings, and parking ICAOs lacking an airline record."""
    return airline_service.managed_airlines(engine)


@router.get("/{airline_id}")
def get_airline(airline_id: int, engine: Engine = Depends(get_engine)):
    return airline_service.get_airline(engine, airline_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_airline(
    body: AirlineCreate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    airline = airline_service.create_airline(engine, body.model_dump(), actor_id=admin["id"])
    audit.emit(background, Created(
        actor_id=admin["id"], target_type=TargetType.AIRLINE, target_id=airline["id"],
        snapshot={"icao": airline["icao"], "name": airline["name"]},
    ))
    return airline


@router.put("/{airline_id}")
async def update_airline(
    airline_id: int,
    body: AirlineUpdate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    airline, diff, removed_logo = await run_db(
        airline_service.update_airline, engine, airline_id,
        body.model_dump(exclude_unset=True), actor_id=admin["id"],
    )
    await discard_asset(store, removed_logo)
    if diff:
        audit.emit(background, Updated(
            actor_id=admin["id"], target_type=TargetType.AIRLINE, target_id=airline_id,
            changes=diff,
        ))
    return airline


@router.put("/{airline_id}/logo")
async def update_airline_logo(
    airline_id: int,
    background: BackgroundTasks,
    logo_file: UploadFile = File(..., alias="logoFile"),
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    cfg: SkystandConfig = Depends(get_config),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Upload a new logo; the previous one is deleted once the row is saved."""
    current = await run_db(airline_service.get_airline, engine, airline_id)
    content = await logo_file.read()
    validate_image(
        logo_file.filename, content, logo_file.content_type,
        max_bytes=cfg.max_upload_mb * 1024 * 1024, field="logoFile",
    )
    airline, previous = await replace_asset(
        store,
        content=content,
        public_id=versioned_public_id(cfg.logo_folder, f"airline_{airline_id}"),
        commit=lambda stored: run_db(
            airline_service.set_airline_logo, engine, airline_id,
            url=stored.url, public_id=stored.public_id, actor_id=admin["id"],
        ),
        previous_public_id=airline_service.logo_public_id(current),
    )
    audit.emit(background, LogoUpdated(
        actor_id=admin["id"], target_type=TargetType.AIRLINE, target_id=airline_id,
        previous_url=previous["logoUrl"], new_url=airline["logoUrl"],
    ))
    return airline


@router.delete("/{airline_id}")
async def delete_airline(
    airline_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Delete an unreferenced airline, then its logo (best effort)."""
    snapshot = await run_db(airline_service.delete_airline, engine, airline_id)
    await discard_asset(store, airline_service.logo_public_id(snapshot))
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.AIRLINE, target_id=airline_id,
        snapshot={"icao": snapshot["icao"], "name": snapshot["name"]},
    ))
    return {"message": f"Compagnie {snapshot['icao']} supprimée avec succès.", "id": airline_id}
