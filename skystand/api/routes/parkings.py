"""
skystand.api.routes.parkings — Parking listing & admin mutations
=================================================================

Reads are public.  Writes need the ``admin`` role and each successful
write emits one audit event.  Map images go through
:func:`skystand.services.asset_lifecycle.replace_asset`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
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
from skystand.constants import AIRPORT_ICAO_RE, MAP_SOURCE_CDN, MAP_SOURCE_EXTERNAL, normalize_icao
from skystand.database.engine import run_db
from skystand.database.models import TargetType
from skystand.services import parking_service
from skystand.services.activity_logger import (
    ActivityLogger,
    BulkCreated,
    BulkDeleted,
    Created,
    Deleted,
    MapUpdated,
    Updated,
)
from skystand.services.asset_lifecycle import discard_asset, remove_asset, replace_asset
from skystand.services.asset_store import (
    AssetStore,
    public_id_from_url,
    validate_image,
    versioned_public_id,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/parkings", tags=["parkings"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GateIn(BaseModel):
    terminal: str = Field("", max_length=200)
    porte: str = ""


class MapInfoIn(BaseModel):
    hasMap: bool = False
    mapUrl: str = Field("", max_length=500)
    source: str = Field("", max_length=50)


class ParkingCreate(BaseModel):
    airline: str
    airport: str
    gate: GateIn = Field(default_factory=GateIn)
    mapInfo: MapInfoIn = Field(default_factory=MapInfoIn)

    @field_validator("airline")
    @classmethod
    def _airline_code(cls, value: str) -> str:
        code = normalize_icao(value)
        if not (3 <= len(code) <= 5 and code.isalnum()):
            raise ValueError("Le code compagnie doit contenir 3 à 5 caractères alphanumériques.")
        return code

    @field_validator("airport")
    @classmethod
    def _airport_code(cls, value: str) -> str:
        code = normalize_icao(value)
        if not AIRPORT_ICAO_RE.match(code):
            raise ValueError("Le code aéroport doit contenir exactement 4 lettres.")
        return code


class GateUpdate(BaseModel):
    terminal: str | None = Field(None, max_length=200)
    porte: str | None = None


class MapInfoUpdate(BaseModel):
    hasMap: bool | None = None
    mapUrl: str | None = Field(None, max_length=500)
    source: str | None = Field(None, max_length=50)


class ParkingUpdate(BaseModel):
    # Present only so a payload carrying them is refused with a clear message
    airline: str | None = None
    airport: str | None = None
    gate: GateUpdate | None = None
    mapInfo: MapInfoUpdate | None = None


class BulkCreateRequest(BaseModel):
    parkings: list[ParkingCreate] = Field(min_length=1)


class BulkDeleteRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


class PairIn(BaseModel):
    airline: str = Field(min_length=1)
    airport: str = Field(min_length=1)


class CheckDuplicatesRequest(BaseModel):
    parkings: list[PairIn] = Field(min_length=1)


def _has_map_filter(raw: str | None) -> bool | None:
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered not in ("false", "0"):
        logger.warning("Unrecognised hasMap value %r, treating it as false", raw)
    return False


# ---------------------------------------------------------------------------
# Public reads (fixed paths before /{parking_id})
# ---------------------------------------------------------------------------
@router.get("")
def list_parkings(
    page: str | None = None,
    limit: str | None = None,
    airline: str | None = None,
    airport: str | None = None,
    has_map: str | None = Query(None, alias="hasMap"),
    search: str | None = None,
    sort: str | None = None,
    engine: Engine = Depends(get_engine),
):
    """Parkings grouped by airport; the airport groups are paginated."""
    return parking_service.list_parkings(
        engine,
        airline=airline,
        airport=airport,
        has_map=_has_map_filter(has_map),
        search=search,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/by-country")
def parkings_by_country(
    country_codes: str = Query("", alias="countryCodes"),
    engine: Engine = Depends(get_engine),
):
    """Parkings at airports whose ICAO starts with one of ``countryCodes`` (``LF,EG``)."""
    return parking_service.parkings_by_country(engine, country_codes.split(","))


@router.get("/airlines/unique")
def unique_airlines(engine: Engine = Depends(get_engine)):
    return parking_service.unique_airlines(engine)


@router.get("/unique-airport-icaos")
def unique_airport_icaos(engine: Engine = Depends(get_engine)):
    return parking_service.unique_airport_icaos(engine)


# ---------------------------------------------------------------------------
# Batch operations (admin)
# ---------------------------------------------------------------------------
@router.post("/check-duplicates")
def check_duplicates(
    body: CheckDuplicatesRequest,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return {"duplicates": parking_service.check_duplicates(engine, [p.model_dump() for p in body.parkings])}


@router.post("/bulk", status_code=status.HTTP_207_MULTI_STATUS)
def bulk_create(
    body: BulkCreateRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    result = parking_service.bulk_create_parkings(
        engine, [p.model_dump() for p in body.parkings], actor_id=admin["id"],
    )
    if result["parkings"]:
        audit.emit(background, BulkCreated(
            actor_id=admin["id"], target_type=TargetType.PARKING,
            inserted_ids=[p["id"] for p in result["parkings"]],
            duplicates=result["summary"]["duplicates"],
        ))
    return result


@router.delete("/bulk")
async def bulk_delete(
    body: BulkDeleteRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    deleted = await run_db(parking_service.bulk_delete_parkings, engine, body.ids)
    for snapshot in deleted:
        if parking_service.is_cdn_map(snapshot):
            await discard_asset(store, public_id_from_url(snapshot["mapInfo"]["mapUrl"]))
    if deleted:
        audit.emit(background, BulkDeleted(
            actor_id=admin["id"], target_type=TargetType.PARKING,
            deleted_ids=[p["id"] for p in deleted],
        ))
    return {"message": f"{len(deleted)} parking(s) supprimé(s).", "deletedCount": len(deleted)}


# ---------------------------------------------------------------------------
# Single parking
# ---------------------------------------------------------------------------
@router.get("/{parking_id}")
def get_parking(parking_id: int, engine: Engine = Depends(get_engine)):
    return parking_service.get_parking(engine, parking_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_parking(
    body: ParkingCreate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    parking = parking_service.create_parking(engine, body.model_dump(), actor_id=admin["id"])
    audit.emit(background, Created(
        actor_id=admin["id"], target_type=TargetType.PARKING, target_id=parking["id"],
        snapshot={"airline": parking["airline"], "airport": parking["airport"]},
    ))
    return parking


@router.put("/{parking_id}")
async def update_parking(
    parking_id: int,
    body: ParkingUpdate,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Merge gate / mapInfo changes.  A no-op writes nothing and logs nothing.

    When the map URL moves away from a CDN-hosted image, that image is
    deleted after the commit.
    """
    current = await run_db(parking_service.get_parking, engine, parking_id)
    parking, diff = await run_db(
        parking_service.update_parking, engine, parking_id,
        body.model_dump(exclude_unset=True), actor_id=admin["id"],
    )
    old_url = current["mapInfo"]["mapUrl"]
    if parking_service.is_cdn_map(current) and parking["mapInfo"]["mapUrl"] != old_url:
        await discard_asset(store, public_id_from_url(old_url))
    if diff:
        audit.emit(background, Updated(
            actor_id=admin["id"], target_type=TargetType.PARKING, target_id=parking_id,
            changes=diff,
        ))
    return parking


@router.delete("/{parking_id}")
async def delete_parking(
    parking_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Delete the parking, then its CDN map (best effort)."""
    snapshot = await run_db(parking_service.delete_parking, engine, parking_id)
    if parking_service.is_cdn_map(snapshot):
        await discard_asset(store, public_id_from_url(snapshot["mapInfo"]["mapUrl"]))
    audit.emit(background, Deleted(
        actor_id=admin["id"], target_type=TargetType.PARKING, target_id=parking_id,
        snapshot={"airline": snapshot["airline"], "airport": snapshot["airport"]},
    ))
    return {"message": "Parking supprimé avec succès.", "id": parking_id}


@router.patch("/{parking_id}/map")
async def update_parking_map(
    parking_id: int,
    background: BackgroundTasks,
    map_image: UploadFile | None = File(None, alias="mapImage"),
    map_url: str | None = Form(None, alias="mapUrl"),
    source: str | None = Form(None),
    engine: Engine = Depends(get_engine),
    store: AssetStore = Depends(get_asset_store),
    cfg: SkystandConfig = Depends(get_config),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Upload a map image, point at an external URL, or clear the map."""
    current = await run_db(parking_service.get_parking, engine, parking_id)
    old_public_id = (
        public_id_from_url(current["mapInfo"]["mapUrl"])
        if parking_service.is_cdn_map(current) else None
    )

    if map_image is not None:
        content = await map_image.read()
        validate_image(
            map_image.filename, content, map_image.content_type,
            max_bytes=cfg.max_upload_mb * 1024 * 1024, field="mapImage",
        )
        parking, _ = await replace_asset(
            store,
            content=content,
            public_id=versioned_public_id(cfg.map_folder, f"parking_{parking_id}"),
            commit=lambda stored: run_db(
                parking_service.set_parking_map, engine, parking_id,
                url=stored.url, source=MAP_SOURCE_CDN, actor_id=admin["id"],
            ),
            previous_public_id=old_public_id,
        )
    else:
        url = (map_url or "").strip()
        parking, _ = await remove_asset(
            store,
            commit=lambda: run_db(
                parking_service.set_parking_map, engine, parking_id,
                url=url, source=(source or MAP_SOURCE_EXTERNAL).strip(), actor_id=admin["id"],
            ),
            previous_public_id=old_public_id if url != current["mapInfo"]["mapUrl"] else None,
        )

    audit.emit(background, MapUpdated(
        actor_id=admin["id"], target_type=TargetType.PARKING, target_id=parking_id,
        previous_url=current["mapInfo"]["mapUrl"] or None,
        new_url=parking["mapInfo"]["mapUrl"] or None,
        source=parking["mapInfo"]["source"] or None,
    ))
    return parking
