"""
skystand.services.airport_service — Airport reference data
===========================================================

Listing joins each airport to its parking count.  Airports referenced by
at least one parking can be neither deleted nor re-coded.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.exc import IntegrityError

from skystand.constants import REFERENCE_PAGE_SIZE, normalize_icao
from skystand.database.engine import get_session
from skystand.database.models import Airport, Parking
from skystand.errors import ConflictError, NotFoundError
from skystand.services.common import apply_changes, build_page, clamp_page, iso, pick_changes

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("icao", "name", "city", "country", "latitude", "longitude", "elevation", "timezone")
REQUIRED_FIELDS = ("icao", "name")


def serialize_airport(a: Airport, parking_count: int | None = None) -> dict:
    body = {
        "id": a.id,
        "icao": a.icao,
        "name": a.name,
        "city": a.city,
        "country": a.country,
        "latitude": a.latitude,
        "longitude": a.longitude,
        "elevation": a.elevation,
        "timezone": a.timezone,
        "createdBy": a.created_by,
        "lastUpdatedBy": a.last_updated_by,
        "createdAt": iso(a.created_at),
        "updatedAt": iso(a.updated_at),
    }
    if parking_count is not None:
        body["parkingCount"] = parking_count
    return body


def _in_use_message(count: int) -> str:
    return (
        f"Cet aéroport est utilisé par {count} parking(s) et ne peut pas être "
        "supprimé ou recodé. Supprimez d'abord les parkings associés."
    )


def _parking_counts():
    return (
        select(Parking.airport.label("icao"), func.count(Parking.id).label("parking_count"))
        .group_by(Parking.airport)
        .subquery()
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_airports(
    engine: Engine,
    *,
    search: str | None = None,
    country: str | None = None,
    sort: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> dict:
    request = clamp_page(page, limit, default_limit=REFERENCE_PAGE_SIZE)
    counts = _parking_counts()
    parking_count = func.coalesce(counts.c.parking_count, 0)

    conditions = []
    term = (search or "").strip()
    if term:
        conditions.append(or_(
            Airport.icao.icontains(term, autoescape=True),
            Airport.name.icontains(term, autoescape=True),
            Airport.city.icontains(term, autoescape=True),
            Airport.country.icontains(term, autoescape=True),
        ))
    if country:
        conditions.append(func.lower(Airport.country) == country.strip().lower())

    columns = {
        "icao": Airport.icao,
        "name": Airport.name,
        "city": Airport.city,
        "country": Airport.country,
        "parkingCount": parking_count,
    }
    sort_key = sort or "icao"
    column = columns.get(sort_key.lstrip("-"))
    if column is None:
        logger.warning("Unknown airport sort key %r, using icao", sort_key)
        column, sort_key = Airport.icao, "icao"
    order = column.desc() if sort_key.startswith("-") else column.asc()

    with get_session(engine) as session:
        total = session.scalar(select(func.count()).select_from(Airport).where(*conditions)) or 0
        rows = session.execute(
            select(Airport, parking_count.label("parking_count"))
            .outerjoin(counts, counts.c.icao == Airport.icao)
            .where(*conditions)
            .order_by(order, Airport.id.asc())
            .offset(request.offset)
            .limit(request.limit)
        ).all()
        docs = [serialize_airport(airport, count) for airport, count in rows]
    return build_page(docs, total, request)


def get_airport(engine: Engine, *, airport_id: int | None = None, icao: str | None = None) -> dict:
    with get_session(engine) as session:
        if airport_id is not None:
            airport = session.get(Airport, airport_id)
        else:
            airport = session.scalar(select(Airport).where(Airport.icao == normalize_icao(icao)))
        if airport is None:
            raise NotFoundError("Aéroport non trouvé.")
        count = session.scalar(
            select(func.count()).select_from(Parking).where(Parking.airport == airport.icao)
        ) or 0
        return serialize_airport(airport, count)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def create_airport(engine: Engine, data: dict, *, actor_id: int | None) -> dict:
    icao = normalize_icao(data["icao"])
    conflict = ConflictError(f"Un aéroport avec l'ICAO {icao} existe déjà.")
    try:
        with get_session(engine) as session:
            if session.scalar(select(Airport.id).where(Airport.icao == icao)) is not None:
                raise conflict
            airport = Airport(
                **{key: data.get(key) for key in EDITABLE_FIELDS if key != "icao"},
                icao=icao,
                created_by=actor_id,
                last_updated_by=actor_id,
            )
            session.add(airport)
            session.flush()
            logger.info("Created airport %s", icao)
            return serialize_airport(airport, 0)
    except IntegrityError:
        raise conflict


def update_airport(
    engine: Engine,
    airport_id: int,
    changes: dict,
    *,
    actor_id: int | None,
) -> tuple[dict, dict]:
    """Apply *changes*; returns ``(airport, diff)`` with an empty diff for no-ops.

    A null ``icao`` or ``name`` keeps the stored value.
    """
    values = pick_changes(changes, EDITABLE_FIELDS, required=REQUIRED_FIELDS)
    if "icao" in values:
        values["icao"] = normalize_icao(values["icao"])
    conflict = ConflictError(f"Un aéroport avec l'ICAO {values.get('icao')} existe déjà.")

    try:
        with get_session(engine) as session:
            airport = session.get(Airport, airport_id)
            if airport is None:
                raise NotFoundError("Aéroport non trouvé.")

            if "icao" in values and values["icao"] != airport.icao:
                taken = session.scalar(select(Airport.id).where(Airport.icao == values["icao"]))
                if taken is not None:
                    raise conflict
                in_use = session.scalar(
                    select(func.count()).select_from(Parking).where(Parking.airport == airport.icao)
                ) or 0
                if in_use:
                    raise ConflictError(_in_use_message(in_use))

            diff = apply_changes(airport, values)
            count = session.scalar(
                select(func.count()).select_from(Parking).where(Parking.airport == airport.icao)
            ) or 0
            if not diff:
                return serialize_airport(airport, count), {}
            airport.last_updated_by = actor_id
            session.flush()
            return serialize_airport(airport, count), diff
    except IntegrityError:
        # Only the ICAO is unique; any other integrity failure is unexpected
        if "icao" not in values:
            raise
        raise conflict


def delete_airport(engine: Engine, airport_id: int) -> dict:
    """Delete an unreferenced airport and return its last state."""
    with get_session(engine) as session:
        airport = session.get(Airport, airport_id)
        if airport is None:
            raise NotFoundError("Aéroport non trouvé.")
        in_use = session.scalar(
            select(func.count()).select_from(Parking).where(Parking.airport == airport.icao)
        ) or 0
        if in_use:
            raise ConflictError(_in_use_message(in_use))
        snapshot = serialize_airport(airport)
        session.delete(airport)
    logger.info("Deleted airport %s", snapshot["icao"])
    return snapshot
