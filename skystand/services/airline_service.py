"""
skystand.services.airline_service — Airline reference data & logos
===================================================================

Logo files live on the CDN; the row keeps ``logo_url`` and
``logo_public_id``.  Routers sequence the upload/commit/cleanup steps
through :mod:`skystand.services.asset_lifecycle`; the functions here only
touch the database.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.exc import IntegrityError

from skystand.constants import REFERENCE_PAGE_SIZE, normalize_icao
from skystand.database.engine import get_session
from skystand.database.models import Airline, Parking
from skystand.errors import ConflictError, NotFoundError
from skystand.services.asset_store import public_id_from_url
from skystand.services.common import apply_changes, build_page, clamp_page, iso, pick_changes

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "callsign", "country")
REQUIRED_FIELDS = ("name", "country")


def serialize_airline(a: Airline) -> dict:
    return {
        "id": a.id,
        "icao": a.icao,
        "name": a.name,
        "callsign": a.callsign,
        "country": a.country,
        "logoUrl": a.logo_url,
        "logoPublicId": a.logo_public_id,
        "createdBy": a.created_by,
        "lastUpdatedBy": a.last_updated_by,
        "createdAt": iso(a.created_at),
        "updatedAt": iso(a.updated_at),
    }


def logo_public_id(airline: dict) -> str | None:
    """Public id of the airline's logo, recovered from the URL for old rows."""
    return airline.get("logoPublicId") or public_id_from_url(airline.get("logoUrl"))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_airlines(
    engine: Engine,
    *,
    search: str | None = None,
    country: str | None = None,
    sort: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> dict:
    request = clamp_page(page, limit, default_limit=REFERENCE_PAGE_SIZE)

    conditions = []
    term = (search or "").strip()
    if term:
        conditions.append(or_(
            Airline.icao.icontains(term, autoescape=True),
            Airline.name.icontains(term, autoescape=True),
            Airline.callsign.icontains(term, autoescape=True),
            Airline.country.icontains(term, autoescape=True),
        ))
    if country:
        conditions.append(func.lower(Airline.country) == country.strip().lower())

    columns = {"icao": Airline.icao, "name": Airline.name, "country": Airline.country}
    sort_key = sort or "icao"
    column = columns.get(sort_key.lstrip("-"))
    if column is None:
        logger.warning("Unknown airline sort key %r, using icao", sort_key)
        column, sort_key = Airline.icao, "icao"
    order = column.desc() if sort_key.startswith("-") else column.asc()

    with get_session(engine) as session:
        total = session.scalar(select(func.count()).select_from(Airline).where(*conditions)) or 0
        rows = session.scalars(
            select(Airline)
            .where(*conditions)
            .order_by(order, Airline.id.asc())
            .offset(request.offset)
            .limit(request.limit)
        ).all()
        docs = [serialize_airline(a) for a in rows]
    return build_page(docs, total, request)


def get_airline(engine: Engine, airline_id: int) -> dict:
    with get_session(engine) as session:
        airline = session.get(Airline, airline_id)
        if airline is None:
            raise NotFoundError("Compagnie non trouvée.")
        return serialize_airline(airline)


def managed_airlines(engine: Engine) -> dict:
    """Airlines that have parkings, plus parking ICAOs with no airline record."""
    with get_session(engine) as session:
        used = set(session.scalars(select(Parking.airline).distinct()).all())
        known = session.scalars(
            select(Airline).where(Airline.icao.in_(used)).order_by(Airline.icao.asc())
        ).all() if used else []
        known_codes = {a.icao for a in known}
        return {
            "managedAirlines": [serialize_airline(a) for a in known],
            "missingIcaos": sorted(used - known_codes),
        }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def create_airline(engine: Engine, data: dict, *, actor_id: int | None) -> dict:
    icao = normalize_icao(data["icao"])
    conflict = ConflictError(f"Une compagnie avec l'ICAO {icao} existe déjà.")
    try:
        with get_session(engine) as session:
            if session.scalar(select(Airline.id).where(Airline.icao == icao)) is not None:
                raise conflict
            airline = Airline(
                icao=icao,
                name=data["name"].strip(),
                callsign=(data.get("callsign") or "").strip() or None,
                country=data["country"].strip(),
                created_by=actor_id,
                last_updated_by=actor_id,
            )
            session.add(airline)
            session.flush()
            logger.info("Created airline %s", icao)
            return serialize_airline(airline)
    except IntegrityError:
        raise conflict


def update_airline(
    engine: Engine,
    airline_id: int,
    changes: dict,
    *,
    actor_id: int | None,
) -> tuple[dict, dict, str | None]:
    """Apply field changes.  ``logoUrl == ""`` removes the logo; a null
    ``name`` or ``country`` keeps the stored value.

    Returns ``(airline, diff, removed_logo_public_id)``.
    """
    values = pick_changes(changes, EDITABLE_FIELDS, required=REQUIRED_FIELDS)
    removed_public_id = None

    with get_session(engine) as session:
        airline = session.get(Airline, airline_id)
        if airline is None:
            raise NotFoundError("Compagnie non trouvée.")
        if changes.get("logoUrl") == "" and airline.logo_url:
            removed_public_id = logo_public_id(serialize_airline(airline))
            values["logo_url"] = None
            values["logo_public_id"] = None

        diff = apply_changes(airline, values, labels={"logo_url": "logoUrl", "logo_public_id": "logoPublicId"})
        if not diff:
            return serialize_airline(airline), {}, None
        airline.last_updated_by = actor_id
        session.flush()
        return serialize_airline(airline), diff, removed_public_id


def set_airline_logo(
    engine: Engine,
    airline_id: int,
    *,
    url: str,
    public_id: str,
    actor_id: int | None,
) -> tuple[dict, dict]:
    """Store a freshly uploaded logo.  Returns ``(airline, previous_airline)``."""
    with get_session(engine) as session:
        airline = session.get(Airline, airline_id)
        if airline is None:
            raise NotFoundError("Compagnie non trouvée.")
        previous = serialize_airline(airline)
        airline.logo_url = url
        airline.logo_public_id = public_id
        airline.last_updated_by = actor_id
        session.flush()
        return serialize_airline(airline), previous


def delete_airline(engine: Engine, airline_id: int) -> dict:
    """Delete an airline no parking references and return its last state."""
    with get_session(engine) as session:
        airline = session.get(Airline, airline_id)
        if airline is None:
            raise NotFoundError("Compagnie non trouvée.")
        in_use = session.scalar(
            select(func.count()).select_from(Parking).where(Parking.airline == airline.icao)
        ) or 0
        if in_use:
            raise ConflictError(
                f"Cette compagnie est utilisée par {in_use} parking(s) et ne peut pas "
                "être supprimée. Supprimez d'abord les parkings associés."
            )
        snapshot = serialize_airline(airline)
        session.delete(airline)
    logger.info("Deleted airline %s", snapshot["icao"])
    return snapshot
