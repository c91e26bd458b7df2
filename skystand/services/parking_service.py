"""
skystand.services.parking_service — Parking query engine & mutations
=====================================================================

Parkings are listed **grouped by airport**.  The paginated unit is the
airport group, not the individual parking:

1. Build one predicate from the filters (``airline``, ``airport``,
   ``hasMap``, ``search``).
2. ``GROUP BY airport`` the matching rows → per-group count and latest
   ``updated_at``.
3. Order the groups (``airport``, ``±updatedAt``, ``±parkingCount``);
   unknown sort keys log a warning and fall back to ``airport``.
4. Slice the page of groups, then load every matching parking of those
   airports in a second query.

``totalDocs`` in the envelope is therefore the number of matching
airports.  Parkings inside a group are not paginated.

Mutations enforce the ``(airline, airport)`` identity: both codes are
uppercased, the pair is unique, and it cannot change after creation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Engine, func, or_, select, tuple_
from sqlalchemy.exc import IntegrityError

from skystand.constants import (
    COUNTRY_PREFIX_RE,
    MAP_SOURCE_CDN,
    PARKING_PAGE_SIZE,
    normalize_icao,
)
from skystand.database.engine import get_session
from skystand.database.models import Parking
from skystand.errors import ConflictError, NotFoundError, ValidationError
from skystand.services.common import apply_changes, build_page, clamp_page, iso

logger = logging.getLogger(__name__)

# Public gate field → column attribute
GATE_FIELDS = {"terminal": "gate_terminal", "porte": "gate_porte"}
_DIFF_LABELS = {
    "gate_terminal": "gate.terminal",
    "gate_porte": "gate.porte",
    "map_has_map": "mapInfo.hasMap",
    "map_url": "mapInfo.mapUrl",
    "map_source": "mapInfo.source",
}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def serialize_parking(p: Parking) -> dict:
    return {
        "id": p.id,
        "airline": p.airline,
        "airport": p.airport,
        "gate": {"terminal": p.gate_terminal, "porte": p.gate_porte},
        "mapInfo": {"hasMap": p.map_has_map, "mapUrl": p.map_url, "source": p.map_source},
        "createdBy": p.created_by,
        "lastUpdatedBy": p.last_updated_by,
        "createdAt": iso(p.created_at),
        "updatedAt": iso(p.updated_at),
    }


def is_cdn_map(parking: dict) -> bool:
    """Whether the parking's map image lives on our CDN account."""
    info = parking.get("mapInfo") or {}
    return info.get("source") == MAP_SOURCE_CDN and bool(info.get("mapUrl"))


def _duplicate_message(airline: str, airport: str) -> str:
    return f"Un parking existe déjà pour {airline}/{airport}."


# ---------------------------------------------------------------------------
# Query engine
# ---------------------------------------------------------------------------
def build_filters(
    *,
    airline: str | None = None,
    airport: str | None = None,
    has_map: bool | None = None,
    search: str | None = None,
) -> list:
    """Translate list filters into SQLAlchemy conditions."""
    conditions = []
    if airline:
        conditions.append(Parking.airline == normalize_icao(airline))
    if airport:
        conditions.append(Parking.airport == normalize_icao(airport))
    if has_map is not None:
        conditions.append(Parking.map_has_map.is_(has_map))
    term = (search or "").strip()
    if term:
        # Substring match, not tokenized: "FPG" finds LFPG
        conditions.append(or_(
            Parking.airport.icontains(term, autoescape=True),
            Parking.airline.icontains(term, autoescape=True),
        ))
    return conditions


def _group_ordering(sort: str | None, group_key, group_count, group_updated) -> list:
    mapping = {
        "airport": [group_key.asc()],
        "-airport": [group_key.desc()],
        "updatedAt": [group_updated.asc(), group_key.asc()],
        "-updatedAt": [group_updated.desc(), group_key.asc()],
        "parkingCount": [group_count.asc(), group_key.asc()],
        "-parkingCount": [group_count.desc(), group_key.asc()],
    }
    if sort and sort not in mapping:
        logger.warning("Unknown parking sort key %r, falling back to airport", sort)
    return mapping.get(sort or "airport", mapping["airport"])


def list_parkings(
    engine: Engine,
    *,
    airline: str | None = None,
    airport: str | None = None,
    has_map: bool | None = None,
    search: str | None = None,
    sort: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> dict:
    """Airport-grouped, paginated parking listing (see module docstring)."""
    request = clamp_page(page, limit, default_limit=PARKING_PAGE_SIZE)
    conditions = build_filters(airline=airline, airport=airport, has_map=has_map, search=search)

    groups = (
        select(
            Parking.airport.label("airport"),
            func.count(Parking.id).label("total"),
            func.max(Parking.updated_at).label("last_updated"),
        )
        .where(*conditions)
        .group_by(Parking.airport)
        .subquery()
    )

    with get_session(engine) as session:
        total_groups = session.scalar(select(func.count()).select_from(groups)) or 0
        page_groups = session.execute(
            select(groups.c.airport, groups.c.total, groups.c.last_updated)
            .order_by(*_group_ordering(sort, groups.c.airport, groups.c.total, groups.c.last_updated))
            .offset(request.offset)
            .limit(request.limit)
        ).all()

        airports = [row.airport for row in page_groups]
        members: dict[str, list[dict]] = {code: [] for code in airports}
        if airports:
            rows = session.scalars(
                select(Parking)
                .where(*conditions, Parking.airport.in_(airports))
                .order_by(Parking.airline.asc(), Parking.id.asc())
            ).all()
            for parking in rows:
                members[parking.airport].append(serialize_parking(parking))

    docs = [
        {
            "airport": row.airport,
            "totalParkingsInAirport": row.total,
            "parkings": members[row.airport],
            "lastUpdatedAt": iso(row.last_updated),
        }
        for row in page_groups
    ]
    return build_page(docs, total_groups, request)


def get_parking(engine: Engine, parking_id: int) -> dict:
    with get_session(engine) as session:
        parking = session.get(Parking, parking_id)
        if parking is None:
            raise NotFoundError("Parking non trouvé.")
        return serialize_parking(parking)


def parkings_by_country(engine: Engine, country_codes: Iterable[str]) -> list[dict]:
    """Parkings whose airport ICAO starts with one of the 2-letter prefixes."""
    prefixes = [
        code for code in (normalize_icao(raw) for raw in country_codes)
        if COUNTRY_PREFIX_RE.match(code)
    ]
    if not prefixes:
        return []
    with get_session(engine) as session:
        rows = session.scalars(
            select(Parking)
            .where(or_(*(Parking.airport.like(f"{prefix}%") for prefix in prefixes)))
            .order_by(Parking.airport.asc(), Parking.airline.asc())
        ).all()
        return [serialize_parking(p) for p in rows]


def unique_airlines(engine: Engine) -> list[str]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(Parking.airline).distinct().order_by(Parking.airline.asc())
        ).all())


def unique_airport_icaos(engine: Engine) -> list[str]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(Parking.airport).distinct().order_by(Parking.airport.asc())
        ).all())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def _map_columns(map_info: dict | None) -> dict[str, Any]:
    map_info = map_info or {}
    url = (map_info.get("mapUrl") or "").strip()
    return {
        "map_url": url,
        "map_source": (map_info.get("source") or "").strip(),
        "map_has_map": bool(url),
    }


def _new_parking(data: dict, actor_id: int | None) -> Parking:
    gate = data.get("gate") or {}
    return Parking(
        airline=normalize_icao(data["airline"]),
        airport=normalize_icao(data["airport"]),
        gate_terminal=(gate.get("terminal") or "").strip(),
        gate_porte=(gate.get("porte") or "").strip(),
        created_by=actor_id,
        last_updated_by=actor_id,
        **_map_columns(data.get("mapInfo")),
    )


def create_parking(engine: Engine, data: dict, *, actor_id: int | None) -> dict:
    """Insert one parking.  A duplicate ``(airline, airport)`` raises 400."""
    parking = _new_parking(data, actor_id)
    conflict = ConflictError(_duplicate_message(parking.airline, parking.airport))
    try:
        with get_session(engine) as session:
            exists = session.scalar(
                select(Parking.id).where(
                    Parking.airline == parking.airline, Parking.airport == parking.airport
                )
            )
            if exists is not None:
                raise conflict
            session.add(parking)
            session.flush()
            return serialize_parking(parking)
    except IntegrityError:
        raise conflict


def update_parking(
    engine: Engine,
    parking_id: int,
    changes: dict,
    *,
    actor_id: int | None,
) -> tuple[dict, dict[str, dict[str, Any]]]:
    """Merge *changes* (``gate`` / ``mapInfo`` sub-objects) into a parking.

    Returns ``(parking, diff)``.  An empty diff means nothing changed and
    nothing was written.
    """
    if "airline" in changes or "airport" in changes:
        raise ValidationError(
            "La compagnie et l'aéroport d'un parking ne peuvent pas être modifiés. "
            "Supprimez puis recréez le parking."
        )

    with get_session(engine) as session:
        parking = session.get(Parking, parking_id)
        if parking is None:
            raise NotFoundError("Parking non trouvé.")

        new_values: dict[str, Any] = {}
        for public, attr in GATE_FIELDS.items():
            if (changes.get("gate") or {}).get(public) is not None:
                new_values[attr] = changes["gate"][public].strip()
        map_info = changes.get("mapInfo") or {}
        if map_info.get("mapUrl") is not None:
            new_values["map_url"] = map_info["mapUrl"].strip()
        if map_info.get("source") is not None:
            new_values["map_source"] = map_info["source"].strip()
        url_after = new_values.get("map_url", parking.map_url)
        new_values["map_has_map"] = bool(url_after)

        diff = apply_changes(parking, new_values, labels=_DIFF_LABELS)
        if not diff:
            return serialize_parking(parking), {}
        parking.last_updated_by = actor_id
        session.flush()
        return serialize_parking(parking), diff


def delete_parking(engine: Engine, parking_id: int) -> dict:
    """Delete a parking and return its last state (for audit & asset cleanup)."""
    with get_session(engine) as session:
        parking = session.get(Parking, parking_id)
        if parking is None:
            raise NotFoundError("Parking non trouvé.")
        snapshot = serialize_parking(parking)
        session.delete(parking)
    logger.info("Deleted parking %s/%s (id=%d)", snapshot["airline"], snapshot["airport"], parking_id)
    return snapshot


def set_parking_map(
    engine: Engine,
    parking_id: int,
    *,
    url: str,
    source: str,
    actor_id: int | None,
) -> tuple[dict, dict]:
    """Point a parking at a new map (or clear it with an empty *url*).

    Returns ``(parking, previous_map_info)``.
    """
    with get_session(engine) as session:
        parking = session.get(Parking, parking_id)
        if parking is None:
            raise NotFoundError("Parking non trouvé.")
        previous = serialize_parking(parking)["mapInfo"]
        parking.map_url = url
        parking.map_source = source if url else ""
        parking.map_has_map = bool(url)
        parking.last_updated_by = actor_id
        session.flush()
        return serialize_parking(parking), previous


# ---------------------------------------------------------------------------
# Batch operations
# ---------------------------------------------------------------------------
def _existing_pairs(session, pairs: set[tuple[str, str]]) -> set[tuple[str, str]]:
    if not pairs:
        return set()
    rows = session.execute(
        select(Parking.airline, Parking.airport)
        .where(tuple_(Parking.airline, Parking.airport).in_(sorted(pairs)))
    ).all()
    return {(row.airline, row.airport) for row in rows}


def check_duplicates(engine: Engine, items: list[dict]) -> list[dict]:
    """Which of the given ``{airline, airport}`` pairs already exist."""
    pairs = {(normalize_icao(i.get("airline")), normalize_icao(i.get("airport"))) for i in items}
    with get_session(engine) as session:
        found = _existing_pairs(session, pairs)
    return [{"airline": a, "airport": b} for a, b in sorted(found)]


def bulk_create_parkings(engine: Engine, items: list[dict], *, actor_id: int | None) -> dict:
    """Insert many parkings, skipping pairs that already exist or repeat.

    Returns the multi-status payload::

        {status, summary{total, inserted, duplicates}, duplicateDetails, parkings}
    """
    candidates = [_new_parking(item, actor_id) for item in items]
    duplicate_details: list[dict] = []
    inserted: list[dict] = []

    with get_session(engine) as session:
        stored = _existing_pairs(session, {(p.airline, p.airport) for p in candidates})
        seen: set[tuple[str, str]] = set()
        to_insert: list[Parking] = []
        for parking in candidates:
            pair = (parking.airline, parking.airport)
            if pair in stored:
                duplicate_details.append({
                    "airline": parking.airline,
                    "airport": parking.airport,
                    "reason": "Existe déjà en base",
                })
            elif pair in seen:
                duplicate_details.append({
                    "airline": parking.airline,
                    "airport": parking.airport,
                    "reason": "Doublon dans le lot",
                })
            else:
                seen.add(pair)
                to_insert.append(parking)
        session.add_all(to_insert)
        session.flush()
        inserted = [serialize_parking(p) for p in to_insert]

    logger.info(
        "Bulk parking import: %d inserted, %d duplicates",
        len(inserted), len(duplicate_details),
    )
    return {
        "status": "partial" if duplicate_details else "success",
        "summary": {
            "total": len(items),
            "inserted": len(inserted),
            "duplicates": len(duplicate_details),
        },
        "duplicateDetails": duplicate_details,
        "parkings": inserted,
    }


def bulk_delete_parkings(engine: Engine, ids: list[int]) -> list[dict]:
    """Delete the given parkings.  Unknown ids are ignored."""
    with get_session(engine) as session:
        rows = session.scalars(select(Parking).where(Parking.id.in_(ids))).all()
        snapshots = [serialize_parking(p) for p in rows]
        for parking in rows:
            session.delete(parking)
    return snapshots
