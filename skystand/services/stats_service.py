"""
skystand.services.stats_service — Public parking statistics
============================================================

Headline numbers for the landing page, computed on demand.  Airports are
bucketed by the first two letters of their ICAO code (``LF`` → France,
``EG`` → United Kingdom, …).
"""

from __future__ import annotations

from sqlalchemy import Engine, distinct, func, select

from skystand.database.engine import get_session
from skystand.database.models import Parking


def global_parking_stats(engine: Engine) -> dict:
    prefix = func.substr(Parking.airport, 1, 2)
    with get_session(engine) as session:
        total_parkings = session.scalar(select(func.count()).select_from(Parking)) or 0
        total_airports = session.scalar(select(func.count(distinct(Parking.airport)))) or 0
        total_airlines = session.scalar(select(func.count(distinct(Parking.airline)))) or 0
        by_prefix = session.execute(
            select(prefix.label("code"), func.count(distinct(Parking.airport)).label("n"))
            .group_by(prefix)
            .order_by(func.count(distinct(Parking.airport)).desc(), prefix.asc())
        ).all()

    return {
        "totalParkings": total_parkings,
        "totalAirports": total_airports,
        "totalCompanies": total_airlines,
        "countryCounts": [{"code": row.code, "count": row.n} for row in by_prefix],
    }
