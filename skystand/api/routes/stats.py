"""
skystand.api.routes.stats — Public headline statistics
=======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from skystand.api.deps import get_engine
from skystand.services.stats_service import global_parking_stats

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/global")
def global_stats(engine: Engine = Depends(get_engine)):
    return global_parking_stats(engine)
