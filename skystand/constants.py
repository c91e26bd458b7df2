"""
skystand.constants — Shared Constants & Helpers
================================================

Single source of truth for identifier formats and pagination limits.
Import from here instead of duplicating in services and routers.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# ICAO identifiers
# ---------------------------------------------------------------------------
AIRPORT_ICAO_RE = re.compile(r"^[A-Z]{4}$")
AIRLINE_ICAO_RE = re.compile(r"^[A-Z]{3}$")
# Two-letter ICAO prefix, used to bucket airports by country / region
COUNTRY_PREFIX_RE = re.compile(r"^[A-Z]{2}$")


def normalize_icao(value: str | None) -> str:
    """Trim and uppercase an ICAO code (``" lfpg "`` → ``"LFPG"``)."""
    return (value or "").strip().upper()


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
MAX_PAGE_SIZE = 100
PARKING_PAGE_SIZE = 12
REFERENCE_PAGE_SIZE = 25      # airports, airlines, activity logs
FEEDBACK_PAGE_SIZE = 20
COMMAND_LOG_PAGE_SIZE = 20

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_USER = "user"
ROLE_MODERATOR = "moderator"
ROLE_ADMIN = "admin"
VALID_ROLES: frozenset[str] = frozenset({ROLE_USER, ROLE_MODERATOR, ROLE_ADMIN})

# ---------------------------------------------------------------------------
# Asset sources recorded on parking maps
# ---------------------------------------------------------------------------
MAP_SOURCE_CDN = "Cloudinary"
MAP_SOURCE_EXTERNAL = "URL externe"
