"""
skystand.config — YAML Configuration Loader
============================================

Tunables that are not secrets live in ``config.yaml``.  Secrets and
connection strings (``DATABASE_URL``, ``JWT_SECRET``, ``API_KEY``,
``CLOUDINARY_*``) stay in the environment.

Usage::

    from skystand.config import load_config

    cfg = load_config()               # reads $SKYSTAND_CONFIG or ./config.yaml
    print(cfg.log_retention_days)     # 30
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SkystandConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Command log retention
    log_retention_days: int = 30
    retention_hour_utc: int = 3

    # Auth
    token_ttl_hours: int = 24

    # CDN uploads
    max_upload_mb: int = 10
    map_folder: str = "parking-maps"
    logo_folder: str = "airline_logos"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> SkystandConfig:
    """Read *path* and return a :class:`SkystandConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$SKYSTAND_CONFIG`` or ``config.yaml`` in the working directory.
        A missing file is not an error: the defaults are used.

    Raises
    ------
    ValueError
        If a value cannot be converted to the expected type.
    """
    config_path = Path(path or os.getenv("SKYSTAND_CONFIG", "config.yaml"))
    if not config_path.exists():
        logger.warning(
            "Configuration file not found (%s); using defaults.",
            config_path.resolve(),
        )
        return SkystandConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = SkystandConfig()
    return SkystandConfig(
        log_retention_days=int(raw.get("log_retention_days", defaults.log_retention_days)),
        retention_hour_utc=int(raw.get("retention_hour_utc", defaults.retention_hour_utc)),
        token_ttl_hours=int(raw.get("token_ttl_hours", defaults.token_ttl_hours)),
        max_upload_mb=int(raw.get("max_upload_mb", defaults.max_upload_mb)),
        map_folder=str(raw.get("map_folder", defaults.map_folder)),
        logo_folder=str(raw.get("logo_folder", defaults.logo_folder)),
    )
