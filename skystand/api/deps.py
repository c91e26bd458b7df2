"""
skystand.api.deps — FastAPI dependency injection
=================================================
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy import Engine

from skystand.config import SkystandConfig, load_config
from skystand.constants import ROLE_ADMIN
from skystand.database.engine import create_db_engine
from skystand.errors import AuthenticationError, AuthorizationError
from skystand.services.activity_logger import ActivityLogger
from skystand.services.asset_store import AssetStore, CloudinaryStore
from skystand.services.auth_service import get_active_user

# Sample-config values, never valid in a deployment
_PLACEHOLDER_SECRETS = frozenset({"skystand-dev-secret-change-me", "change-me", "secret", "dev"})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _secret_problem(secret: str) -> str | None:
    if not secret:
        return "is empty or unset"
    if secret in _PLACEHOLDER_SECRETS:
        return "still holds a placeholder value"
    if len(secret) < _MIN_SECRET_LENGTH:
        return f"has {len(secret)} characters, {_MIN_SECRET_LENGTH} needed"
    return None


def _load_jwt_secret() -> str:
    """Read the token signing key; the API will not boot with a guessable one."""
    secret = os.getenv("JWT_SECRET", "")
    problem = _secret_problem(secret)
    if problem:
        raise RuntimeError(
            f"Refusing to start: JWT_SECRET {problem}. "
            "Put a random value of at least 32 characters in .env."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> SkystandConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_asset_store() -> AssetStore:
    return CloudinaryStore.from_env()


def get_activity_logger(engine: Annotated[Engine, Depends(get_engine)]) -> ActivityLogger:
    return ActivityLogger(engine)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def create_access_token(user: dict, ttl_hours: int) -> str:
    """Sign ``{userId, username, roles}`` with a fixed expiry."""
    return jwt.encode(
        {
            "userId": user["id"],
            "username": user["username"],
            "roles": user["roles"],
            "exp": datetime.now(UTC) + timedelta(hours=ttl_hours),
        },
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _bearer(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Non autorisé, aucun token fourni.")
    return authorization.split(" ", 1)[1].strip()


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> dict:
    """Validate the JWT and re-read its user.  Raises 401 if either fails.

    The user row is fetched on every request, so a deactivated or deleted
    account is locked out even while its token is still unexpired.
    """
    token = _bearer(authorization)
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Session expirée, veuillez vous reconnecter.")
    except InvalidTokenError:
        raise AuthenticationError("Non autorisé, token invalide.")

    user_id = payload.get("userId")
    if not isinstance(user_id, int):
        raise AuthenticationError("Non autorisé, token invalide.")
    user = get_active_user(engine, user_id)
    if user is None:
        raise AuthenticationError("Non autorisé, utilisateur introuvable ou inactif.")
    return user


def require_roles(*roles: str) -> Callable[..., dict]:
    """Dependency factory: the current user must hold one of *roles*."""

    def _check(user: Annotated[dict, Depends(get_current_user)]) -> dict:
        if not set(user["roles"]) & set(roles):
            raise AuthorizationError(
                f"Accès refusé : rôle requis ({', '.join(roles)})."
            )
        return user

    return _check


get_current_admin = require_roles(ROLE_ADMIN)


# ---------------------------------------------------------------------------
# Bot integration
# ---------------------------------------------------------------------------
def require_api_key(authorization: Annotated[str | None, Header()] = None) -> None:
    """Shared-secret check for requests coming from the Discord bot."""
    expected = os.getenv("API_KEY", "")
    if not expected:
        raise AuthenticationError("Clé API non configurée sur le serveur.")
    provided = _bearer(authorization)
    if not secrets.compare_digest(provided, expected):
        raise AuthenticationError("Clé API invalide.")
