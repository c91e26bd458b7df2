"""
skystand.api.auth — Login, logout & admin registration
=======================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from skystand.api.deps import (
    create_access_token,
    get_activity_logger,
    get_config,
    get_current_admin,
    get_current_user,
    get_engine,
)
from skystand.config import SkystandConfig
from skystand.database.models import TargetType
from skystand.services import auth_service
from skystand.services.activity_logger import ActivityLogger, LoggedIn, LoggedOut, Registered

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class LoginRequest(BaseModel):
    identifier: str = Field(min_length=3, description="Username or email")
    password: str = Field(min_length=6)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=6)
    roles: list[str] | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/login")
def login(
    body: LoginRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    cfg: SkystandConfig = Depends(get_config),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Exchange credentials for a signed token."""
    user = auth_service.authenticate(engine, body.identifier, body.password)
    token = create_access_token(user, cfg.token_ttl_hours)
    audit.emit(background, LoggedIn(
        actor_id=user["id"], target_type=TargetType.AUTH, target_id=user["id"],
        username=user["username"],
    ))
    logger.info("User %s logged in", user["username"])
    return {
        "token": token,
        "user": {key: user[key] for key in ("id", "username", "email", "roles", "isActive")},
    }


@router.post("/logout")
def logout(
    background: BackgroundTasks,
    user: dict = Depends(get_current_user),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Tokens are stateless; this only records the logout."""
    audit.emit(background, LoggedOut(
        actor_id=user["id"], target_type=TargetType.AUTH, target_id=user["id"],
        username=user["username"],
    ))
    return {"message": "Déconnexion réussie."}


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return user


@router.get("/verify-token")
def verify_token(user: dict = Depends(get_current_user)):
    return {"valid": True, "user": user}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Create an active account (admin only)."""
    user = auth_service.register_user(
        engine,
        username=body.username,
        email=body.email,
        password=body.password,
        roles=body.roles,
        active=True,
        actor_id=admin["id"],
    )
    audit.emit(background, Registered(
        actor_id=admin["id"], target_type=TargetType.USER, target_id=user["id"],
        username=user["username"],
    ))
    return {"message": "Utilisateur créé avec succès.", "user": user}
