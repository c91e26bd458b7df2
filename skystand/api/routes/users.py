"""
skystand.api.routes.users — Self-registration & account administration
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from skystand.api.auth import EMAIL_PATTERN
from skystand.api.deps import get_activity_logger, get_current_admin, get_engine
from skystand.database.models import TargetType
from skystand.services import auth_service
from skystand.services.activity_logger import (
    ActivityLogger,
    Registered,
    RoleChanged,
    UserDeactivated,
    UserValidated,
)

router = APIRouter(prefix="/users", tags=["users"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SelfRegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=6)


class ActivateRequest(BaseModel):
    roles: list[str] | None = None


class RolesRequest(BaseModel):
    roles: list[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------
@router.post("/register", status_code=status.HTTP_201_CREATED)
def self_register(
    body: SelfRegisterRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Request an account.  It stays inactive until an admin activates it."""
    user = auth_service.register_user(
        engine,
        username=body.username,
        email=body.email,
        password=body.password,
        active=False,
        conflict_status=status.HTTP_409_CONFLICT,
    )
    audit.emit(background, Registered(
        actor_id=user["id"], target_type=TargetType.USER, target_id=user["id"],
        username=user["username"], self_service=True,
    ))
    return {
        "message": "Inscription enregistrée. Un administrateur doit valider votre compte.",
        "user": user,
    }


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.get("")
def list_users(
    is_active: bool | None = Query(None, alias="isActive"),
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return auth_service.list_users(engine, is_active=is_active)


@router.patch("/{user_id}/activate")
def activate_user(
    user_id: int,
    background: BackgroundTasks,
    body: ActivateRequest | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Activate a pending account, optionally assigning its roles."""
    roles = body.roles if body is not None else None
    user = auth_service.activate_user(engine, user_id, actor_id=admin["id"], roles=roles)
    audit.emit(background, UserValidated(
        actor_id=admin["id"], target_type=TargetType.USER, target_id=user_id,
        username=user["username"], roles=user["roles"],
    ))
    return {"message": f"Utilisateur {user['username']} activé avec succès.", "user": user}


@router.patch("/{user_id}/roles")
def change_roles(
    user_id: int,
    body: RolesRequest,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    user, previous = auth_service.change_roles(engine, user_id, actor_id=admin["id"], roles=body.roles)
    if previous != user["roles"]:
        audit.emit(background, RoleChanged(
            actor_id=admin["id"], target_type=TargetType.USER, target_id=user_id,
            previous_roles=previous, roles=user["roles"],
        ))
    return {"message": "Rôles mis à jour.", "user": user}


@router.patch("/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    background: BackgroundTasks,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
    audit: ActivityLogger = Depends(get_activity_logger),
):
    """Disable an account; its outstanding tokens stop working immediately."""
    user = auth_service.deactivate_user(engine, user_id, actor_id=admin["id"])
    audit.emit(background, UserDeactivated(
        actor_id=admin["id"], target_type=TargetType.USER, target_id=user_id,
        username=user["username"],
    ))
    return {"message": f"Utilisateur {user['username']} désactivé.", "user": user}
