"""
skystand.services.auth_service — Accounts, credentials & activation
====================================================================

Passwords are stored as bcrypt hashes.  Accounts move through::

    inactive (self-registered) ──activate──▶ active ──deactivate──▶ inactive
                                               │ ▲
                                               └─┘ change roles

Login failures (unknown identifier, inactive account, wrong password) all
raise the same :class:`AuthenticationError` so callers cannot tell them
apart.
"""

from __future__ import annotations

import logging

import bcrypt
from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError

from skystand.constants import ROLE_USER, VALID_ROLES
from skystand.database.engine import get_session
from skystand.database.models import User
from skystand.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from skystand.services.common import iso

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Identifiants invalides."

# Checked against when the identifier is unknown so every failure costs one bcrypt round
_DUMMY_HASH = bcrypt.hashpw(b"skystand-timing-equalizer", bcrypt.gensalt()).decode("utf-8")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def serialize_user(user: User) -> dict:
    """Public view of a user.  Never includes the password hash."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "roles": list(user.roles or []),
        "isActive": user.is_active,
        "lastUpdatedBy": user.last_updated_by,
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def _validate_roles(roles: list[str]) -> list[str]:
    unknown = sorted(set(roles) - VALID_ROLES)
    if unknown:
        raise ValidationError(errors={
            "roles": [f"Rôles invalides : {', '.join(unknown)}. "
                      f"Autorisés : {', '.join(sorted(VALID_ROLES))}."]
        })
    if not roles:
        raise ValidationError(errors={"roles": ["Au moins un rôle est requis."]})
    # Keep caller order, drop duplicates
    return list(dict.fromkeys(roles))


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------
def authenticate(engine: Engine, identifier: str, password: str) -> dict:
    """Return the public user for valid credentials of an active account.

    *identifier* matches the username exactly or the email case-insensitively.
    """
    ident = identifier.strip()
    with get_session(engine) as session:
        user = session.scalar(
            select(User).where(or_(User.username == ident, User.email == ident.lower()))
        )
        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise AuthenticationError(INVALID_CREDENTIALS)
        password_ok = verify_password(password, user.password_hash)
        if not password_ok or not user.is_active:
            raise AuthenticationError(INVALID_CREDENTIALS)
        return serialize_user(user)


def get_active_user(engine: Engine, user_id: int) -> dict | None:
    """Re-read the user behind a token.  ``None`` if gone or inactive."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return serialize_user(user)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def register_user(
    engine: Engine,
    *,
    username: str,
    email: str,
    password: str,
    roles: list[str] | None = None,
    active: bool,
    actor_id: int | None = None,
    conflict_status: int = 400,
) -> dict:
    """Create an account.

    Admin registration passes ``active=True``; self-registration creates an
    inactive ``["user"]`` account that an admin must activate.
    """
    username = username.strip()
    email = email.strip().lower()
    roles = _validate_roles(roles or [ROLE_USER])
    conflict = ConflictError(
        "Un utilisateur avec ce nom ou cet email existe déjà.",
        status_code=conflict_status,
    )

    try:
        with get_session(engine) as session:
            exists = session.scalar(
                select(User.id).where(or_(User.username == username, User.email == email))
            )
            if exists is not None:
                raise conflict
            user = User(
                username=username,
                email=email,
                password_hash=hash_password(password),
                roles=roles,
                is_active=active,
                last_updated_by=actor_id,
            )
            session.add(user)
            session.flush()
            logger.info("Registered user %s (id=%d, active=%s)", username, user.id, active)
            return serialize_user(user)
    except IntegrityError:
        raise conflict


# ---------------------------------------------------------------------------
# Admin management
# ---------------------------------------------------------------------------
def list_users(engine: Engine, *, is_active: bool | None = None) -> list[dict]:
    """All users, newest first, optionally filtered on activation state."""
    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)
    with get_session(engine) as session:
        return [serialize_user(u) for u in session.scalars(stmt).all()]


def activate_user(
    engine: Engine,
    user_id: int,
    *,
    actor_id: int,
    roles: list[str] | None = None,
) -> dict:
    """Mark the account active, optionally replacing its roles."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("Utilisateur introuvable.")
        if roles is not None:
            user.roles = _validate_roles(roles)
        user.is_active = True
        user.last_updated_by = actor_id
        session.flush()
        logger.info("User %s activated by %d with roles %s", user.username, actor_id, user.roles)
        return serialize_user(user)


def change_roles(engine: Engine, user_id: int, *, actor_id: int, roles: list[str]) -> tuple[dict, list[str]]:
    """Replace the roles of an active user.  Returns ``(user, previous_roles)``."""
    new_roles = _validate_roles(roles)
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("Utilisateur introuvable.")
        if not user.is_active:
            raise ValidationError("Le compte doit être activé avant de changer ses rôles.")
        previous = list(user.roles or [])
        user.roles = new_roles
        user.last_updated_by = actor_id
        session.flush()
        return serialize_user(user), previous


def deactivate_user(engine: Engine, user_id: int, *, actor_id: int) -> dict:
    """Disable an account.  Existing tokens stop working on their next use."""
    if user_id == actor_id:
        raise ValidationError("Vous ne pouvez pas désactiver votre propre compte.")
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("Utilisateur introuvable.")
        user.is_active = False
        user.last_updated_by = actor_id
        session.flush()
        logger.info("User %s deactivated by %d", user.username, actor_id)
        return serialize_user(user)
