"""
tests/test_auth_users.py — Login, tokens & account administration
===================================================================
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import TEST_PASSWORD, auth, make_token, make_user
from skystand.database.models import ActivityLog, AuditAction
from skystand.services import auth_service


def _login(client, identifier, password=TEST_PASSWORD):
    return client.post("/api/auth/login", json={"identifier": identifier, "password": password})


def _actions(engine) -> list[AuditAction]:
    with Session(engine) as session:
        return list(session.scalars(select(ActivityLog.action).order_by(ActivityLog.id)).all())


# ===========================================================================
# Login
# ===========================================================================
class TestLogin:
    def test_login_with_username_or_email(self, client, db_engine):
        make_user(db_engine, "pilot", email="pilot@example.com")
        for identifier in ("pilot", "PILOT@example.com"):
            resp = _login(client, identifier)
            assert resp.status_code == 200, identifier
            body = resp.json()
            assert body["user"]["username"] == "pilot"
            assert "password" not in str(body["user"]).lower()
            assert body["token"]
        assert _actions(db_engine) == [AuditAction.LOGIN, AuditAction.LOGIN]

    def test_failures_are_indistinguishable(self, client, db_engine):
        make_user(db_engine, "pilot")
        make_user(db_engine, "pending", active=False)
        responses = [
            _login(client, "nobody"),
            _login(client, "pilot", "wrong-password"),
            _login(client, "pending"),
        ]
        assert {r.status_code for r in responses} == {401}
        assert len({r.text for r in responses}) == 1

    def test_short_password_is_validation_error(self, client):
        resp = _login(client, "pilot", "123")
        assert resp.status_code == 400
        assert "password" in resp.json()["errors"]

    def test_me_and_verify_token(self, client, db_engine):
        user = make_user(db_engine, "pilot")
        headers = auth(make_token(user))
        assert client.get("/api/auth/me", headers=headers).json()["username"] == "pilot"
        assert client.get("/api/auth/verify-token", headers=headers).json()["valid"] is True

    def test_logout_is_audited(self, client, db_engine):
        user = make_user(db_engine, "pilot")
        resp = client.post("/api/auth/logout", headers=auth(make_token(user)))
        assert resp.status_code == 200
        assert _actions(db_engine) == [AuditAction.LOGOUT]


# ===========================================================================
# Token re-validation
# ===========================================================================
class TestTokenRevalidation:
    def test_deactivated_user_token_is_rejected(self, client, db_engine, admin_headers):
        user = make_user(db_engine, "pilot")
        headers = auth(make_token(user))
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        resp = client.patch(f"/api/users/{user['id']}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_admin_cannot_deactivate_self(self, client, admin, admin_headers):
        resp = client.patch(f"/api/users/{admin['id']}/deactivate", headers=admin_headers)
        assert resp.status_code == 400


# ===========================================================================
# Registration & activation
# ===========================================================================
class TestRegistration:
    def test_self_registration_is_inactive(self, client, db_engine):
        resp = client.post(
            "/api/users/register",
            json={"username": "newbie", "email": "Newbie@Example.com", "password": "secret123"},
        )
        assert resp.status_code == 201
        user = resp.json()["user"]
        assert user["isActive"] is False
        assert user["roles"] == ["user"]
        assert user["email"] == "newbie@example.com"
        assert _login(client, "newbie", "secret123").status_code == 401

    def test_self_registration_conflict_is_409(self, client, db_engine):
        make_user(db_engine, "pilot")
        resp = client.post(
            "/api/users/register",
            json={"username": "pilot", "email": "other@example.com", "password": "secret123"},
        )
        assert resp.status_code == 409

    def test_admin_registration_conflict_is_400(self, client, db_engine, admin_headers):
        make_user(db_engine, "pilot")
        resp = client.post(
            "/api/auth/register",
            json={"username": "someone", "email": "pilot@example.com", "password": "secret123"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_registration_is_active(self, client, admin_headers):
        resp = client.post(
            "/api/auth/register",
            json={"username": "mod", "email": "mod@example.com", "password": "secret123", "roles": ["moderator"]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["isActive"] is True
        assert _login(client, "mod", "secret123").status_code == 200

    def test_activate_logs_validation(self, client, db_engine, admin_headers):
        pending = make_user(db_engine, "pending", active=False)
        listed = client.get("/api/users", params={"isActive": "false"}, headers=admin_headers).json()
        assert [u["username"] for u in listed] == ["pending"]

        resp = client.patch(
            f"/api/users/{pending['id']}/activate", json={"roles": ["moderator"]}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["roles"] == ["moderator"]
        assert AuditAction.VALIDATE_USER in _actions(db_engine)
        assert _login(client, "pending").status_code == 200

    def test_change_roles_rejects_unknown_role(self, client, db_engine, admin_headers):
        user = make_user(db_engine, "pilot")
        resp = client.patch(f"/api/users/{user['id']}/roles", json={"roles": ["pilot"]}, headers=admin_headers)
        assert resp.status_code == 400
        assert "roles" in resp.json()["errors"]

    def test_change_roles_is_audited(self, client, db_engine, admin_headers):
        user = make_user(db_engine, "pilot")
        resp = client.patch(
            f"/api/users/{user['id']}/roles", json={"roles": ["user", "moderator"]}, headers=admin_headers,
        )
        assert resp.json()["user"]["roles"] == ["user", "moderator"]
        assert _actions(db_engine) == [AuditAction.CHANGE_ROLE]


# ===========================================================================
# Password hashing
# ===========================================================================
class TestPasswordHashing:
    def test_hash_roundtrip(self):
        hashed = auth_service.hash_password("hunter22")
        assert hashed != "hunter22"
        assert auth_service.verify_password("hunter22", hashed)
        assert not auth_service.verify_password("hunter23", hashed)

    def test_malformed_hash_is_false(self):
        assert auth_service.verify_password("x", "not-a-bcrypt-hash") is False
