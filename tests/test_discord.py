"""
tests/test_discord.py — Bot feedback, command logs & retention
================================================================
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from skystand.database.models import ActivityLog, AuditAction, CommandLog
from skystand.services import command_log_service, feedback_service
from skystand.services.command_log_service import resolve_period


def _bot_headers() -> dict:
    return {"Authorization": f"Bearer {os.environ['API_KEY']}"}


def _command(engine, *, days_ago: float = 0, **fields):
    values = {
        "command": "parking",
        "user_id": "42",
        "user_nickname": "Pilot",
        "airport": "LFPG",
        "airline": "AFR",
        "found": True,
        "parkings_count": 1,
        "response_time": 100.0,
        "timestamp": datetime.now(UTC) - timedelta(days=days_ago),
    }
    values.update(fields)
    with Session(engine) as session:
        row = CommandLog(**values)
        session.add(row)
        session.commit()
        return row.id


def _clean_audits(engine) -> list[ActivityLog]:
    with Session(engine) as session:
        return session.scalars(
            select(ActivityLog).where(ActivityLog.action == AuditAction.CLEAN_LOGS)
        ).all()


# ===========================================================================
# Feedback ingestion
# ===========================================================================
class TestFeedbackIngestion:
    PAYLOAD = {
        "id": "fb-1",
        "userId": "1234",
        "username": "pilot#0001",
        "hasInformation": True,
        "airport": "lfpg",
        "airline": "afr",
        "notes": json.dumps({"stands": "K31-K35", "terminal": "2E"}),
    }

    def test_requires_api_key(self, client):
        assert client.post("/api/discord-feedback", json=self.PAYLOAD).status_code == 401
        resp = client.post(
            "/api/discord-feedback", json=self.PAYLOAD, headers={"Authorization": "Bearer wrong"},
        )
        assert resp.status_code == 401

    def test_create_parses_notes(self, client, db_engine):
        resp = client.post("/api/discord-feedback", json=self.PAYLOAD, headers=_bot_headers())
        assert resp.status_code == 201
        body = resp.json()
        assert body["feedbackId"] == "fb-1"

        stored = feedback_service.get_feedback(db_engine, body["id"])
        assert stored["airport"] == "LFPG"
        assert stored["status"] == "NEW"
        assert stored["parsedDetails"] == {
            "stands": "K31-K35", "terminal": "2E", "additionalInfo": "", "email": "",
        }
        assert stored["displayName"] == "AFR à LFPG (2E)"

    def test_duplicate_id_is_409(self, client):
        assert client.post("/api/discord-feedback", json=self.PAYLOAD, headers=_bot_headers()).status_code == 201
        assert client.post("/api/discord-feedback", json=self.PAYLOAD, headers=_bot_headers()).status_code == 409


class TestParseNotes:
    def test_plain_text(self):
        assert feedback_service.parse_notes("Gate K31 only") is None

    def test_broken_json(self):
        assert feedback_service.parse_notes("{not json}") is None

    def test_missing_keys_become_empty(self):
        assert feedback_service.parse_notes('{"email": "a@b.c"}') == {
            "stands": "", "terminal": "", "additionalInfo": "", "email": "a@b.c",
        }


# ===========================================================================
# Feedback administration
# ===========================================================================
class TestFeedbackAdmin:
    def _create(self, engine, feedback_id="fb-1", **extra):
        return feedback_service.create_feedback(
            engine, {"id": feedback_id, "userId": "1", "airport": "LFPG", **extra},
        )

    def test_complete_stamps_and_assigns(self, client, admin, admin_headers, db_engine):
        feedback = self._create(db_engine)
        resp = client.patch(
            f"/api/discord-feedback/{feedback['id']}/status",
            json={"status": "COMPLETED"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "COMPLETED"
        assert body["completedAt"] is not None
        assert body["assignedTo"] == admin["id"]

        reopened = client.patch(
            f"/api/discord-feedback/{feedback['id']}", json={"status": "PENDING"}, headers=admin_headers,
        ).json()
        assert reopened["completedAt"] is None

    def test_unknown_status_is_400(self, client, admin_headers, db_engine):
        feedback = self._create(db_engine)
        resp = client.patch(
            f"/api/discord-feedback/{feedback['id']}/status", json={"status": "DONE"}, headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_list_filter_and_stats(self, client, admin_headers, db_engine):
        self._create(db_engine, "fb-1", airline="AFR")
        self._create(db_engine, "fb-2", airline="AFR", status="PENDING")
        self._create(db_engine, "fb-3", airport="EGLL")

        listed = client.get("/api/discord-feedback", params={"status": "NEW"}, headers=admin_headers).json()
        assert listed["totalDocs"] == 2

        stats = client.get("/api/discord-feedback/stats", headers=admin_headers).json()
        assert {s["status"]: s["count"] for s in stats["byStatus"]} == {"NEW": 2, "PENDING": 1}
        assert stats["byAirport"][0] == {"airport": "LFPG", "count": 2}
        assert stats["byAirline"] == [{"airline": "AFR", "count": 2}]
        assert sum(d["count"] for d in stats["daily"]) == 3

    def test_noop_update_writes_no_audit(self, client, admin_headers, db_engine):
        feedback = self._create(db_engine)
        feedback_service.update_feedback(db_engine, feedback["id"], {"adminNotes": "checked"}, actor_id=None)
        for path, payload in (("", {"adminNotes": "checked"}), ("/status", {"status": "NEW"})):
            resp = client.patch(
                f"/api/discord-feedback/{feedback['id']}{path}", json=payload, headers=admin_headers,
            )
            assert resp.status_code == 200
            assert resp.json()["adminNotes"] == "checked"
        with Session(db_engine) as session:
            updates = session.scalars(
                select(ActivityLog).where(ActivityLog.action == AuditAction.UPDATE)
            ).all()
        assert updates == []

    def test_delete(self, client, admin_headers, db_engine):
        feedback = self._create(db_engine)
        assert client.delete(f"/api/discord-feedback/{feedback['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/discord-feedback/{feedback['id']}", headers=admin_headers).status_code == 404


# ===========================================================================
# Command logs
# ===========================================================================
class TestResolvePeriod:
    def test_values(self):
        assert resolve_period("all", 30) is None
        assert resolve_period(None, 30) == 30
        assert resolve_period("", 30) == 30
        assert resolve_period("7", 30) == 7
        assert resolve_period("-2", 30) == 30
        assert resolve_period("week", 30) == 30


class TestCommandLogs:
    def test_list_searches_and_pages(self, client, admin_headers, db_engine):
        _command(db_engine, user_nickname="Alice")
        _command(db_engine, user_nickname="Bob", airport="EGLL")
        body = client.get("/api/discord-logs", params={"search": "egl"}, headers=admin_headers).json()
        assert body["totalDocs"] == 1
        assert body["docs"][0]["user"]["nickname"] == "Bob"
        assert body["docs"][0]["details"]["acars"]["used"] is False
        wildcard = client.get("/api/discord-logs", params={"search": "_"}, headers=admin_headers).json()
        assert wildcard["totalDocs"] == 0

    def test_period_filter(self, client, admin_headers, db_engine):
        _command(db_engine, days_ago=10)
        _command(db_engine, days_ago=1)
        assert client.get("/api/discord-logs", params={"period": "7"}, headers=admin_headers).json()["totalDocs"] == 1
        assert client.get("/api/discord-logs", params={"period": "all"}, headers=admin_headers).json()["totalDocs"] == 2

    def test_stats_are_zero_filled(self, db_engine):
        _command(db_engine, days_ago=0)
        _command(db_engine, days_ago=2, found=False, acars_used=True, acars_network="VATSIM", acars_success=True)

        stats = command_log_service.command_stats(db_engine, 7)
        assert stats["totalCommands"] == 2
        assert stats["successfulCommands"] == 1
        assert stats["uniqueUsers"] == 1
        assert len(stats["usageByDay"]) == 8
        assert sum(d["count"] for d in stats["usageByDay"]) == 2
        assert stats["usageByDay"][-1]["successRate"] == 100
        assert stats["topAirports"] == [{"airport": "LFPG", "count": 2}]
        assert stats["acarsStats"]["totalUsed"] == 1
        assert stats["acarsStats"]["successRate"] == 100
        assert stats["acarsStats"]["topNetworks"] == [{"network": "VATSIM", "count": 1}]

    def test_stats_on_empty_table(self, db_engine):
        stats = command_log_service.command_stats(db_engine, None)
        assert stats["totalCommands"] == 0
        assert stats["averageResponseTime"] == 0
        assert all(d["count"] == 0 for d in stats["usageByDay"])

    def test_oldest(self, client, admin_headers, db_engine):
        empty = client.get("/api/discord-logs/oldest", headers=admin_headers).json()
        assert empty["oldestLogTimestamp"] is None
        _command(db_engine, days_ago=3.5)
        body = client.get("/api/discord-logs/oldest", headers=admin_headers).json()
        assert body["daysAgo"] == 4

    def test_stats_reset_covers_all_history(self, client, admin_headers, db_engine):
        _command(db_engine, days_ago=90)
        body = client.post("/api/discord-logs/stats/reset", headers=admin_headers).json()
        assert body["stats"]["totalCommands"] == 1

    def test_delete_single_log(self, client, admin_headers, db_engine):
        log_id = _command(db_engine)
        assert client.delete(f"/api/discord-logs/{log_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/discord-logs/{log_id}", headers=admin_headers).status_code == 404


# ===========================================================================
# Manual clean
# ===========================================================================
class TestCleanLogs:
    def test_clean_deletes_old_logs_and_audits(self, client, admin_headers, db_engine):
        _command(db_engine, days_ago=40)
        _command(db_engine, days_ago=1)

        resp = client.post("/api/discord-logs/clean", params={"days": "30"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["deletedCount"] == 1
        assert resp.json()["daysKept"] == 30
        (audit,) = _clean_audits(db_engine)
        assert audit.details["deletedCount"] == 1

    def test_clean_reads_days_from_body(self, client, admin_headers, db_engine):
        _command(db_engine, days_ago=10)
        resp = client.post("/api/discord-logs/clean", json={"days": 5}, headers=admin_headers)
        assert resp.json() == {
            "message": "1 log(s) de plus de 5 jours supprimé(s).", "deletedCount": 1, "daysKept": 5,
        }

    def test_nothing_to_clean_writes_no_audit(self, client, admin_headers, db_engine):
        _command(db_engine, days_ago=1)
        resp = client.post("/api/discord-logs/clean", headers=admin_headers)
        assert resp.json()["deletedCount"] == 0
        assert _clean_audits(db_engine) == []
