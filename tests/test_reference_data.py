"""
tests/test_reference_data.py — Airports & airlines
===================================================
Reference records cannot be removed (or an airport re-coded) while a
parking points at them; airline logos follow the upload → commit →
cleanup ordering.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from skystand.database.models import ActivityLog, AuditAction
from skystand.services import airline_service, airport_service, parking_service

LOGO_URL = "https://res.cloudinary.com/demo/image/upload/v3/airline_logos/airline_1_old.png"


def _airport(client, headers, icao="LFPG", **extra):
    resp = client.post(
        "/api/airports",
        json={"icao": icao, "name": f"Airport {icao}", "country": "France", **extra},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _airline(client, headers, icao="AFR"):
    resp = client.post(
        "/api/airlines",
        json={"icao": icao, "name": f"Airline {icao}", "country": "France"},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _updates(engine) -> list[ActivityLog]:
    with Session(engine) as session:
        return session.scalars(select(ActivityLog).where(ActivityLog.action == AuditAction.UPDATE)).all()


# ===========================================================================
# Airports
# ===========================================================================
class TestAirports:
    def test_create_validates_icao(self, client, admin_headers):
        resp = client.post("/api/airports", json={"icao": "LF1", "name": "x"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "icao" in resp.json()["errors"]

    def test_create_duplicate_icao(self, client, admin_headers):
        _airport(client, admin_headers, "lfpg")
        resp = client.post("/api/airports", json={"icao": "LFPG", "name": "x"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_list_includes_parking_count(self, client, admin_headers, db_engine):
        _airport(client, admin_headers, "LFPG")
        _airport(client, admin_headers, "EGLL")
        parking_service.create_parking(db_engine, {"airline": "AFR", "airport": "LFPG"}, actor_id=None)

        body = client.get("/api/airports", params={"sort": "-parkingCount"}).json()
        assert [(a["icao"], a["parkingCount"]) for a in body["docs"]] == [("LFPG", 1), ("EGLL", 0)]
        assert body["totalDocs"] == 2

    def test_lookup_by_icao(self, client, admin_headers):
        created = _airport(client, admin_headers, "LFPG")
        assert client.get("/api/airports/icao/lfpg").json()["id"] == created["id"]
        assert client.get("/api/airports/icao/ZZZZ").status_code == 404

    def test_delete_blocked_while_referenced(self, client, admin_headers, db_engine):
        airport = _airport(client, admin_headers, "LFPG")
        for airline in ("AFR", "EZY"):
            parking_service.create_parking(db_engine, {"airline": airline, "airport": "LFPG"}, actor_id=None)

        resp = client.delete(f"/api/airports/{airport['id']}", headers=admin_headers)
        assert resp.status_code == 400
        assert "2 parking(s)" in resp.json()["message"]
        assert airport_service.get_airport(db_engine, icao="LFPG")["id"] == airport["id"]

    def test_recode_blocked_while_referenced(self, client, admin_headers, db_engine):
        airport = _airport(client, admin_headers, "LFPG")
        parking_service.create_parking(db_engine, {"airline": "AFR", "airport": "LFPG"}, actor_id=None)
        resp = client.put(f"/api/airports/{airport['id']}", json={"icao": "LFPB"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_update_then_delete(self, client, admin_headers):
        airport = _airport(client, admin_headers, "LFPG")
        resp = client.put(f"/api/airports/{airport['id']}", json={"city": "Roissy"}, headers=admin_headers)
        assert resp.json()["city"] == "Roissy"
        assert client.delete(f"/api/airports/{airport['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/airports/{airport['id']}").status_code == 404

    def test_noop_update_writes_no_audit(self, client, admin_headers, db_engine):
        airport = _airport(client, admin_headers, "LFPG")
        resp = client.put(
            f"/api/airports/{airport['id']}",
            json={"icao": "lfpg", "name": "Airport LFPG", "country": "France"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert _updates(db_engine) == []

    def test_null_icao_and_name_keep_stored_values(self, client, admin_headers, db_engine):
        airport = _airport(client, admin_headers, "LFPG")
        resp = client.put(
            f"/api/airports/{airport['id']}", json={"icao": None, "name": None}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert (resp.json()["icao"], resp.json()["name"]) == ("LFPG", "Airport LFPG")
        assert _updates(db_engine) == []

    def test_null_name_alongside_real_change(self, client, admin_headers):
        airport = _airport(client, admin_headers, "LFPG")
        resp = client.put(
            f"/api/airports/{airport['id']}", json={"name": None, "city": "Roissy"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert (resp.json()["name"], resp.json()["city"]) == ("Airport LFPG", "Roissy")

    def test_search_wildcards_are_literal(self, client, admin_headers):
        _airport(client, admin_headers, "LFPG")
        _airport(client, admin_headers, "EGLL", city="London")
        assert client.get("/api/airports", params={"search": "_"}).json()["totalDocs"] == 0
        assert client.get("/api/airports", params={"search": "lond"}).json()["totalDocs"] == 1


# ===========================================================================
# Airlines
# ===========================================================================
class TestAirlines:
    def test_icao_must_be_three_letters(self, client, admin_headers):
        resp = client.post(
            "/api/airlines", json={"icao": "AF12", "name": "x", "country": "FR"}, headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_managed_lists_missing_icaos(self, client, admin_headers, db_engine):
        _airline(client, admin_headers, "AFR")
        _airline(client, admin_headers, "BAW")
        for airline in ("AFR", "EZY"):
            parking_service.create_parking(db_engine, {"airline": airline, "airport": "LFPG"}, actor_id=None)

        body = client.get("/api/airlines/managed").json()
        assert [a["icao"] for a in body["managedAirlines"]] == ["AFR"]
        assert body["missingIcaos"] == ["EZY"]

    def test_delete_blocked_while_referenced(self, client, admin_headers, db_engine):
        airline = _airline(client, admin_headers, "AFR")
        parking_service.create_parking(db_engine, {"airline": "AFR", "airport": "LFPG"}, actor_id=None)
        resp = client.delete(f"/api/airlines/{airline['id']}", headers=admin_headers)
        assert resp.status_code == 400
        assert "1 parking(s)" in resp.json()["message"]

    def test_null_name_and_country_keep_stored_values(self, client, admin_headers, db_engine):
        airline = _airline(client, admin_headers, "AFR")
        resp = client.put(
            f"/api/airlines/{airline['id']}", json={"name": None, "country": None}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert (resp.json()["name"], resp.json()["country"]) == ("Airline AFR", "France")
        assert _updates(db_engine) == []

    def test_noop_update_writes_no_audit(self, client, admin_headers, db_engine):
        airline = _airline(client, admin_headers, "AFR")
        resp = client.put(
            f"/api/airlines/{airline['id']}", json={"name": "Airline AFR"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert _updates(db_engine) == []

        client.put(f"/api/airlines/{airline['id']}", json={"callsign": "AIRFRANS"}, headers=admin_headers)
        (row,) = _updates(db_engine)
        assert row.details["changes"] == {"callsign": {"from": None, "to": "AIRFRANS"}}

    def test_country_filter_is_exact(self, client, admin_headers):
        _airline(client, admin_headers, "AFR")
        assert client.get("/api/airlines", params={"country": "france"}).json()["totalDocs"] == 1
        assert client.get("/api/airlines", params={"country": "Fr_nce"}).json()["totalDocs"] == 0

    def test_logo_upload_replaces_previous(self, client, admin_headers, db_engine, asset_store):
        airline = _airline(client, admin_headers, "AFR")
        airline_service.set_airline_logo(
            db_engine, airline["id"], url=LOGO_URL, public_id="airline_logos/airline_1_old", actor_id=None,
        )

        resp = client.put(
            f"/api/airlines/{airline['id']}/logo",
            files={"logoFile": ("afr.svg", b"<svg/>", "image/svg+xml")},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["logoPublicId"] == asset_store.uploads[0]
        assert body["logoPublicId"].startswith(f"airline_logos/airline_{airline['id']}_")
        assert asset_store.deletes == ["airline_logos/airline_1_old"]

    def test_logo_failed_upload_keeps_old_logo(self, client, admin_headers, db_engine, asset_store):
        airline = _airline(client, admin_headers, "AFR")
        airline_service.set_airline_logo(
            db_engine, airline["id"], url=LOGO_URL, public_id="airline_logos/airline_1_old", actor_id=None,
        )
        asset_store.fail_upload = True

        resp = client.put(
            f"/api/airlines/{airline['id']}/logo",
            files={"logoFile": ("afr.png", b"png", "image/png")},
            headers=admin_headers,
        )
        assert resp.status_code == 500
        assert airline_service.get_airline(db_engine, airline["id"])["logoUrl"] == LOGO_URL
        assert asset_store.deletes == []

    def test_clearing_logo_url_discards_asset(self, client, admin_headers, db_engine, asset_store):
        airline = _airline(client, admin_headers, "AFR")
        airline_service.set_airline_logo(
            db_engine, airline["id"], url=LOGO_URL, public_id="airline_logos/airline_1_old", actor_id=None,
        )
        resp = client.put(f"/api/airlines/{airline['id']}", json={"logoUrl": ""}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["logoUrl"] is None
        assert asset_store.deletes == ["airline_logos/airline_1_old"]

    def test_delete_discards_logo(self, client, admin_headers, db_engine, asset_store):
        airline = _airline(client, admin_headers, "AFR")
        airline_service.set_airline_logo(db_engine, airline["id"], url=LOGO_URL, public_id="", actor_id=None)
        assert client.delete(f"/api/airlines/{airline['id']}", headers=admin_headers).status_code == 200
        # Public id recovered from the delivery URL
        assert asset_store.deletes == ["airline_logos/airline_1_old"]
