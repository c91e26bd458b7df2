"""
tests/test_asset_store.py — Cloudinary adapter & asset lifecycle
==================================================================
The adapter is exercised against ``httpx.MockTransport``; no network.
"""

from __future__ import annotations

import asyncio
import hashlib
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import FakeAssetStore
from skystand.errors import UpstreamAssetError, ValidationError
from skystand.services.asset_lifecycle import discard_asset, remove_asset, replace_asset
from skystand.services.asset_store import (
    CloudinaryStore,
    StoredAsset,
    public_id_from_url,
    validate_image,
    versioned_public_id,
)


def _run(coro):
    """Helper to run async tests without pytest-asyncio."""
    return asyncio.run(coro)


def _store(handler) -> CloudinaryStore:
    return CloudinaryStore("demo", "key", "secret", transport=httpx.MockTransport(handler))


# ===========================================================================
# Pure helpers
# ===========================================================================
class TestPublicIdFromUrl:
    def test_strips_version_and_extension(self):
        url = "https://res.cloudinary.com/demo/image/upload/v1712/parking-maps/parking_4_99.jpg"
        assert public_id_from_url(url) == "parking-maps/parking_4_99"

    def test_without_version(self):
        url = "https://res.cloudinary.com/demo/image/upload/airline_logos/afr.png"
        assert public_id_from_url(url) == "airline_logos/afr"

    def test_non_cdn_url(self):
        assert public_id_from_url("https://example.com/map.png") is None
        assert public_id_from_url("") is None
        assert public_id_from_url(None) is None


class TestValidateImage:
    def test_accepts_png(self):
        validate_image("a.PNG", b"x", "image/png", max_bytes=10, field="f")

    def test_rejects_empty(self):
        with pytest.raises(ValidationError) as err:
            validate_image("a.png", b"", "image/png", max_bytes=10, field="f")
        assert "f" in err.value.errors

    def test_rejects_oversized(self):
        with pytest.raises(ValidationError):
            validate_image("a.png", b"x" * 11, "image/png", max_bytes=10, field="f")

    def test_rejects_wrong_mime(self):
        with pytest.raises(ValidationError):
            validate_image("a.png", b"x", "application/pdf", max_bytes=10, field="f")


def test_versioned_public_id_is_namespaced():
    public_id = versioned_public_id("parking-maps", "parking_3")
    folder, name = public_id.split("/")
    assert folder == "parking-maps"
    assert name.startswith("parking_3_")
    assert name.rsplit("_", 1)[1].isdigit()


# ===========================================================================
# CloudinaryStore
# ===========================================================================
class TestCloudinaryStore:
    def test_sign_is_sorted_sha1(self):
        store = CloudinaryStore("demo", "key", "abcd")
        assert store.sign({"timestamp": "1", "public_id": "x"}) == store.sign({"public_id": "x", "timestamp": "1"})
        assert store.sign({"timestamp": "1", "public_id": "x"}) == hashlib.sha1(b"public_id=x&timestamp=1abcd").hexdigest()

    def test_upload_returns_secure_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={
                "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/maps/p.png",
                "public_id": "maps/p",
            })

        stored = _run(_store(handler).upload(b"img", "maps/p"))
        assert stored == StoredAsset(
            url="https://res.cloudinary.com/demo/image/upload/v1/maps/p.png", public_id="maps/p",
        )
        assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/image/upload"

    def test_upload_error_raises(self):
        store = _store(lambda request: httpx.Response(400, json={"error": {"message": "bad"}}))
        with pytest.raises(UpstreamAssetError):
            _run(store.upload(b"img", "maps/p"))

    def test_delete_sends_signed_public_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"result": "ok"})

        _run(_store(handler).delete("maps/p"))
        assert seen["public_id"] == ["maps/p"]
        assert seen["api_key"] == ["key"]
        assert len(seen["signature"][0]) == 40

    def test_delete_not_found_is_success(self):
        _run(_store(lambda request: httpx.Response(200, json={"result": "not found"})).delete("gone"))
        _run(_store(lambda request: httpx.Response(404)).delete("gone"))

    def test_delete_other_result_raises(self):
        store = _store(lambda request: httpx.Response(200, json={"result": "error"}))
        with pytest.raises(UpstreamAssetError):
            _run(store.delete("maps/p"))

    def test_unconfigured_store_refuses(self):
        with pytest.raises(UpstreamAssetError):
            _run(CloudinaryStore("", "", "").upload(b"x", "maps/p"))


# ===========================================================================
# Lifecycle ordering
# ===========================================================================
class TestAssetLifecycle:
    def test_replace_deletes_previous_after_commit(self):
        store = FakeAssetStore()
        order = []

        async def commit(stored):
            order.append(("commit", list(store.deletes)))
            return stored.url

        url = _run(replace_asset(
            store, content=b"x", public_id="maps/new", commit=commit, previous_public_id="maps/old",
        ))
        assert url.endswith("maps/new.png")
        assert order == [("commit", [])]
        assert store.deletes == ["maps/old"]

    def test_commit_failure_discards_new_asset(self):
        store = FakeAssetStore()

        async def commit(stored):
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            _run(replace_asset(
                store, content=b"x", public_id="maps/new", commit=commit, previous_public_id="maps/old",
            ))
        assert store.deletes == ["maps/new"]

    def test_same_public_id_is_not_deleted(self):
        store = FakeAssetStore()

        async def commit(stored):
            return None

        _run(replace_asset(store, content=b"x", public_id="maps/p", commit=commit, previous_public_id="maps/p"))
        assert store.deletes == []

    def test_upload_failure_skips_commit(self):
        store = FakeAssetStore(fail_upload=True)
        called = []

        async def commit(stored):
            called.append(stored)

        with pytest.raises(UpstreamAssetError):
            _run(replace_asset(store, content=b"x", public_id="maps/p", commit=commit))
        assert called == []

    def test_remove_commits_then_discards(self):
        store = FakeAssetStore()

        async def commit():
            return "saved"

        assert _run(remove_asset(store, commit=commit, previous_public_id="maps/old")) == "saved"
        assert store.deletes == ["maps/old"]

    def test_discard_is_best_effort(self):
        store = FakeAssetStore(fail_delete=True)
        assert _run(discard_asset(store, "maps/p")) is False
        assert _run(discard_asset(store, None)) is False
        assert store.deletes == ["maps/p"]
