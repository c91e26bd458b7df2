"""
skystand.services.asset_store — CDN adapter for logos & parking maps
=====================================================================

Images are hosted on Cloudinary and addressed by a *public id*
(``parking-maps/parking_12_1718000000000``).  The adapter talks to the
Cloudinary REST API directly with a signed ``httpx`` request:

* :meth:`CloudinaryStore.upload` overwrites on public-id collision and
  returns the ``https`` URL plus the public id.
* :meth:`CloudinaryStore.delete` treats "not found" as success.

Uploads are validated first (size, extension, MIME type) so rejected
files never reach the CDN.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Protocol
from urllib.parse import urlparse

import httpx

from skystand.errors import UpstreamAssetError, ValidationError

logger = logging.getLogger(__name__)

CLOUDINARY_API = "https://api.cloudinary.com/v1_1"

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"}
ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/svg+xml",
}

_VERSION_SEGMENT = re.compile(r"^v\d+$")


@dataclass(frozen=True, slots=True)
class StoredAsset:
    url: str
    public_id: str


class AssetStore(Protocol):
    async def upload(self, content: bytes, public_id: str) -> StoredAsset: ...

    async def delete(self, public_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def validate_image(
    filename: str | None,
    content: bytes,
    content_type: str | None,
    *,
    max_bytes: int,
    field: str,
) -> None:
    """Reject empty, oversized or non-image uploads with a 400."""
    if not content:
        raise ValidationError(errors={field: ["Fichier vide."]})
    if len(content) > max_bytes:
        raise ValidationError(errors={
            field: [f"Fichier trop volumineux (max {max_bytes // 1024 // 1024} Mo)."]
        })
    ext = PurePosixPath(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(errors={
            field: [f"Extension non autorisée : {ext or '(aucune)'!r}. "
                    f"Autorisées : {', '.join(sorted(ALLOWED_EXTENSIONS))}"]
        })
    if content_type and content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(errors={field: [f"Type MIME non autorisé : {content_type!r}."]})


def versioned_public_id(folder: str, stem: str) -> str:
    """``<folder>/<stem>_<epoch ms>`` — a fresh id per upload busts CDN caches."""
    return f"{folder}/{stem}_{int(time.time() * 1000)}"


def public_id_from_url(url: str | None) -> str | None:
    """Recover the public id from a Cloudinary delivery URL.

    ``https://res.cloudinary.com/demo/image/upload/v1712/parking-maps/p_1.png``
    → ``parking-maps/p_1``.  Returns ``None`` for URLs that are not
    Cloudinary ``/upload/`` URLs.
    """
    if not url:
        return None
    path = urlparse(url).path
    marker = "/upload/"
    if marker not in path:
        return None
    segments = [s for s in path.split(marker, 1)[1].split("/") if s]
    if segments and _VERSION_SEGMENT.match(segments[0]):
        segments = segments[1:]
    if not segments:
        return None
    segments[-1] = PurePosixPath(segments[-1]).stem
    return "/".join(segments)


# ---------------------------------------------------------------------------
# Cloudinary
# ---------------------------------------------------------------------------
class CloudinaryStore:
    """Signed Cloudinary upload/destroy over ``httpx``."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._transport = transport

    @classmethod
    def from_env(cls) -> CloudinaryStore:
        return cls(
            os.getenv("CLOUDINARY_CLOUD_NAME", "").strip(),
            os.getenv("CLOUDINARY_API_KEY", "").strip(),
            os.getenv("CLOUDINARY_API_SECRET", "").strip(),
        )

    @property
    def configured(self) -> bool:
        return bool(self._cloud_name and self._api_key and self._api_secret)

    def sign(self, params: dict[str, str]) -> str:
        """Cloudinary signature: SHA-1 of sorted ``k=v`` pairs + secret."""
        payload = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1((payload + self._api_secret).encode("utf-8")).hexdigest()

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {**params, "api_key": self._api_key, "signature": self.sign(params)}

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        return httpx.AsyncClient(timeout=10, transport=transport)

    def _endpoint(self, action: str) -> str:
        return f"{CLOUDINARY_API}/{self._cloud_name}/image/{action}"

    async def upload(self, content: bytes, public_id: str) -> StoredAsset:
        if not self.configured:
            raise UpstreamAssetError("Le CDN n'est pas configuré (CLOUDINARY_*).")
        data = self._signed({"public_id": public_id, "overwrite": "true"})
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._endpoint("upload"),
                    data=data,
                    files={"file": (public_id.rsplit("/", 1)[-1], content)},
                )
        except httpx.HTTPError as exc:
            logger.error("Cloudinary upload of %s failed: %s", public_id, exc)
            raise UpstreamAssetError() from exc

        if resp.status_code != 200:
            logger.error(
                "Cloudinary upload of %s rejected (%d): %s",
                public_id, resp.status_code, resp.text[:200],
            )
            raise UpstreamAssetError()

        body = resp.json()
        logger.info("Uploaded asset %s", body.get("public_id", public_id))
        return StoredAsset(url=body["secure_url"], public_id=body.get("public_id", public_id))

    async def delete(self, public_id: str) -> None:
        if not self.configured:
            raise UpstreamAssetError("Le CDN n'est pas configuré (CLOUDINARY_*).")
        data = self._signed({"public_id": public_id})
        try:
            async with self._client() as client:
                resp = await client.post(self._endpoint("destroy"), data=data)
        except httpx.HTTPError as exc:
            raise UpstreamAssetError(f"Suppression de {public_id} impossible.") from exc

        if resp.status_code == 404:
            logger.info("Asset %s already absent", public_id)
            return
        if resp.status_code != 200:
            raise UpstreamAssetError(
                f"Suppression de {public_id} refusée ({resp.status_code})."
            )
        result = resp.json().get("result")
        if result == "not found":
            logger.info("Asset %s already absent", public_id)
        elif result != "ok":
            raise UpstreamAssetError(f"Suppression de {public_id} : réponse {result!r}.")
        else:
            logger.info("Deleted asset %s", public_id)
