"""
skystand.services.asset_lifecycle — Keeping the CDN and the DB in step
=======================================================================

There is no transaction spanning the database and the CDN, so every
asset-bearing write follows the same ordering:

1. Upload the new asset.  If that fails nothing else happens.
2. Commit the database write.  If that fails, delete the asset that was
   just uploaded (best effort) and re-raise.
3. Delete the previous asset when its public id differs (best effort).

A failed cleanup can leave an orphaned asset on the CDN; a committed row
never points at an asset that was not uploaded.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from skystand.services.asset_store import AssetStore, StoredAsset

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def discard_asset(store: AssetStore, public_id: str | None) -> bool:
    """Delete *public_id*, logging instead of raising on failure."""
    if not public_id:
        return False
    try:
        await store.delete(public_id)
    except Exception:
        logger.warning("Best-effort delete of asset %s failed", public_id, exc_info=True)
        return False
    return True


async def replace_asset(
    store: AssetStore,
    *,
    content: bytes,
    public_id: str,
    commit: Callable[[StoredAsset], Awaitable[T]],
    previous_public_id: str | None = None,
) -> T:
    """Upload, commit, then clean up, in that order.

    *commit* receives the uploaded :class:`StoredAsset` and performs the
    database write; its return value is passed through.
    """
    stored = await store.upload(content, public_id)
    try:
        result = await commit(stored)
    except Exception:
        await discard_asset(store, stored.public_id)
        raise
    if previous_public_id and previous_public_id != stored.public_id:
        await discard_asset(store, previous_public_id)
    return result


async def remove_asset(
    store: AssetStore,
    *,
    commit: Callable[[], Awaitable[T]],
    previous_public_id: str | None,
) -> T:
    """Commit a write that drops an asset reference, then delete the asset."""
    result = await commit()
    await discard_asset(store, previous_public_id)
    return result
