"""
skystand.services.common — Pagination & change-tracking helpers
================================================================

Every list endpoint answers with the same envelope::

    {docs, totalDocs, limit, page, totalPages,
     hasPrevPage, hasNextPage, prevPage, nextPage}

and every update computes a ``{field: {"from": old, "to": new}}`` diff so
no-op updates can be detected and skipped.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from skystand.constants import MAX_PAGE_SIZE


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(raw: Any) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def clamp_page(
    page: Any,
    limit: Any,
    *,
    default_limit: int,
    max_limit: int = MAX_PAGE_SIZE,
) -> PageRequest:
    """Coerce raw query values into a valid :class:`PageRequest`.

    Invalid values never raise: a page below 1 or unparsable becomes 1, an
    unusable limit becomes *default_limit*, and limits above *max_limit*
    are capped.
    """
    page_num = _to_int(page)
    if page_num is None or page_num < 1:
        page_num = 1
    size = _to_int(limit)
    if size is None or size < 1:
        size = default_limit
    return PageRequest(page=page_num, limit=min(size, max_limit))


def build_page(docs: Sequence[Any], total: int, request: PageRequest) -> dict:
    """Wrap *docs* in the shared pagination envelope."""
    total_pages = math.ceil(total / request.limit) if total else 0
    has_prev = request.page > 1
    has_next = request.page < total_pages
    return {
        "docs": list(docs),
        "totalDocs": total,
        "limit": request.limit,
        "page": request.page,
        "totalPages": total_pages,
        "hasPrevPage": has_prev,
        "hasNextPage": has_next,
        "prevPage": request.page - 1 if has_prev else None,
        "nextPage": request.page + 1 if has_next else None,
    }


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def day_key(value: Any) -> str:
    """Normalize a ``date()`` SQL result to ``YYYY-MM-DD``.

    PostgreSQL returns :class:`datetime.date`, SQLite returns a string.
    """
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


# ---------------------------------------------------------------------------
# Change tracking
# ---------------------------------------------------------------------------
def _comparable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def apply_changes(
    obj: Any,
    changes: Mapping[str, Any],
    *,
    labels: Mapping[str, str] | None = None,
) -> dict[str, dict[str, Any]]:
    """Set each attribute in *changes* on *obj* and return what really changed.

    Parameters
    ----------
    obj:
        ORM instance to mutate.
    changes:
        ``{attribute: new_value}``; attributes whose value is already equal
        are left untouched.
    labels:
        Optional mapping from attribute name to the public field name used
        in the returned diff (``gate_porte`` → ``gate.porte``).

    Returns
    -------
    dict
        ``{field: {"from": old, "to": new}}`` for the modified attributes
        only.  Empty when the update is a no-op.
    """
    labels = labels or {}
    diff: dict[str, dict[str, Any]] = {}
    for attr, new_value in changes.items():
        old_value = getattr(obj, attr)
        if old_value == new_value:
            continue
        setattr(obj, attr, new_value)
        diff[labels.get(attr, attr)] = {
            "from": _comparable(old_value),
            "to": _comparable(new_value),
        }
    return diff


def pick_changes(
    changes: Mapping[str, Any],
    fields: Sequence[str],
    *,
    required: Sequence[str] = (),
) -> dict[str, Any]:
    """Select the editable *fields* present in *changes*.

    An explicit ``None`` on a *required* field keeps the stored value, so
    ``{"name": null}`` is a no-op rather than a NOT NULL violation.
    """
    return {
        key: changes[key]
        for key in fields
        if key in changes and not (changes[key] is None and key in required)
    }
