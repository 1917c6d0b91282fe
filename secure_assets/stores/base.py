"""Asset store protocol and the filtering rules shared by every backend."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from secure_assets.core.errors import ValidationFailedError
from secure_assets.models.common import utcnow
from secure_assets.schemas.asset import AssetRecord

SORTABLE_FIELDS = frozenset({"created_at", "label", "slug", "disk", "visibility", "filename"})
PATCHABLE_FIELDS = frozenset(
    {
        "label",
        "slug",
        "filename",
        "path",
        "mime",
        "size",
        "sha256",
        "verify_hash",
        "disposition",
        "visibility",
        "github_url",
        "cdn_url",
    }
)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(slots=True)
class AssetFilters:
    q: str | None = None
    label: str | None = None
    disk: str | None = None
    visibility: str | None = None
    include_deleted: bool = False


@runtime_checkable
class AssetStore(Protocol):
    """Persistence contract for asset records.

    Implementations must raise ``SlugConflictError`` when an insert or a slug
    change would collide with a slug already held by another asset.
    ``slug_exists`` also counts slugs held by soft-deleted assets, which stay
    reserved until the owning asset changes its slug.
    """

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def insert(self, asset: AssetRecord) -> AssetRecord: ...

    async def find_by_slug(self, slug: str) -> AssetRecord | None: ...

    async def slug_exists(self, slug: str) -> bool: ...

    async def get_by_id(self, asset_id: str) -> AssetRecord | None: ...

    async def update(self, asset_id: str, patch: Mapping[str, Any]) -> AssetRecord | None: ...

    async def soft_delete(self, asset_id: str) -> bool: ...

    async def restore(self, asset_id: str) -> bool: ...

    async def list(
        self,
        filters: AssetFilters | None = None,
        *,
        sort: str | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AssetRecord], int]: ...

    async def list_all(self, filters: AssetFilters | None = None) -> list[AssetRecord]: ...

    async def count(self, filters: AssetFilters | None = None) -> int: ...


def clamp_limit(limit: int | None, default: int = DEFAULT_LIMIT) -> int:
    if limit is None:
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return default
    return min(max(value, 1), MAX_LIMIT)


def clamp_offset(offset: int | None) -> int:
    try:
        return max(int(offset or 0), 0)
    except (TypeError, ValueError):
        return 0


def normalize_sort(sort: str | None) -> str:
    key = str(sort or "").strip()
    return key if key in SORTABLE_FIELDS else "created_at"


def normalize_order(order: str | None) -> str:
    return "asc" if str(order or "").strip().lower() == "asc" else "desc"


def clean_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in patch.items() if k in PATCHABLE_FIELDS}


def merge_patch(current: AssetRecord, changes: Mapping[str, Any]) -> AssetRecord:
    """Validated copy of ``current`` with ``changes`` applied and ``updated_at`` refreshed."""
    try:
        return AssetRecord.model_validate({**current.model_dump(), **changes, "updated_at": utcnow()})
    except ValidationError as exc:
        raise ValidationFailedError(f"Invalid asset update: {exc.errors()[0]['msg']}") from exc


def _contains(value: str | None, needle: str) -> bool:
    return needle in str(value or "").lower()


def matches(asset: AssetRecord, filters: AssetFilters) -> bool:
    if not filters.include_deleted and asset.is_deleted:
        return False
    if filters.q:
        q = filters.q.lower()
        if not (_contains(asset.label, q) or _contains(asset.slug, q) or _contains(asset.filename, q)):
            return False
    if filters.label and not _contains(asset.label, filters.label.lower()):
        return False
    if filters.disk and asset.disk != filters.disk:
        return False
    if filters.visibility and asset.visibility != filters.visibility:
        return False
    return True


def _sort_value(asset: AssetRecord, key: str) -> str:
    value = getattr(asset, key, None)
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value).lower()


def select_assets(
    assets: Iterable[AssetRecord],
    filters: AssetFilters | None = None,
    *,
    sort: str | None = None,
    order: str | None = None,
) -> list[AssetRecord]:
    """Filter and sort in memory for backends without a query engine."""
    filters = filters or AssetFilters()
    key = normalize_sort(sort)
    rows = [a for a in assets if matches(a, filters)]
    rows.sort(key=lambda a: _sort_value(a, key), reverse=normalize_order(order) == "desc")
    return rows


def paginate(
    rows: list[AssetRecord],
    *,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[list[AssetRecord], int]:
    start = clamp_offset(offset)
    end = start + clamp_limit(limit)
    return rows[start:end], len(rows)
