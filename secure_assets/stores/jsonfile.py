from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import orjson

from secure_assets.core.errors import SlugConflictError
from secure_assets.models.common import utcnow
from secure_assets.schemas.asset import AssetRecord
from secure_assets.stores.base import AssetFilters, clean_patch, merge_patch, paginate, select_assets

logger = logging.getLogger(__name__)


class JsonFileAssetStore:
    """Single JSON document holding ``assets`` keyed by id plus a ``slugs`` index.

    Meant for a single process: the lock serialises writers inside one event
    loop only.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._assets: dict[str, AssetRecord] = {}
        self._slugs: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        doc = await asyncio.to_thread(self._read)
        self._assets = {
            asset_id: AssetRecord.model_validate(raw) for asset_id, raw in (doc.get("assets") or {}).items()
        }
        self._slugs = {str(k): str(v) for k, v in (doc.get("slugs") or {}).items()}
        # Rebuild missing index entries from the records themselves.
        for asset in self._assets.values():
            self._slugs.setdefault(asset.slug, asset.id)
        logger.info("JSON asset store loaded %d assets from %s", len(self._assets), self.path)

    async def close(self) -> None:
        async with self._lock:
            await self._flush()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        raw = self.path.read_bytes()
        if not raw.strip():
            return {}
        return orjson.loads(raw)

    def _write(self, payload: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_bytes(payload)
        os.replace(tmp, self.path)

    async def _flush(self) -> None:
        doc = {
            "assets": {asset_id: a.model_dump(mode="json") for asset_id, a in self._assets.items()},
            "slugs": dict(self._slugs),
        }
        await asyncio.to_thread(self._write, orjson.dumps(doc, option=orjson.OPT_INDENT_2))

    async def insert(self, asset: AssetRecord) -> AssetRecord:
        async with self._lock:
            if asset.slug in self._slugs:
                raise SlugConflictError(asset.slug)
            record = asset.model_copy(update={"created_at": utcnow(), "updated_at": None, "deleted_at": None})
            self._assets[record.id] = record
            self._slugs[record.slug] = record.id
            try:
                await self._flush()
            except Exception:
                self._assets.pop(record.id, None)
                self._slugs.pop(record.slug, None)
                raise
            return record

    async def find_by_slug(self, slug: str) -> AssetRecord | None:
        asset_id = self._slugs.get(slug)
        asset = self._assets.get(asset_id) if asset_id else None
        if asset is None or asset.is_deleted:
            return None
        return asset

    async def slug_exists(self, slug: str) -> bool:
        return slug in self._slugs

    async def get_by_id(self, asset_id: str) -> AssetRecord | None:
        return self._assets.get(asset_id)

    async def update(self, asset_id: str, patch: Mapping[str, Any]) -> AssetRecord | None:
        changes = clean_patch(patch)
        async with self._lock:
            current = self._assets.get(asset_id)
            if current is None or current.is_deleted:
                return None
            updated = merge_patch(current, changes)
            moved = updated.slug != current.slug
            if moved and updated.slug in self._slugs:
                raise SlugConflictError(updated.slug)

            self._assets[asset_id] = updated
            if moved:
                self._slugs.pop(current.slug, None)
                self._slugs[updated.slug] = asset_id
            try:
                await self._flush()
            except Exception:
                self._assets[asset_id] = current
                if moved:
                    self._slugs.pop(updated.slug, None)
                    self._slugs[current.slug] = asset_id
                raise
            return updated

    async def _set_deleted(self, asset_id: str, deleted: bool) -> bool:
        async with self._lock:
            current = self._assets.get(asset_id)
            if current is None or current.is_deleted == deleted:
                return False
            self._assets[asset_id] = current.model_copy(update={"deleted_at": utcnow() if deleted else None})
            try:
                await self._flush()
            except Exception:
                self._assets[asset_id] = current
                raise
            return True

    async def soft_delete(self, asset_id: str) -> bool:
        # The slug index entry stays, keeping the slug reserved.
        return await self._set_deleted(asset_id, True)

    async def restore(self, asset_id: str) -> bool:
        return await self._set_deleted(asset_id, False)

    async def list(
        self,
        filters: AssetFilters | None = None,
        *,
        sort: str | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AssetRecord], int]:
        rows = select_assets(self._assets.values(), filters, sort=sort, order=order)
        return paginate(rows, limit=limit, offset=offset)

    async def list_all(self, filters: AssetFilters | None = None) -> list[AssetRecord]:
        return select_assets(self._assets.values(), filters)

    async def count(self, filters: AssetFilters | None = None) -> int:
        return len(select_assets(self._assets.values(), filters))
