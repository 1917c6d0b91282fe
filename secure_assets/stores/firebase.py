"""Firebase Realtime Database backend.

Layout under the configured root::

    /assets/{id}  full asset document
    /slugs/{slug} {"id": "..."}  slug index, claimed with a transaction

The Admin SDK is blocking, so every operation runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import firebase_admin
import orjson
from firebase_admin import credentials, db

from secure_assets.core.errors import SlugConflictError, ValidationFailedError
from secure_assets.models.common import utcnow
from secure_assets.schemas.asset import AssetRecord
from secure_assets.stores.base import AssetFilters, clean_patch, merge_patch, paginate, select_assets

logger = logging.getLogger(__name__)

# Characters RTDB refuses in a child key.
_ILLEGAL_KEY_CHARS = frozenset(".$#[]/?")


class _SlugTaken(Exception):
    pass


def _is_valid_key(key: str) -> bool:
    return bool(key) and not any(ch in _ILLEGAL_KEY_CHARS for ch in key)


def _load_record(raw: Any) -> AssetRecord | None:
    if not isinstance(raw, dict):
        return None
    return AssetRecord.model_validate(raw)


def _dump_record(asset: AssetRecord) -> dict[str, Any]:
    # RTDB drops null leaves anyway; keep the document compact.
    return {k: v for k, v in asset.model_dump(mode="json").items() if v is not None}


class FirebaseAssetStore:
    def __init__(
        self,
        *,
        database_url: str = "",
        service_account_json: str = "",
        service_account_file: str = "",
        root_path: str = "/",
        root: db.Reference | None = None,
        app_name: str = "secure-assets",
    ) -> None:
        self.database_url = database_url
        self.service_account_json = service_account_json
        self.service_account_file = service_account_file
        self.root_path = root_path or "/"
        self.app_name = app_name
        self._root = root
        self._app: firebase_admin.App | None = None

    def _credential(self) -> credentials.Certificate:
        if self.service_account_json:
            try:
                info = orjson.loads(self.service_account_json)
            except orjson.JSONDecodeError:
                logger.error("Invalid FIREBASE_SERVICE_ACCOUNT_JSON")
                raise
            return credentials.Certificate(info)
        if self.service_account_file:
            return credentials.Certificate(self.service_account_file)
        raise RuntimeError(
            "Service account not provided. Set FIREBASE_SERVICE_ACCOUNT_JSON or FIREBASE_SERVICE_ACCOUNT_FILE."
        )

    async def open(self) -> None:
        if self._root is not None:
            return
        if not self.database_url:
            raise RuntimeError("FIREBASE_DATABASE_URL is required for the firebase store")
        self._app = firebase_admin.initialize_app(
            self._credential(),
            {"databaseURL": self.database_url},
            name=self.app_name,
        )
        self._root = db.reference(self.root_path, app=self._app)
        logger.info("Firebase asset store connected to %s", self.database_url)

    async def close(self) -> None:
        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None
            self._root = None

    @property
    def root(self) -> db.Reference:
        if self._root is None:
            raise RuntimeError("FirebaseAssetStore used before open()")
        return self._root

    def _asset_ref(self, asset_id: str) -> db.Reference:
        return self.root.child("assets").child(asset_id)

    def _slug_ref(self, slug: str) -> db.Reference:
        return self.root.child("slugs").child(slug)

    def _claim_slug(self, slug: str, asset_id: str) -> bool:
        def claim(current: Any) -> dict[str, str]:
            if isinstance(current, dict) and current.get("id") not in (None, asset_id):
                raise _SlugTaken(slug)
            return {"id": asset_id}

        try:
            self._slug_ref(slug).transaction(claim)
        except _SlugTaken:
            return False
        return True

    def _get(self, asset_id: str) -> AssetRecord | None:
        if not _is_valid_key(asset_id):
            return None
        return _load_record(self._asset_ref(asset_id).get())

    def _all(self) -> list[AssetRecord]:
        raw = self.root.child("assets").get() or {}
        records = (_load_record(v) for v in raw.values())
        return [r for r in records if r is not None]

    def _insert_sync(self, asset: AssetRecord) -> AssetRecord:
        record = asset.model_copy(update={"created_at": utcnow(), "updated_at": None, "deleted_at": None})
        if not (_is_valid_key(record.id) and _is_valid_key(record.slug)):
            raise ValidationFailedError("Asset id and slug must be usable as database keys")
        if not self._claim_slug(record.slug, record.id):
            raise SlugConflictError(record.slug)
        try:
            self._asset_ref(record.id).set(_dump_record(record))
        except Exception:
            self._slug_ref(record.slug).delete()
            raise
        return record

    def _slug_owner(self, slug: str) -> str | None:
        if not _is_valid_key(slug):
            return None
        entry = self._slug_ref(slug).get()
        return entry.get("id") if isinstance(entry, dict) else None

    def _find_by_slug_sync(self, slug: str) -> AssetRecord | None:
        asset_id = self._slug_owner(slug)
        if not asset_id:
            return None
        asset = self._get(asset_id)
        if asset is None or asset.is_deleted:
            return None
        return asset

    def _update_sync(self, asset_id: str, changes: dict[str, Any]) -> AssetRecord | None:
        current = self._get(asset_id)
        if current is None or current.is_deleted:
            return None
        updated = merge_patch(current, changes)
        moved = updated.slug != current.slug
        if moved:
            if not _is_valid_key(updated.slug):
                raise ValidationFailedError("Slug must be usable as a database key")
            if not self._claim_slug(updated.slug, asset_id):
                raise SlugConflictError(updated.slug)
        try:
            self._asset_ref(asset_id).set(_dump_record(updated))
        except Exception:
            if moved:
                self._slug_ref(updated.slug).delete()
            raise
        if moved:
            self._slug_ref(current.slug).delete()
        return updated

    def _set_deleted_sync(self, asset_id: str, deleted: bool) -> bool:
        current = self._get(asset_id)
        if current is None or current.is_deleted == deleted:
            return False
        updated = current.model_copy(update={"deleted_at": utcnow() if deleted else None})
        # Slug index is left alone on soft delete so the slug stays reserved.
        self._asset_ref(asset_id).set(_dump_record(updated))
        return True

    async def insert(self, asset: AssetRecord) -> AssetRecord:
        return await asyncio.to_thread(self._insert_sync, asset)

    async def find_by_slug(self, slug: str) -> AssetRecord | None:
        return await asyncio.to_thread(self._find_by_slug_sync, slug)

    async def slug_exists(self, slug: str) -> bool:
        return await asyncio.to_thread(self._slug_owner, slug) is not None

    async def get_by_id(self, asset_id: str) -> AssetRecord | None:
        return await asyncio.to_thread(self._get, asset_id)

    async def update(self, asset_id: str, patch: Mapping[str, Any]) -> AssetRecord | None:
        return await asyncio.to_thread(self._update_sync, asset_id, clean_patch(patch))

    async def soft_delete(self, asset_id: str) -> bool:
        return await asyncio.to_thread(self._set_deleted_sync, asset_id, True)

    async def restore(self, asset_id: str) -> bool:
        return await asyncio.to_thread(self._set_deleted_sync, asset_id, False)

    async def list(
        self,
        filters: AssetFilters | None = None,
        *,
        sort: str | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AssetRecord], int]:
        # RTDB has no ad-hoc queries; fetch everything and filter in memory.
        rows = select_assets(await asyncio.to_thread(self._all), filters, sort=sort, order=order)
        return paginate(rows, limit=limit, offset=offset)

    async def list_all(self, filters: AssetFilters | None = None) -> list[AssetRecord]:
        return select_assets(await asyncio.to_thread(self._all), filters)

    async def count(self, filters: AssetFilters | None = None) -> int:
        return len(await self.list_all(filters))
