from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from sqlalchemy import event, func, or_, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from secure_assets.core.errors import SlugConflictError
from secure_assets.db.base import Base
from secure_assets.models.asset import Asset
from secure_assets.models.common import as_utc, utcnow
from secure_assets.schemas.asset import AssetRecord
from secure_assets.stores.base import (
    AssetFilters,
    clamp_limit,
    clamp_offset,
    clean_patch,
    merge_patch,
    normalize_order,
    normalize_sort,
)

logger = logging.getLogger(__name__)


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def _to_record(row: Asset) -> AssetRecord:
    record = AssetRecord.model_validate(row)
    return record.model_copy(
        update={
            "created_at": as_utc(record.created_at),
            "updated_at": as_utc(record.updated_at),
            "deleted_at": as_utc(record.deleted_at),
        }
    )


class SqlAssetStore:
    """Relational backend: one ``assets`` table with a unique slug column."""

    def __init__(self, database_url: str, *, create_schema: bool = True) -> None:
        self.database_url = database_url
        self.create_schema = create_schema
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    async def open(self) -> None:
        url = make_url(self.database_url)
        is_sqlite = url.get_backend_name() == "sqlite"
        if is_sqlite and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(self.database_url, pool_pre_ping=True)
        if is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _sqlite_pragmas)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False, class_=AsyncSession)

        if self.create_schema:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("SQL asset store ready (%s)", url.render_as_string(hide_password=True))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None

    def _session(self) -> AsyncSession:
        if self._sessions is None:
            raise RuntimeError("SqlAssetStore used before open()")
        return self._sessions()

    async def insert(self, asset: AssetRecord) -> AssetRecord:
        data = asset.model_dump(exclude={"created_at", "updated_at", "deleted_at"})
        row = Asset(**data, created_at=utcnow(), updated_at=None, deleted_at=None)
        async with self._session() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise SlugConflictError(asset.slug) from exc
            await db.refresh(row)
            return _to_record(row)

    async def find_by_slug(self, slug: str) -> AssetRecord | None:
        async with self._session() as db:
            row = (
                await db.execute(select(Asset).where(Asset.slug == slug, Asset.deleted_at.is_(None)))
            ).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    async def slug_exists(self, slug: str) -> bool:
        async with self._session() as db:
            found = await db.scalar(select(Asset.id).where(Asset.slug == slug))
            return found is not None

    async def get_by_id(self, asset_id: str) -> AssetRecord | None:
        async with self._session() as db:
            row = await db.get(Asset, asset_id)
            return _to_record(row) if row is not None else None

    async def update(self, asset_id: str, patch: Mapping[str, Any]) -> AssetRecord | None:
        changes = clean_patch(patch)
        async with self._session() as db:
            row = await db.get(Asset, asset_id)
            if row is None or row.deleted_at is not None:
                return None
            updated = merge_patch(_to_record(row), changes)
            for key in changes:
                setattr(row, key, getattr(updated, key))
            row.updated_at = updated.updated_at
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise SlugConflictError(updated.slug) from exc
            await db.refresh(row)
            return _to_record(row)

    async def soft_delete(self, asset_id: str) -> bool:
        async with self._session() as db:
            row = await db.get(Asset, asset_id)
            if row is None or row.deleted_at is not None:
                return False
            row.deleted_at = utcnow()
            await db.commit()
            return True

    async def restore(self, asset_id: str) -> bool:
        async with self._session() as db:
            row = await db.get(Asset, asset_id)
            if row is None or row.deleted_at is None:
                return False
            row.deleted_at = None
            await db.commit()
            return True

    @staticmethod
    def _conditions(filters: AssetFilters | None) -> list:
        filters = filters or AssetFilters()
        conds = []
        if not filters.include_deleted:
            conds.append(Asset.deleted_at.is_(None))
        if filters.q:
            q = filters.q.lower()
            conds.append(
                or_(
                    func.lower(Asset.label).contains(q, autoescape=True),
                    func.lower(Asset.slug).contains(q, autoescape=True),
                    func.lower(Asset.filename).contains(q, autoescape=True),
                )
            )
        if filters.label:
            conds.append(func.lower(Asset.label).contains(filters.label.lower(), autoescape=True))
        if filters.disk:
            conds.append(Asset.disk == filters.disk)
        if filters.visibility:
            conds.append(Asset.visibility == filters.visibility)
        return conds

    async def list(
        self,
        filters: AssetFilters | None = None,
        *,
        sort: str | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AssetRecord], int]:
        conds = self._conditions(filters)
        key = normalize_sort(sort)
        column = getattr(Asset, key)
        if key != "created_at":
            # Text keys sort case-insensitively, as the document backends do.
            column = func.lower(column)
        ordering = column.asc() if normalize_order(order) == "asc" else column.desc()
        stmt = (
            select(Asset)
            .where(*conds)
            .order_by(ordering, Asset.id)
            .limit(clamp_limit(limit))
            .offset(clamp_offset(offset))
        )
        async with self._session() as db:
            rows = (await db.execute(stmt)).scalars().all()
            total = (await db.execute(select(func.count()).select_from(Asset).where(*conds))).scalar_one()
        return [_to_record(r) for r in rows], int(total)

    async def list_all(self, filters: AssetFilters | None = None) -> list[AssetRecord]:
        stmt = select(Asset).where(*self._conditions(filters)).order_by(Asset.created_at.desc(), Asset.id)
        async with self._session() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_to_record(r) for r in rows]

    async def count(self, filters: AssetFilters | None = None) -> int:
        stmt = select(func.count()).select_from(Asset).where(*self._conditions(filters))
        async with self._session() as db:
            return int((await db.execute(stmt)).scalar_one())
