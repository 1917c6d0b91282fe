from __future__ import annotations

from fastapi import Query, Request

from secure_assets.services.registry import AssetRegistry
from secure_assets.stores.base import AssetFilters


def get_registry(request: Request) -> AssetRegistry:
    return request.app.state.registry


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def asset_filters(
    label: str | None = Query(default=None),
    disk: str | None = Query(default=None),
    visibility: str | None = Query(default=None),
) -> AssetFilters:
    return AssetFilters(label=_clean(label), disk=_clean(disk), visibility=_clean(visibility))
