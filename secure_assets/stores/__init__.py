from __future__ import annotations

from secure_assets.core.config import Settings
from secure_assets.stores.base import AssetFilters, AssetStore


def create_asset_store(settings: Settings) -> AssetStore:
    """Instantiate the backend named by ``STORE_BACKEND``; the caller opens it."""
    backend = settings.store_backend

    if backend == "sql":
        from secure_assets.stores.sql import SqlAssetStore

        return SqlAssetStore(settings.database_url_async)

    if backend == "json":
        from secure_assets.stores.jsonfile import JsonFileAssetStore

        return JsonFileAssetStore(settings.json_store_file)

    if backend == "firebase":
        from secure_assets.stores.firebase import FirebaseAssetStore

        return FirebaseAssetStore(
            database_url=settings.firebase_database_url,
            service_account_json=settings.firebase_service_account_json,
            service_account_file=settings.firebase_service_account_file,
            root_path=settings.firebase_root_path,
        )

    raise ValueError(f"Unknown store backend '{backend}'. Use 'sql', 'json' or 'firebase'.")


__all__ = ["AssetFilters", "AssetStore", "create_asset_store"]
