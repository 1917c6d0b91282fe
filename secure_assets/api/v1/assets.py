from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from secure_assets.api.v1.deps import asset_filters, get_registry
from secure_assets.core.errors import AssetError, UploadFailedError
from secure_assets.schemas.asset import (
    AssetGithubUploadIn,
    AssetListOut,
    AssetPatchIn,
    AssetRegisterIn,
    AssetResolvedOut,
    AssetSearchOut,
    AssetStateOut,
    Disposition,
    GithubDeleteIn,
    GithubDeleteOut,
)
from secure_assets.services.auth import require_api_key
from secure_assets.services.registry import AssetRegistry, ResolvedAsset
from secure_assets.stores.base import AssetFilters, clamp_limit, clamp_offset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"], dependencies=[Depends(require_api_key)])


def _resolved_out(resolved: ResolvedAsset) -> AssetResolvedOut:
    return AssetResolvedOut(asset=resolved.asset, public_url=resolved.public_url)


@router.post("/register", response_model=AssetResolvedOut)
async def register_existing(
    payload: AssetRegisterIn,
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResolvedOut:
    return _resolved_out(await registry.register_existing(payload))


@router.post("/github", response_model=AssetResolvedOut)
async def upload_github_register(
    file: UploadFile = File(...),
    label: str = Form(..., min_length=1),
    repo_path: str = Form(..., min_length=1),
    filename: str | None = Form(default=None),
    slug: str | None = Form(default=None),
    branch: str | None = Form(default=None),
    disposition: Disposition = Form(default="inline"),
    visibility: str = Form(default="public"),
    verify_hash: bool = Form(default=False),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResolvedOut:
    data = AssetGithubUploadIn(
        label=label,
        filename=filename or None,
        slug=slug or None,
        repo_path=repo_path,
        branch=branch or None,
        disposition=disposition,
        visibility=visibility,
        verify_hash=verify_hash,
    )
    try:
        # Reject from the multipart size before pulling the bytes into memory.
        registry.check_upload_size(file.size)
        content = await file.read()
        resolved = await registry.upload_to_github(
            data,
            content=content,
            source_filename=file.filename,
            content_type=file.content_type,
        )
    except AssetError as exc:
        if exc.status_code < 500 or exc.retryable:
            raise
        logger.exception("GitHub upload failed for %s", repo_path)
        raise UploadFailedError() from exc
    except Exception as exc:
        logger.exception("GitHub upload failed for %s", repo_path)
        raise UploadFailedError() from exc
    finally:
        # Drops the spooled temp copy of the upload on every path.
        await file.close()
    return _resolved_out(resolved)


@router.delete("/github", response_model=GithubDeleteOut)
async def delete_github_asset(
    payload: GithubDeleteIn,
    registry: AssetRegistry = Depends(get_registry),
) -> GithubDeleteOut:
    try:
        result = await registry.delete_from_github(payload)
    except AssetError:
        raise
    except Exception as exc:
        logger.exception("GitHub delete failed for %s", payload.repo_path)
        raise AssetError("GitHub delete failed") from exc
    return GithubDeleteOut(
        path=result.path,
        branch=result.branch,
        commit_sha=result.commit_sha,
        commit_url=result.commit_url,
    )


@router.get("/recent", response_model=AssetListOut)
async def list_recent(
    limit: int = Query(default=10),
    filters: AssetFilters = Depends(asset_filters),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetListOut:
    return AssetListOut(items=await registry.recent(filters, limit=limit))


@router.get("/search", response_model=AssetSearchOut)
async def search_assets(
    q: str | None = Query(default=None),
    include_deleted: bool = Query(default=False),
    sort: str = Query(default="created_at"),
    order: str = Query(default="desc"),
    limit: int = Query(default=20),
    offset: int = Query(default=0),
    filters: AssetFilters = Depends(asset_filters),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetSearchOut:
    filters.q = (q or "").strip() or None
    filters.include_deleted = include_deleted
    items, total = await registry.search(filters, sort=sort, order=order, limit=limit, offset=offset)
    return AssetSearchOut(items=items, total=total, limit=clamp_limit(limit), offset=clamp_offset(offset))


@router.get("", response_model=AssetListOut)
async def list_assets(
    filters: AssetFilters = Depends(asset_filters),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetListOut:
    return AssetListOut(items=await registry.list_all(filters))


@router.get("/id/{asset_id}", response_model=AssetResolvedOut)
async def get_asset(asset_id: str, registry: AssetRegistry = Depends(get_registry)) -> AssetResolvedOut:
    return _resolved_out(await registry.get(asset_id))


@router.patch("/id/{asset_id}", response_model=AssetResolvedOut)
async def patch_asset(
    asset_id: str,
    payload: AssetPatchIn,
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResolvedOut:
    return _resolved_out(await registry.update(asset_id, payload))


@router.delete("/id/{asset_id}", response_model=AssetStateOut)
async def soft_delete_asset(asset_id: str, registry: AssetRegistry = Depends(get_registry)) -> AssetStateOut:
    await registry.soft_delete(asset_id)
    return AssetStateOut(id=asset_id, deleted=True)


@router.post("/id/{asset_id}/restore", response_model=AssetStateOut)
async def restore_asset(asset_id: str, registry: AssetRegistry = Depends(get_registry)) -> AssetStateOut:
    await registry.restore(asset_id)
    return AssetStateOut(id=asset_id, deleted=False)


@router.get("/{slug}", response_model=AssetResolvedOut)
async def resolve_by_slug(slug: str, registry: AssetRegistry = Depends(get_registry)) -> AssetResolvedOut:
    return _resolved_out(await registry.resolve(slug))
