from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from urllib.parse import urlparse

from secure_assets.core.config import Settings
from secure_assets.core.errors import (
    AssetNotFoundError,
    InvalidRemoteError,
    PolicyRejectedError,
    SlugConflictError,
    UploadTooLargeError,
    ValidationFailedError,
)
from secure_assets.schemas.asset import (
    AssetGithubUploadIn,
    AssetPatchIn,
    AssetRecord,
    AssetRegisterIn,
    GithubDeleteIn,
)
from secure_assets.services.github import DeleteResult, GitHubClient
from secure_assets.services.text import (
    file_extension,
    guess_filename,
    has_extension,
    new_asset_id,
    random_slug,
    sha256_hex,
    slugify,
)
from secure_assets.services.urls import make_cdn_url, resolve_public_url
from secure_assets.stores.base import AssetFilters, AssetStore

logger = logging.getLogger(__name__)

DEFAULT_MIME = "application/octet-stream"

# Patch fields a caller may clear by sending null.
CLEARABLE_FIELDS = frozenset({"mime", "size", "sha256", "github_url", "cdn_url"})


@dataclass(slots=True)
class ResolvedAsset:
    asset: AssetRecord
    public_url: str


def _guess_mime(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or DEFAULT_MIME


class AssetRegistry:
    """Validates, derives and persists assets; talks to GitHub when bytes move."""

    def __init__(self, store: AssetStore, github: GitHubClient, settings: Settings) -> None:
        self.store = store
        self.github = github
        self.settings = settings

    def public_url(self, asset: AssetRecord) -> str:
        return resolve_public_url(asset, self.settings)

    def _resolved(self, asset: AssetRecord) -> ResolvedAsset:
        return ResolvedAsset(asset=asset, public_url=self.public_url(asset))

    def _derive_slug(self, slug: str | None, label: str) -> str:
        if slug and slug.strip():
            value = slugify(slug)
            if not value:
                raise ValidationFailedError("slug must contain at least one letter or digit")
            return value
        return slugify(label) or random_slug()

    def _check_extension(self, filename: str) -> str:
        ext = file_extension(filename)
        allowed = self.settings.allowed_extensions
        if allowed and ext not in allowed:
            raise PolicyRejectedError(f"File extension .{ext} not allowed")
        return ext

    def _check_remote(self, url: str) -> None:
        try:
            parsed = urlparse(url)
            host = (parsed.hostname or "").lower()
        except ValueError as exc:
            raise InvalidRemoteError("Invalid remote URL") from exc
        if parsed.scheme not in {"http", "https"} or not host:
            raise InvalidRemoteError("Invalid remote URL")

        allowlist = [d.lstrip(".") for d in self.settings.remote_allowlist]
        if allowlist and not any(host == d or host.endswith("." + d) for d in allowlist):
            raise InvalidRemoteError("Remote host not in allowlist")

    async def _ensure_slug_free(self, slug: str) -> None:
        # Slugs of soft-deleted assets count as taken.
        if await self.store.slug_exists(slug):
            raise SlugConflictError(slug)

    def _require_github_target(self) -> tuple[str, str]:
        owner, repo = self.settings.github_owner, self.settings.github_repo
        if not owner or not repo:
            raise RuntimeError("ASSET_GH_OWNER and ASSET_GH_REPO must be configured")
        return owner, repo

    def check_upload_size(self, size: int | None) -> None:
        if size is not None and size > self.settings.max_upload_bytes:
            raise UploadTooLargeError(f"File too large (max {self.settings.max_upload_size_mb} MB)")

    async def register_existing(self, data: AssetRegisterIn) -> ResolvedAsset:
        slug = self._derive_slug(data.slug, data.label)
        filename = data.filename or guess_filename(data.path) or f"{slug}.bin"
        self._check_extension(filename)
        if data.disk == "remote":
            self._check_remote(data.path)

        repo, branch = data.repo, data.branch
        if data.disk == "github":
            repo = repo or self.settings.github_repo_full_name
            branch = branch or self.settings.default_branch

        asset = AssetRecord(
            id=new_asset_id(),
            label=data.label,
            slug=slug,
            filename=filename,
            disk=data.disk,
            path=data.path,
            repo=repo,
            branch=branch,
            mime=data.mime or _guess_mime(filename),
            size=data.size,
            sha256=data.sha256.lower() if data.sha256 else None,
            verify_hash=data.verify_hash,
            disposition=data.disposition,
            visibility=data.visibility,
        )
        if data.disk == "github":
            asset = asset.model_copy(update={"cdn_url": self.public_url(asset)})

        stored = await self.store.insert(asset)
        logger.info("Registered asset %s (%s) on disk %s", stored.slug, stored.id, stored.disk)
        return self._resolved(stored)

    async def upload_to_github(
        self,
        data: AssetGithubUploadIn,
        *,
        content: bytes,
        source_filename: str | None,
        content_type: str | None = None,
    ) -> ResolvedAsset:
        if not content:
            raise PolicyRejectedError("Empty file")
        self.check_upload_size(len(content))

        filename = data.filename or source_filename or ""
        if not filename:
            raise ValidationFailedError("filename is required")
        ext = self._check_extension(filename)

        repo_path = data.repo_path.strip().lstrip("/")
        if not has_extension(repo_path) and ext:
            repo_path = f"{repo_path}.{ext}"

        slug = self._derive_slug(data.slug, data.label)
        await self._ensure_slug_free(slug)

        owner, repo = self._require_github_target()
        uploaded = await self.github.upload_content(
            owner=owner,
            repo=repo,
            branch=data.branch,
            path=repo_path,
            content=content,
            message=f"Add asset {filename}",
        )

        asset = AssetRecord(
            id=new_asset_id(),
            label=data.label,
            slug=slug,
            filename=filename,
            disk="github",
            path=repo_path,
            repo=f"{owner}/{repo}",
            branch=uploaded.branch,
            mime=content_type or _guess_mime(filename),
            size=len(content),
            sha256=sha256_hex(content),
            verify_hash=data.verify_hash,
            disposition=data.disposition,
            visibility=data.visibility,
            github_url=uploaded.url,
            cdn_url=make_cdn_url(self.settings.cdn_base, owner, repo, uploaded.branch, repo_path),
        )
        stored = await self.store.insert(asset)
        logger.info("Uploaded %s to %s/%s@%s as %s", repo_path, owner, repo, uploaded.branch, stored.slug)
        return self._resolved(stored)

    async def delete_from_github(self, data: GithubDeleteIn) -> DeleteResult:
        owner = data.owner or self.settings.github_owner
        repo = data.repo or self.settings.github_repo
        if not owner or not repo:
            raise ValidationFailedError("owner and repo are required when no default repository is configured")
        result = await self.github.delete_content(
            owner=owner,
            repo=repo,
            branch=data.branch,
            path=data.repo_path.strip().lstrip("/"),
            message=data.message,
        )
        logger.info("Deleted %s from %s/%s@%s", result.path, owner, repo, result.branch)
        return result

    async def resolve(self, slug: str) -> ResolvedAsset:
        asset = await self.store.find_by_slug(slug)
        if asset is None:
            raise AssetNotFoundError("Not found")
        return self._resolved(asset)

    async def get(self, asset_id: str) -> ResolvedAsset:
        asset = await self.store.get_by_id(asset_id)
        if asset is None:
            raise AssetNotFoundError("Not found")
        return self._resolved(asset)

    async def recent(self, filters: AssetFilters, limit: int | None = 10) -> list[AssetRecord]:
        items, _total = await self.store.list(filters, sort="created_at", order="desc", limit=limit)
        return items

    async def list_all(self, filters: AssetFilters) -> list[AssetRecord]:
        return await self.store.list_all(filters)

    async def search(
        self,
        filters: AssetFilters,
        *,
        sort: str | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[AssetRecord], int]:
        return await self.store.list(filters, sort=sort, order=order, limit=limit, offset=offset)

    async def update(self, asset_id: str, data: AssetPatchIn) -> ResolvedAsset:
        patch = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in CLEARABLE_FIELDS
        }
        if "slug" in patch:
            patch["slug"] = self._derive_slug(patch["slug"], "")
        if "filename" in patch:
            self._check_extension(patch["filename"])
        asset = await self.store.update(asset_id, patch)
        if asset is None:
            raise AssetNotFoundError("Not found")
        return self._resolved(asset)

    async def soft_delete(self, asset_id: str) -> None:
        if not await self.store.soft_delete(asset_id):
            raise AssetNotFoundError("Asset not found or already deleted")

    async def restore(self, asset_id: str) -> None:
        if not await self.store.restore(asset_id):
            raise AssetNotFoundError("Asset not found or not deleted")
