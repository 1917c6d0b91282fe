from __future__ import annotations

import re

from secure_assets.core.config import Settings
from secure_assets.schemas.asset import AssetRecord

_DOUBLE_SLASH_RE = re.compile(r"([^:]/)/+")


def make_cdn_url(base: str, owner: str, repo: str, branch: str, path: str) -> str:
    url = f"{base}/{owner}/{repo}@{branch}/{path}"
    return _DOUBLE_SLASH_RE.sub(r"\1", url)


def resolve_public_url(asset: AssetRecord, settings: Settings) -> str:
    """Externally fetchable URL for an asset; only github paths are rewritten."""
    if asset.disk == "github":
        owner, repo = settings.github_owner, settings.github_repo
        if asset.repo and "/" in asset.repo:
            owner, repo = asset.repo.split("/", 1)
        branch = asset.branch or settings.default_branch
        return make_cdn_url(settings.cdn_base, owner, repo, branch, asset.path)
    # remote paths are already URLs; local/s3 paths are served as-is
    return asset.path
