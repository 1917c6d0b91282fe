from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from secure_assets.core.errors import (
    EmptyRepositoryError,
    FileNotFoundInRepoError,
    GitHubAPIError,
    RepoNotFoundError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass(slots=True)
class RepositoryInfo:
    default_branch: str
    is_empty: bool


@dataclass(slots=True)
class UploadResult:
    url: str | None
    sha: str | None
    branch: str


@dataclass(slots=True)
class DeleteResult:
    path: str
    branch: str
    commit_sha: str | None
    commit_url: str | None


def _payload(res: httpx.Response) -> Any:
    try:
        return res.json()
    except ValueError:
        return {"message": res.text[:500]}


def _contents_path(owner: str, repo: str, path: str) -> str:
    return f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'), safe='/')}"


def _default_committer(owner: str) -> dict[str, str]:
    return {"name": owner, "email": f"{owner}@users.noreply.github.com"}


class GitHubClient:
    """Contents API wrapper.

    Every write first reads the current state (branch, blob sha) so callers
    never manage blob references themselves. Nothing is retried.
    """

    def __init__(
        self,
        token: str = "",
        *,
        base_url: str = GITHUB_API_URL,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "secure-asset-api",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        try:
            res = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("GitHub %s %s timed out", method, url)
            raise UpstreamTimeoutError() from exc
        if res.status_code == 404 and allow_404:
            return None
        if res.status_code >= 400:
            raise GitHubAPIError(res.status_code, _payload(res))
        return res

    async def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo:
        res = await self._request("GET", f"/repos/{owner}/{repo}", allow_404=True)
        if res is None:
            raise RepoNotFoundError(owner, repo)
        data = res.json()
        return RepositoryInfo(
            default_branch=str(data.get("default_branch") or "main"),
            # The API reports size 0 until the first commit exists.
            is_empty=int(data.get("size") or 0) == 0,
        )

    async def branch_exists(self, owner: str, repo: str, branch: str) -> bool:
        res = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}",
            allow_404=True,
        )
        return res is not None

    async def resolve_branch(
        self,
        owner: str,
        repo: str,
        requested: str | None = None,
        info: RepositoryInfo | None = None,
    ) -> str:
        info = info or await self.get_repository_info(owner, repo)
        target = (requested or "").strip() or info.default_branch
        if target != info.default_branch and not await self.branch_exists(owner, repo, target):
            logger.info("Branch %s missing on %s/%s, using %s", target, owner, repo, info.default_branch)
            return info.default_branch
        return target

    async def get_content_sha(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        res = await self._request("GET", _contents_path(owner, repo, path), params={"ref": ref}, allow_404=True)
        if res is None:
            return None
        data = res.json()
        if not isinstance(data, dict):
            # A directory listing, not a file.
            return None
        return data.get("sha")

    async def upload_content(
        self,
        *,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        branch: str | None = None,
        message: str | None = None,
        committer: dict[str, str] | None = None,
    ) -> UploadResult:
        info = await self.get_repository_info(owner, repo)
        if info.is_empty:
            # The contents API cannot create the first commit of a repository.
            raise EmptyRepositoryError(owner, repo)

        target = await self.resolve_branch(owner, repo, branch, info)
        sha = await self.get_content_sha(owner, repo, path, target)

        body: dict[str, Any] = {
            "message": message or f"chore(asset): upload {path}",
            "content": base64.b64encode(content).decode("ascii"),
            "branch": target,
            "committer": committer or _default_committer(owner),
        }
        if sha:
            body["sha"] = sha

        res = await self._request("PUT", _contents_path(owner, repo, path), json=body)
        data = res.json().get("content") or {}
        return UploadResult(url=data.get("html_url"), sha=data.get("sha"), branch=target)

    async def delete_content(
        self,
        *,
        owner: str,
        repo: str,
        path: str,
        branch: str | None = None,
        message: str | None = None,
        committer: dict[str, str] | None = None,
    ) -> DeleteResult:
        target = await self.resolve_branch(owner, repo, branch)
        sha = await self.get_content_sha(owner, repo, path, target)
        if not sha:
            raise FileNotFoundInRepoError("File not found in repository")

        body = {
            "message": message or f"chore(asset): delete {path}",
            "sha": sha,
            "branch": target,
            "committer": committer or _default_committer(owner),
        }
        res = await self._request("DELETE", _contents_path(owner, repo, path), json=body)
        commit = res.json().get("commit") or {}
        return DeleteResult(
            path=path,
            branch=target,
            commit_sha=commit.get("sha"),
            commit_url=commit.get("html_url"),
        )
