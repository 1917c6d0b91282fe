"""Shared pytest fixtures: store backends, a fake GitHub API and settings."""

from __future__ import annotations

import copy
import hashlib
import re
import threading
from typing import Any

import httpx
import orjson
import pytest
import pytest_asyncio

from secure_assets.core.config import Settings
from secure_assets.schemas.asset import AssetRecord
from secure_assets.services.github import GitHubClient
from secure_assets.services.text import new_asset_id
from secure_assets.stores.firebase import FirebaseAssetStore
from secure_assets.stores.jsonfile import JsonFileAssetStore
from secure_assets.stores.sql import SqlAssetStore


API_KEY = "test-secret"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "app_key": API_KEY,
        "github_owner": "acme",
        "github_repo": "assets",
        "default_branch": "main",
        "cdn_base": "https://cdn.jsdelivr.net/gh",
        "asset_allowed_ext": "",
        "asset_remote_allowlist": "",
        "redis_url": "",
        "metrics_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_asset(**overrides: Any) -> AssetRecord:
    values: dict[str, Any] = {
        "id": new_asset_id(),
        "label": "Logo",
        "slug": "logo",
        "filename": "logo.png",
        "disk": "remote",
        "path": "https://example.com/logo.png",
        "mime": "image/png",
        "visibility": "public",
    }
    values.update(overrides)
    return AssetRecord(**values)


class FakeReference:
    """Just enough of ``firebase_admin.db.Reference`` over a nested dict.

    Like the SDK it rejects keys RTDB cannot store, and transactions are atomic.
    """

    _INVALID_KEY_RE = re.compile(r"[.$#\[\]?]")

    def __init__(self, holder: dict[str, Any] | None = None, path: tuple[str, ...] = ()) -> None:
        self._holder = holder if holder is not None else {"data": None, "lock": threading.Lock()}
        self._path = path

    def child(self, path: str) -> FakeReference:
        if not path or self._INVALID_KEY_RE.search(path):
            raise ValueError(f"Invalid path: {path!r}. Path contains illegal characters.")
        parts = tuple(p for p in path.split("/") if p)
        return FakeReference(self._holder, self._path + parts)

    def get(self) -> Any:
        node = self._holder["data"]
        for part in self._path:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def set(self, value: Any) -> None:
        if value is None:
            self.delete()
            return
        if not self._path:
            self._holder["data"] = copy.deepcopy(value)
            return
        if not isinstance(self._holder["data"], dict):
            self._holder["data"] = {}
        node = self._holder["data"]
        for part in self._path[:-1]:
            node = node.setdefault(part, {})
        node[self._path[-1]] = copy.deepcopy(value)

    def delete(self) -> None:
        if not self._path:
            self._holder["data"] = None
            return
        node = self._holder["data"]
        for part in self._path[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            node = node[part]
        if isinstance(node, dict):
            node.pop(self._path[-1], None)

    def transaction(self, update):
        with self._holder["lock"]:
            new_value = update(self.get())
            self.set(new_value)
            return new_value


@pytest_asyncio.fixture(params=["sql", "json", "firebase"])
async def store(request, tmp_path):
    if request.param == "sql":
        backend = SqlAssetStore(f"sqlite+aiosqlite:///{tmp_path / 'assets.sqlite'}")
    elif request.param == "json":
        backend = JsonFileAssetStore(tmp_path / "assets.json")
    else:
        backend = FirebaseAssetStore(root=FakeReference())
    await backend.open()
    yield backend
    await backend.close()


class FakeGitHub:
    """In-memory stand-in for the GitHub repos/branches/contents endpoints."""

    _REPO_RE = re.compile(r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)(?P<rest>/.*)?$")

    def __init__(self) -> None:
        self.repos: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self._commits = 0

    def add_repo(
        self,
        owner: str = "acme",
        repo: str = "assets",
        *,
        default_branch: str = "main",
        branches: tuple[str, ...] = (),
        empty: bool = False,
    ) -> dict[str, Any]:
        state = {
            "default_branch": default_branch,
            "branches": {default_branch, *branches},
            "empty": empty,
            "files": {},
        }
        self.repos[(owner, repo)] = state
        return state

    def put_file(self, path: str, data: bytes, *, owner="acme", repo="assets", branch="main") -> str:
        sha = hashlib.sha1(data).hexdigest()
        self.repos[(owner, repo)]["files"][(branch, path)] = sha
        return sha

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> GitHubClient:
        return GitHubClient("gh-token", transport=self.transport())

    def _commit(self) -> dict[str, str]:
        self._commits += 1
        sha = f"{self._commits:040x}"
        return {"sha": sha, "html_url": f"https://github.com/commit/{sha}"}

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        match = self._REPO_RE.match(request.url.path)
        if not match:
            return httpx.Response(404, json={"message": "Not Found"})
        state = self.repos.get((match["owner"], match["repo"]))
        if state is None:
            return httpx.Response(404, json={"message": "Not Found"})

        rest = match["rest"] or ""
        if not rest:
            return httpx.Response(
                200,
                json={"default_branch": state["default_branch"], "size": 0 if state["empty"] else 128},
            )
        if rest.startswith("/branches/"):
            branch = rest[len("/branches/") :]
            if branch in state["branches"]:
                return httpx.Response(200, json={"name": branch})
            return httpx.Response(404, json={"message": "Branch not found"})
        if rest.startswith("/contents/"):
            return self._contents(request, state, rest[len("/contents/") :])
        return httpx.Response(404, json={"message": "Not Found"})

    def _contents(self, request: httpx.Request, state: dict[str, Any], path: str) -> httpx.Response:
        files = state["files"]
        if request.method == "GET":
            ref = request.url.params.get("ref") or state["default_branch"]
            sha = files.get((ref, path))
            if sha is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"path": path, "sha": sha})

        body = orjson.loads(request.content)
        branch = body["branch"]
        current = files.get((branch, path))
        if request.method == "PUT":
            if current is not None and body.get("sha") != current:
                return httpx.Response(409, json={"message": f"{path} does not match {body.get('sha')}"})
            if current is None and body.get("sha"):
                return httpx.Response(422, json={"message": "sha wasn't supplied"})
            sha = hashlib.sha1(body["content"].encode("ascii")).hexdigest()
            files[(branch, path)] = sha
            return httpx.Response(
                201 if current is None else 200,
                json={
                    "content": {"sha": sha, "html_url": f"https://github.com/acme/assets/blob/{branch}/{path}"},
                    "commit": self._commit(),
                },
            )
        if request.method == "DELETE":
            if current is None or body.get("sha") != current:
                return httpx.Response(409, json={"message": "sha mismatch"})
            del files[(branch, path)]
            return httpx.Response(200, json={"content": None, "commit": self._commit()})
        return httpx.Response(405, json={"message": "Method Not Allowed"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    gh = FakeGitHub()
    gh.add_repo()
    return gh


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def asset_factory():
    return make_asset
