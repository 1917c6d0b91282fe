import base64

import httpx
import orjson
import pytest

from secure_assets.core.errors import (
    EmptyRepositoryError,
    FileNotFoundInRepoError,
    GitHubAPIError,
    RepoNotFoundError,
    UpstreamTimeoutError,
)
from secure_assets.services.github import GitHubClient


@pytest.mark.asyncio
async def test_repository_info(fake_github):
    fake_github.add_repo("acme", "fresh", default_branch="trunk", empty=True)
    client = fake_github.client()

    info = await client.get_repository_info("acme", "assets")
    assert info.default_branch == "main"
    assert info.is_empty is False

    fresh = await client.get_repository_info("acme", "fresh")
    assert fresh.default_branch == "trunk"
    assert fresh.is_empty is True

    with pytest.raises(RepoNotFoundError):
        await client.get_repository_info("acme", "missing")
    await client.aclose()


@pytest.mark.asyncio
async def test_resolve_branch_falls_back_to_default(fake_github):
    fake_github.repos[("acme", "assets")]["branches"].add("staging")
    client = fake_github.client()

    assert await client.resolve_branch("acme", "assets") == "main"
    assert await client.resolve_branch("acme", "assets", "staging") == "staging"
    assert await client.resolve_branch("acme", "assets", "does-not-exist") == "main"
    await client.aclose()


@pytest.mark.asyncio
async def test_upload_creates_new_file_without_sha(fake_github):
    client = fake_github.client()

    result = await client.upload_content(
        owner="acme", repo="assets", path="img/logo.png", content=b"png-bytes", branch="ghost"
    )

    assert result.branch == "main"
    assert result.url == "https://github.com/acme/assets/blob/main/img/logo.png"
    assert ("main", "img/logo.png") in fake_github.repos[("acme", "assets")]["files"]
    assert ("PUT", "/repos/acme/assets/contents/img/logo.png") in fake_github.calls
    await client.aclose()


@pytest.mark.asyncio
async def test_upload_updates_existing_file_with_current_sha(fake_github):
    old_sha = fake_github.put_file("img/logo.png", b"old")
    seen: list[dict] = []

    def spy(request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            seen.append(orjson.loads(request.content))
        return fake_github.handle(request)

    client = GitHubClient("t", transport=httpx.MockTransport(spy))
    result = await client.upload_content(owner="acme", repo="assets", path="img/logo.png", content=b"new")

    assert seen[0]["sha"] == old_sha
    assert seen[0]["branch"] == "main"
    assert base64.b64decode(seen[0]["content"]) == b"new"
    assert seen[0]["committer"] == {"name": "acme", "email": "acme@users.noreply.github.com"}
    assert result.sha != old_sha
    await client.aclose()


@pytest.mark.asyncio
async def test_upload_to_empty_repository_fails(fake_github):
    fake_github.add_repo("acme", "fresh", empty=True)
    client = fake_github.client()

    with pytest.raises(EmptyRepositoryError) as exc_info:
        await client.upload_content(owner="acme", repo="fresh", path="a.txt", content=b"x")

    assert "README" in exc_info.value.message
    assert not any(method == "PUT" for method, _ in fake_github.calls)
    await client.aclose()


@pytest.mark.asyncio
async def test_delete_content(fake_github):
    fake_github.put_file("docs/guide.pdf", b"pdf")
    client = fake_github.client()

    result = await client.delete_content(owner="acme", repo="assets", path="docs/guide.pdf", branch="gone")
    assert result.branch == "main"
    assert result.path == "docs/guide.pdf"
    assert result.commit_sha
    assert result.commit_url.startswith("https://github.com/commit/")
    assert fake_github.repos[("acme", "assets")]["files"] == {}

    with pytest.raises(FileNotFoundInRepoError):
        await client.delete_content(owner="acme", repo="assets", path="docs/guide.pdf")
    await client.aclose()


@pytest.mark.asyncio
async def test_structured_upstream_error_is_surfaced():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "Resource not accessible by integration"})

    client = GitHubClient("t", transport=httpx.MockTransport(handler))
    with pytest.raises(GitHubAPIError) as exc_info:
        await client.get_repository_info("acme", "assets")

    assert exc_info.value.status == 403
    assert exc_info.value.payload == {"message": "Resource not accessible by integration"}
    assert exc_info.value.status_code == 502
    await client.aclose()


@pytest.mark.asyncio
async def test_timeout_is_a_retryable_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = GitHubClient("t", transport=httpx.MockTransport(handler), timeout=0.1)
    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await client.get_repository_info("acme", "assets")

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 504
    await client.aclose()


@pytest.mark.asyncio
async def test_requests_carry_auth_and_api_headers():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"default_branch": "main", "size": 1})

    client = GitHubClient("tok", transport=httpx.MockTransport(handler))
    await client.get_repository_info("acme", "assets")

    assert captured[0].headers["Authorization"] == "Bearer tok"
    assert captured[0].headers["Accept"] == "application/vnd.github+json"
    assert str(captured[0].url) == "https://api.github.com/repos/acme/assets"
    await client.aclose()
