from __future__ import annotations

from typing import Any


class AssetError(Exception):
    """Base class for failures that map onto a client-facing status code."""

    code = "ASSET_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class ValidationFailedError(AssetError):
    """Invalid input."""

    code = "VALIDATION_ERROR"
    status_code = 422


class PolicyRejectedError(AssetError):
    """Rejected by the asset policy."""

    code = "POLICY_REJECTED"
    status_code = 400


class InvalidRemoteError(PolicyRejectedError):
    """Invalid remote URL."""

    code = "INVALID_REMOTE"


class UploadTooLargeError(PolicyRejectedError):
    """Uploaded file is too large."""

    code = "UPLOAD_TOO_LARGE"
    status_code = 413


class SlugConflictError(AssetError):
    """Slug already exists."""

    code = "SLUG_CONFLICT"
    status_code = 409

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Slug '{slug}' already exists")


class AssetNotFoundError(AssetError):
    """Not found."""

    code = "NOT_FOUND"
    status_code = 404


class FileNotFoundInRepoError(AssetNotFoundError):
    """File not found in repository."""

    code = "FILE_NOT_FOUND"


class UpstreamError(AssetError):
    """Upstream hosting API failure."""

    code = "UPSTREAM_ERROR"
    status_code = 502


class UploadFailedError(AssetError):
    """GitHub upload failed."""

    code = "UPLOAD_FAILED"
    status_code = 500


class GitHubAPIError(UpstreamError):
    def __init__(self, status: int, payload: Any = None, message: str | None = None) -> None:
        self.status = status
        self.payload = payload
        detail = message
        if detail is None and isinstance(payload, dict):
            detail = str(payload.get("message") or "").strip() or None
        super().__init__(f"GitHub API responded {status}: {detail or 'no detail'}")


class RepoNotFoundError(GitHubAPIError):
    code = "REPO_NOT_FOUND"

    def __init__(self, owner: str, repo: str, payload: Any = None) -> None:
        super().__init__(404, payload, f"repository '{owner}/{repo}' not found or not accessible")


class EmptyRepositoryError(UpstreamError):
    code = "EMPTY_REPOSITORY"
    status_code = 409

    def __init__(self, owner: str, repo: str) -> None:
        super().__init__(
            f"GitHub repo '{owner}/{repo}' is empty. "
            "Initialize it with any file (README.md) on GitHub first."
        )


class UpstreamTimeoutError(UpstreamError):
    """GitHub did not answer in time, try again later."""

    code = "UPSTREAM_TIMEOUT"
    status_code = 504
    retryable = True
