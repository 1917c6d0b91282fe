from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Disk = Literal["remote", "local", "s3", "github"]
Disposition = Literal["inline", "attachment"]

SHA256_PATTERN = r"^[A-Fa-f0-9]{64}$"


class AssetRecord(BaseModel):
    """An asset as persisted by every store backend."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    slug: str
    filename: str
    disk: Disk
    path: str
    repo: str | None = None
    branch: str | None = None
    mime: str | None = None
    size: int | None = None
    sha256: str | None = None
    verify_hash: bool = False
    disposition: Disposition = "inline"
    visibility: str = "public"
    github_url: str | None = None
    cdn_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class AssetRegisterIn(BaseModel):
    label: str = Field(min_length=1)
    filename: str | None = None
    slug: str | None = None
    disk: Disk
    path: str = Field(min_length=1)
    repo: str | None = None
    branch: str | None = None
    mime: str | None = None
    size: int | None = Field(default=None, ge=0)
    sha256: str | None = Field(default=None, pattern=SHA256_PATTERN)
    verify_hash: bool = False
    disposition: Disposition = "inline"
    visibility: str = "public"


class AssetGithubUploadIn(BaseModel):
    label: str = Field(min_length=1)
    filename: str | None = None
    slug: str | None = None
    repo_path: str = Field(min_length=1)
    branch: str | None = None
    disposition: Disposition = "inline"
    visibility: str = "public"
    verify_hash: bool = False


class AssetPatchIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str | None = Field(default=None, min_length=1)
    slug: str | None = Field(default=None, min_length=1)
    filename: str | None = Field(default=None, min_length=1)
    path: str | None = Field(default=None, min_length=1)
    mime: str | None = None
    size: int | None = Field(default=None, ge=0)
    sha256: str | None = Field(default=None, pattern=SHA256_PATTERN)
    verify_hash: bool | None = None
    disposition: Disposition | None = None
    visibility: str | None = None
    github_url: str | None = None
    cdn_url: str | None = None


class GithubDeleteIn(BaseModel):
    owner: str | None = None
    repo: str | None = None
    repo_path: str = Field(min_length=1)
    branch: str | None = None
    message: str | None = None


class AssetResolvedOut(BaseModel):
    ok: bool = True
    asset: AssetRecord
    public_url: str


class AssetListOut(BaseModel):
    ok: bool = True
    items: list[AssetRecord]


class AssetSearchOut(BaseModel):
    ok: bool = True
    items: list[AssetRecord]
    total: int
    limit: int
    offset: int


class AssetStateOut(BaseModel):
    ok: bool = True
    id: str
    deleted: bool


class GithubDeleteOut(BaseModel):
    ok: bool = True
    deleted: bool = True
    path: str
    branch: str
    commit_sha: str | None = None
    commit_url: str | None = None
