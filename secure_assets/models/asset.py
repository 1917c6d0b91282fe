from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from secure_assets.db.base import Base
from secure_assets.models.common import utcnow


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        CheckConstraint("disk in ('remote','local','s3','github')", name="ck_assets_disk"),
        CheckConstraint("disposition in ('inline','attachment')", name="ck_assets_disposition"),
        Index("idx_assets_created_at", "created_at"),
        Index("idx_assets_visibility", "visibility"),
        Index("idx_assets_disk", "disk"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    label: Mapped[str] = mapped_column(String(500), nullable=False)
    # Unique for all rows, so a soft-deleted asset keeps its slug reserved.
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    disk: Mapped[str] = mapped_column(String(16), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    repo: Mapped[str | None] = mapped_column(String(255), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mime: Mapped[str | None] = mapped_column(String(255), nullable=True)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verify_hash: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disposition: Mapped[str] = mapped_column(String(16), default="inline", nullable=False)
    visibility: Mapped[str] = mapped_column(String(40), default="public", nullable=False)
    github_url: Mapped[str | None] = mapped_column(String(1200), nullable=True)
    cdn_url: Mapped[str | None] = mapped_column(String(1200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
