from __future__ import annotations

import hashlib
import posixpath
import re
import unicodedata
import uuid
from urllib.parse import urlparse


_SEPARATOR_RE = re.compile(r"[_\s]+")
_SLUG_SANITIZE_RE = re.compile(r"[^a-z0-9-]+")
_DASH_RUN_RE = re.compile(r"-{2,}")
_EXTENSION_RE = re.compile(r"\.[a-z0-9]{1,10}$", re.IGNORECASE)


def slugify(value: object) -> str:
    txt = unicodedata.normalize("NFKD", str(value or "")).encode("ascii", "ignore").decode("ascii")
    txt = txt.strip().lower()
    txt = _SEPARATOR_RE.sub("-", txt)
    txt = _SLUG_SANITIZE_RE.sub("", txt)
    txt = _DASH_RUN_RE.sub("-", txt)
    return txt.strip("-")


def random_slug(length: int = 8) -> str:
    return uuid.uuid4().hex[:length]


def new_asset_id() -> str:
    return uuid.uuid4().hex


def sha256_hex(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def guess_filename(path_or_url: str | None) -> str | None:
    """Last non-empty segment of a URL path or a plain slash-separated path."""
    raw = str(path_or_url or "").strip()
    if not raw:
        return None
    parsed = urlparse(raw)
    if parsed.scheme and parsed.netloc:
        raw = parsed.path
    parts = [p for p in raw.split("/") if p]
    return parts[-1] if parts else None


def file_extension(filename: str | None) -> str:
    return posixpath.splitext(str(filename or ""))[1].lstrip(".").lower()


def has_extension(path: str) -> bool:
    return bool(_EXTENSION_RE.search(path or ""))
