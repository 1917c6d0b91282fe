from __future__ import annotations

from redis.asyncio import Redis


def create_redis_client(url: str) -> Redis | None:
    url = (url or "").strip()
    if not url:
        return None
    return Redis.from_url(url, encoding="utf-8", decode_responses=True)
