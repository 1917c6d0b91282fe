from __future__ import annotations

import hashlib
import logging
import time
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RedisRateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed one-minute window per API key (or client IP) kept in Redis."""

    def __init__(self, app, limit_per_minute: int):
        super().__init__(app)
        self.limit_per_minute = limit_per_minute

    @staticmethod
    def _resolve_subject(request: Request) -> str:
        api_key = (request.headers.get("x-api-key") or "").strip()
        if api_key:
            # Never store the raw secret as a Redis key.
            return "key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:32]

        forwarded = (request.headers.get("x-forwarded-for") or "").strip()
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        ip = request.client.host if request.client else "unknown"
        return f"ip:{ip}"

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable]):
        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None or self.limit_per_minute <= 0:
            return await call_next(request)
        if request.url.path.startswith("/health") or request.url.path.startswith("/metrics"):
            return await call_next(request)

        subject = self._resolve_subject(request)
        minute_bucket = int(time.time() // 60)
        key = f"rl:{subject}:{minute_bucket}"

        try:
            count = await redis_client.incr(key)
            if count == 1:
                await redis_client.expire(key, 65)
            if count > self.limit_per_minute:
                return JSONResponse(
                    status_code=429,
                    content={"ok": False, "error": "Rate limit exceeded"},
                    headers={"Retry-After": "60"},
                )
        except Exception:
            # Fail open when Redis is unavailable.
            logger.warning("Rate limiter unavailable, letting request through", exc_info=True)

        return await call_next(request)
