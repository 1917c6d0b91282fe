from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from secure_assets.api.v1.router import api_router
from secure_assets.core.config import Settings, get_settings
from secure_assets.core.errors import AssetError, GitHubAPIError
from secure_assets.core.logging import configure_logging
from secure_assets.db.redis import create_redis_client
from secure_assets.middleware.rate_limit import RedisRateLimitMiddleware
from secure_assets.services.github import GitHubClient
from secure_assets.services.registry import AssetRegistry
from secure_assets.stores import AssetStore, create_asset_store

logger = logging.getLogger(__name__)


async def asset_error_handler(_request: Request, exc: AssetError) -> ORJSONResponse:
    content = {"ok": False, "error": exc.message, "code": exc.code}
    if isinstance(exc, GitHubAPIError) and exc.payload is not None:
        content["upstream"] = exc.payload
    if exc.retryable:
        content["retryable"] = True
    return ORJSONResponse(status_code=exc.status_code, content=content)


async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return ORJSONResponse(status_code=500, content={"ok": False, "error": "Internal server error"})


def create_app(
    settings: Settings | None = None,
    *,
    store: AssetStore | None = None,
    github: GitHubClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        asset_store = store or create_asset_store(settings)
        github_client = github or GitHubClient(
            settings.github_token,
            base_url=settings.github_api_url,
            timeout=settings.github_timeout_seconds,
        )
        await asset_store.open()
        app.state.redis = create_redis_client(settings.redis_url)
        app.state.registry = AssetRegistry(asset_store, github_client, settings)
        try:
            yield
        finally:
            await asset_store.close()
            await github_client.aclose()
            if app.state.redis is not None:
                await app.state.redis.aclose()

    app = FastAPI(
        title=settings.app_name,
        default_response_class=ORJSONResponse,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.redis = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RedisRateLimitMiddleware, limit_per_minute=settings.rate_limit_per_minute)
    app.add_exception_handler(AssetError, asset_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    if settings.metrics_enabled:
        Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    async def health() -> dict[str, str | bool]:
        return {"ok": True, "service": "secure-asset-api"}

    return app


configure_logging()

app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("secure_assets.main:app", host=settings.app_host, port=settings.app_port)
