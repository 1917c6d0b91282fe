from fastapi import APIRouter

from secure_assets.api.v1.assets import router as assets_router

api_router = APIRouter()
api_router.include_router(assets_router)
