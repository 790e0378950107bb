from fastapi import APIRouter

from config import settings
from .auth_router import router as auth_router
from .stations_router import router as stations_router
from .stats_router import router as stats_router

router = APIRouter(prefix="/api/v1", tags=["v1"])
router.include_router(stations_router)
router.include_router(stats_router)
router.include_router(auth_router)


@router.get("/health")
async def health():
    return {"status": "ok", "version": settings.app_version}


@router.get("/info")
async def info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "cors_origins": settings.cors_origins,
        "hidroweb_configured": bool(settings.hidroweb_username and settings.hidroweb_password),
        "history_batch_size": settings.ana_history_batch_size,
        "history_max_concurrent_batches": settings.ana_history_max_concurrent_batches,
    }
