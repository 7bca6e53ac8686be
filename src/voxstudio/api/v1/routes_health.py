"""Health check endpoint for VoxStudio Engine."""

from fastapi import APIRouter

from voxstudio.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Report service status, name, version and the active document store.

    No store call is made so the check stays fast.
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "store_backend": settings.STORE_BACKEND,
    }
