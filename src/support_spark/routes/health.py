"""
Health endpoint: 200 when every configured backend answers, 503 otherwise.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from support_spark import __version__
from support_spark.container import ServiceContainer
from support_spark.routes.dependencies import get_services

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)):
    checks = await services.health()
    healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "version": __version__,
            "storage_backend": services.settings.STORAGE_BACKEND,
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
