from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from insightsync.core.config import get_settings
from insightsync.crm.api import (
    activities_router,
    customers_router,
    dashboard_router,
    deals_router,
    pipeline_router,
    products_router,
    tasks_router,
    tickets_router,
    users_router,
)
from insightsync.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(users_router)
router.include_router(customers_router)
router.include_router(products_router)
router.include_router(pipeline_router)
router.include_router(deals_router)
router.include_router(tasks_router)
router.include_router(tickets_router)
router.include_router(activities_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
