"""Read-only harvester monitoring API."""
from fastapi import APIRouter, Query, Request

from src.web.dependencies import get_services

router = APIRouter(prefix="/api/harvester")


@router.get("/status")
async def harvester_status(request: Request):
    services = get_services(request)
    return services.run_state.snapshot().to_dict()


@router.get("/history")
async def harvester_history(request: Request, limit: int = Query(20, ge=1, le=100)):
    services = get_services(request)
    records = services.run_history.list()[:limit]
    return {"runs": [r.to_dict() for r in records]}


@router.get("/stats")
async def harvester_stats(request: Request):
    services = get_services(request)
    return services.harvester_stats.get_stats().to_dict()
