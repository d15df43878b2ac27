"""System & metadata routes (root, health, status, metrics)."""
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from botengine.config import settings
from botengine.api.dependencies.services import ServiceRegistry, get_service_registry
from botengine.api.state.startup import get_startup_events
from botengine.utils.time_utils import utc_now

router = APIRouter()

@router.get("/")
async def root(registry: ServiceRegistry = Depends(get_service_registry)):
    return {
        "name": "Bot Engine",
        "version": "1.0.0",
        "description": "Simulated trading-bot signal and position engine",
        "services": registry.names(),
        "auto_start": settings.AUTO_START_ENGINE,
        "endpoints": {
            "health": "/health",
            "status": "/status",
            "startup_events": "/startup/log",
            "metrics": "/metrics",
            "docs": "/docs",
            "control": "/control/",
        },
    }

@router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": utc_now().isoformat()}

@router.get("/status")
async def status(registry: ServiceRegistry = Depends(get_service_registry)):
    return registry.all_status()

@router.get("/startup/log")
async def startup_log(limit: int = 100):
    return {"events": get_startup_events(limit)}

@router.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

__all__ = ["router"]
