"""Unified API router aggregator.

Adds all individual feature routers here to keep `app.py` clean.
"""
from fastapi import APIRouter

from botengine.api.routes.engine_control import router as engine_control_router
from botengine.api.routes.system import router as system_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(engine_control_router)

__all__ = ["api_router"]
