from .system import router as system_router  # noqa: F401
from .engine_control import router as engine_control_router  # noqa: F401

__all__ = ["system_router", "engine_control_router"]
