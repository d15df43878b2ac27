import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from botengine.config import settings
from botengine.api.dependencies.services import service_registry
from botengine.api.router import api_router
from botengine.api.state.startup import record_startup_event
from botengine.errors import PersistenceError
from botengine.services.engine_service import EngineService
from botengine.utils.logging_config import configure_logging

logger = logging.getLogger("app")


def _bootstrap_services():
    try:
        engine = EngineService()
        record_startup_event("bootstrap", "engine_created")
    except Exception as e:  # pragma: no cover
        logger.error(f"Failed to create engine service: {e}")
        record_startup_event("bootstrap_error", "engine_failed", error=str(e))
        engine = None
    service_registry.register("engine", engine)
    return engine


async def initialize_database(engine: EngineService) -> bool:
    """Connect once so tables exist before the first cycle."""
    try:
        await engine.db.connect()
        logger.info("Database initialized successfully")
        return True
    except PersistenceError as e:
        logger.error(f"Database initialization failed: {e}")
        return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting Bot Engine...")

    engine = _bootstrap_services()
    if engine is None:
        logger.error("Engine service unavailable, trading loops will not run")
    else:
        db_ok = await initialize_database(engine)
        if not db_ok:
            logger.warning("Database initialization failed, but continuing...")
        if settings.AUTO_START_ENGINE and db_ok:
            try:
                await engine.start()
                logger.info("AUTO_START_ENGINE: engine started")
                record_startup_event("auto_start", "engine_started")
            except Exception as e:  # pragma: no cover
                logger.error(f"AUTO_START_ENGINE failed: {e}")
                record_startup_event("auto_start_error", "engine_failed", error=str(e))
        elif settings.AUTO_START_ENGINE:
            record_startup_event("auto_start_skip", "engine_not_started", reason="database_unavailable")

    yield

    logger.info("Shutting down bot engine...")
    for service_name, service_instance in service_registry.items():
        if service_instance is not None:
            try:
                await service_instance.stop()
                logger.info(f"{service_name.capitalize()} service stopped successfully")
            except Exception as e:  # pragma: no cover
                logger.error(f"Failed to stop {service_name} service: {e}")


app = FastAPI(
    title="Bot Engine",
    description="Simulated trading-bot signal and position engine",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(api_router)
