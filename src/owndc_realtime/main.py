"""
Main application module for the OwnDC realtime coordinator.

Sets up the FastAPI application with lifespan management of the database
connection and the realtime coordinator, CORS, routing and Prometheus metrics.
"""

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from owndc_realtime.config import settings
from owndc_realtime.database import db_manager
from owndc_realtime.managers.chat_store import ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.coordinator import RealtimeCoordinator
from owndc_realtime.realtime.router import router as realtime_router
from owndc_realtime.utils.logging_utils import log_application_lifecycle, log_error_with_context

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects to MongoDB, makes sure the indexes exist and creates the realtime
    coordinator on startup; closes every realtime connection and the database
    client on shutdown.
    """
    startup_start_time = time.time()

    log_application_lifecycle(
        "startup_initiated",
        {
            "app_name": settings.APP_NAME,
            "environment": "production" if settings.is_production else "development",
            "debug_mode": settings.DEBUG,
        },
    )

    try:
        db_connect_start = time.time()
        logger.info("Initiating database connection...")

        await db_manager.connect()

        log_application_lifecycle(
            "database_connected",
            {
                "connection_duration": f"{time.time() - db_connect_start:.3f}s",
                "database_name": settings.MONGODB_DATABASE,
                "connection_url": (
                    settings.MONGODB_URL.split("@")[-1] if "@" in settings.MONGODB_URL else settings.MONGODB_URL
                ),
            },
        )

        await db_manager.create_indexes()
        log_application_lifecycle("database_indexes_ready")

    except Exception as e:
        log_application_lifecycle(
            "startup_failed",
            {"error": str(e), "error_type": type(e).__name__, "startup_duration": f"{time.time() - startup_start_time:.3f}s"},
        )
        log_error_with_context(e, {"operation": "application_startup", "phase": "database_connection"})
        raise HTTPException(status_code=503, detail="Service not ready: Database connection failed") from e

    app.state.realtime = RealtimeCoordinator(ChatStore(db_manager))

    total_startup_duration = time.time() - startup_start_time
    log_application_lifecycle("startup_completed", {"total_startup_duration": f"{total_startup_duration:.3f}s"})
    logger.info(f"FastAPI application startup completed in {total_startup_duration:.3f}s")

    yield

    shutdown_start_time = time.time()
    log_application_lifecycle("shutdown_initiated", {"online_users": len(app.state.realtime.registry)})

    try:
        await app.state.realtime.shutdown()
    except Exception as e:
        log_error_with_context(e, {"operation": "realtime_shutdown"})

    try:
        logger.info("Disconnecting from database...")
        await db_manager.disconnect()
        log_application_lifecycle("database_disconnected")
    except Exception as e:
        log_error_with_context(e, {"operation": "database_disconnection"})

    total_shutdown_duration = time.time() - shutdown_start_time
    log_application_lifecycle("shutdown_completed", {"total_shutdown_duration": f"{total_shutdown_duration:.3f}s"})
    logger.info(f"FastAPI application shutdown completed in {total_shutdown_duration:.3f}s")


app = FastAPI(
    title="OwnDC Realtime",
    description="Realtime coordinator for OwnDC: presence, voice rooms, WebRTC signaling and chat fan-out.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(realtime_router)
log_application_lifecycle("routers_configured", {"routers": ["realtime"]})

# Configure Prometheus metrics
logger.info("Setting up Prometheus metrics instrumentation...")
try:
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
    )
    instrumentator.add().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
    log_application_lifecycle("prometheus_configured", {"metrics_endpoint": "/metrics"})
except Exception as e:
    log_error_with_context(e, {"operation": "prometheus_setup"})
    logger.error(f"Failed to configure Prometheus metrics: {e}")


if __name__ == "__main__":
    uvicorn.run("owndc_realtime.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")
