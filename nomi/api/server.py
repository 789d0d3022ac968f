"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nomi.api.routes import router
from nomi.api.middleware import setup_cors, setup_rate_limiting
from nomi.config import DEFAULT_TIMEZONE, LOG_LEVEL, PAST_DUE_CHECK_INTERVAL_HOURS, validate_config
from nomi.db.connection import db
from nomi.db.schema import init_schema
from nomi.exceptions import NomiError, NotFoundError, UnavailableError, ValidationError
from nomi.services.container import init_container, reset_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "reminder_refresh"

ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (UnavailableError, 503),
)


def status_for(exc: NomiError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    validate_config()
    await db.init_pool()

    if db.is_available:
        try:
            result = await init_schema()
            logger.info(f"Database schema initialized: {result}")
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}", exc_info=True)

    container = init_container(timezone=DEFAULT_TIMEZONE)
    reminders = container.reminder_scheduler
    reminders.start()
    # Fired reminders are one-shot; this periodic pass re-arms the next
    # occurrence and sweeps for missed doses
    reminders.scheduler.add_job(
        reminders.refresh,
        trigger="interval",
        hours=PAST_DUE_CHECK_INTERVAL_HOURS,
        id=REFRESH_JOB_ID,
        replace_existing=True,
        next_run_time=container.clock.now(),
    )
    logger.info(f"Reminder refresh every {PAST_DUE_CHECK_INTERVAL_HOURS}h registered")

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    reset_container()
    await db.close_pool()
    logger.info("Database pool closed")


def create_api_application() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Nomi Wellness API",
        description="Mood tracking, wellness reminders and dose history",
        version="1.0.0",
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)

    # Include routes
    app.include_router(router)

    @app.exception_handler(NomiError)
    async def nomi_exception_handler(request: Request, exc: NomiError):
        status_code = status_for(exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.message if status_code < 500 else exc.user_message,
                "type": exc.__class__.__name__,
                "request_id": exc.request_id,
            }
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "detail": jsonable_encoder(exc.errors())}
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "detail": str(exc)}
        )

    logger.info("FastAPI application created")

    return app


app = create_api_application()
