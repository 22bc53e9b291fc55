"""Main FastAPI application."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from inward.core.config import settings
from inward.core.logging import setup_logging, get_logger
from inward.core.database import engine, Base
from inward.core.exceptions import WorkflowError, InvalidTransitionError
from inward.api.v1 import router as v1_router
import inward.models  # noqa: F401  Force models to register with Base


# Setup logging
setup_logging(settings.DEBUG)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Vehicle Inward Console API")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Schema is owned by Alembic; only report what is missing
    try:
        async with engine.connect() as conn:
            def missing_tables(sync_conn):
                existing = set(inspect(sync_conn).get_table_names())
                return sorted(set(Base.metadata.tables) - existing)

            missing = await conn.run_sync(missing_tables)
        if missing:
            logger.error(f"Database is missing tables {missing}. Run `alembic upgrade head`.")
        else:
            logger.info("Database schema check passed.")
    except Exception as e:
        logger.error(f"Schema check failed: {e}")
        # Not raising here to prevent boot-loop if DB is reachable but slightly weird

    yield
    logger.info("Shutting down Vehicle Inward Console API")
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant vehicle inward and accessory installation workflow API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(v1_router, prefix="/api")


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Render domain rejections as `{detail, code}` with the mapped status."""
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, InvalidTransitionError):
        content["current_status"] = exc.current
        content["target_status"] = exc.target
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors for debugging 422s."""
    logger.error(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc), "code": "validation_error"},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that are not JSON serialisable
    return [
        {key: (str(value) if key == "ctx" else value) for key, value in error.items()}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.APP_NAME}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/api/docs",
    }
