"""
Apothecary Service
Herbal apothecary storefront, custom compounds, wellness assessments and
practitioner bookings behind one FastAPI application.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from apothecary.api.assessments import router as assessments_router
from apothecary.api.bookings import router as bookings_router
from apothecary.api.compounds import router as compounds_router
from apothecary.api.newsletter import router as newsletter_router
from apothecary.api.orders import router as orders_router
from apothecary.api.products import router as products_router
from apothecary.api.reviews import router as reviews_router
from apothecary.api.wellness import router as wellness_router
from apothecary.application.errors import ApothecaryError
from apothecary.core_settings import get_settings
from apothecary.infrastructure.db import engine, init_models

settings = get_settings()

# Service configuration
SERVICE_NAME = "apothecary-service"
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_DESCRIPTION = "Herbal apothecary commerce and wellness service"
PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..")

setup_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL)

logger = get_logger(__name__)

def missing_settings() -> list:
    missing = []
    if settings.JWT_SECRET == "change-me":
        missing.append("JWT_SECRET")
    if not settings.AVAILABILITY_RPC_URL:
        missing.append("AVAILABILITY_RPC_URL")
    return missing

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    try:
        logger.info("Running database migrations")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=PROJECT_ROOT,
            capture_output=True,
            text=True,
            check=False
        )
        if result.returncode != 0:
            logger.warning(f"Migration output: {result.stderr}")
        else:
            logger.info("Database migrations completed")
    except OSError as e:
        logger.error(f"Migration error: {e}")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")

app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

@app.exception_handler(ApothecaryError)
async def apothecary_error_handler(request: Request, exc: ApothecaryError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra={"extra_fields": {"status_code": exc.status_code, "error_type": type(exc).__name__}},
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

health_service = ServiceHealth(SERVICE_NAME, SERVICE_VERSION, engine, config_check=missing_settings)
app.include_router(health_service.create_health_router())

app.include_router(products_router)
app.include_router(reviews_router)
app.include_router(orders_router)
app.include_router(assessments_router)
app.include_router(compounds_router)
app.include_router(wellness_router)
app.include_router(bookings_router)
app.include_router(newsletter_router)

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }

@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "endpoints": {
            "health": "/health",
            "ready": "/health/ready",
            "live": "/health/live",
            "metrics": "/metrics",
            "docs": "/api/docs",
            "products": "/products/",
            "orders": "/orders/",
            "compounds": "/compounds/",
            "bookings": "/bookings/",
            "wellness": "/wellness/packages"
        }
    }
