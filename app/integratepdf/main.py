"""
FastAPI application for IntegratePDF.

Provides endpoints for:
- Uploading PDFs and triggering AI extraction
- Reviewing and correcting extracted fields
- Managing Notion and Google Sheets integrations and pushing data to them
- Identity provider webhooks and user profile/usage
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .config import get_settings
from .database import init_db
from .models import HealthResponse
from .routers import documents, extraction, google_sheets, integrations, upload, users, webhooks
from .services.ai import AIServiceError
from .services.pdf_service import PDFConversionError
from .services.rate_limit import RateLimitExceeded
from .services.storage_service import StorageError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting IntegratePDF API...")
    if settings.auto_create_tables:
        # In production, manage the schema with migrations instead
        init_db()
        logger.info("Database tables created")
    yield
    logger.info("Shutting down IntegratePDF API...")


# Create FastAPI application
app = FastAPI(
    title="IntegratePDF API",
    description="Extract structured data from PDFs with AI and push it to your tools",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    """Root endpoint - health check."""
    return HealthResponse(status="healthy", message="IntegratePDF API is running", version=__version__)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", message="Service is healthy", version=__version__)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(upload.router)
app.include_router(documents.router)
app.include_router(extraction.router)
app.include_router(google_sheets.router)  # Before /integrations/{id} routes
app.include_router(integrations.router)
app.include_router(webhooks.router)
app.include_router(users.router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(PDFConversionError)
async def pdf_conversion_error_handler(request: Request, exc: PDFConversionError):
    """Handle PDF conversion errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.exception_handler(AIServiceError)
async def ai_service_error_handler(request: Request, exc: AIServiceError):
    """Handle AI service errors."""
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc)},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """Handle blob storage errors."""
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Storage service error"},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded):
    """Handle throttled uploads with the limit headers."""
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Too many requests",
            "message": str(exc),
            "retryAfter": exc.result.retry_after,
        },
        headers=exc.result.headers(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors without leaking details."""
    logger.exception("Database error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
