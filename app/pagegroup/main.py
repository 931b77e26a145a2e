"""
FastAPI application for page-grouped PDF extraction.

Provides endpoints for:
- Merging PDFs and counting pages
- Suggesting fields from the first page
- Field extraction per page group and table extraction per page
- Streamed whole-document extraction runs
- CSV export of results
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import get_settings
from .models import HealthResponse
from .routers import export, extraction, pdfs
from .routers.dependencies import InvalidInput
from .services.ai import AIServiceError, MalformedResponse, get_ai_service
from .services.cache import get_page_group_cache
from .services.grouping import GroupIndexOutOfRange, InvalidArgument
from .services.orchestrator import GroupExtractionFailed
from .services.pdf_service import PDFDocumentError
from .services.retry import RetriesExhausted

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Page Group Extraction Service...")
    get_page_group_cache()
    get_ai_service()
    logger.info("Services initialized successfully")
    yield
    logger.info("Shutting down Page Group Extraction Service...")
    get_page_group_cache().clear()


# Create FastAPI application
app = FastAPI(
    title="Page Group Extraction API",
    description="Page-grouped PDF data extraction using AI",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS for frontend development
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
    return HealthResponse(status="healthy", version=__version__)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(pdfs.router)
app.include_router(extraction.router)
app.include_router(export.router)


# =============================================================================
# Exception Handlers
# =============================================================================


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error(status.HTTP_400_BAD_REQUEST, "Invalid request: " + "; ".join(messages))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(InvalidInput)
@app.exception_handler(InvalidArgument)
@app.exception_handler(GroupIndexOutOfRange)
async def bad_request_handler(request: Request, exc: Exception):
    """Handle invalid arguments and out-of-range groups."""
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(PDFDocumentError)
async def pdf_document_error_handler(request: Request, exc: PDFDocumentError):
    """Handle unparsable PDF input."""
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))


@app.exception_handler(MalformedResponse)
async def malformed_response_handler(request: Request, exc: MalformedResponse):
    """Handle inference output that could not be parsed."""
    logger.error("Malformed inference response: %s", exc.raw_text[:500])
    return _error(status.HTTP_502_BAD_GATEWAY, str(exc))


@app.exception_handler(GroupExtractionFailed)
async def group_failed_handler(request: Request, exc: GroupExtractionFailed):
    """Handle a field-mode run aborted by a failing group."""
    group_info = exc.group.model_dump(by_alias=True) if exc.group is not None else None
    return _error(status.HTTP_502_BAD_GATEWAY, str(exc), groupInfo=group_info)


@app.exception_handler(AIServiceError)
@app.exception_handler(RetriesExhausted)
async def ai_service_error_handler(request: Request, exc: Exception):
    """Handle inference backend failures."""
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Internal error: {exc}")
