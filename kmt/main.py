"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kmt.config import get_settings
from kmt.database import engine, Base
from kmt.logging_config import configure_logging
from kmt.api.routes import router
from kmt.services.errors import (
    AlreadyDeletedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    KmtError,
    NotDeletedError,
    NotFoundError,
    ValidationError
)
# Import models to register them with SQLAlchemy Base
from kmt.models.domain import MaterialRequest, PpeRegisterEntry  # noqa: F401
from kmt.models.audit import AuditEntry  # noqa: F401
from kmt.models.catalog import Material  # noqa: F401

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on start-up."""
    Base.metadata.create_all(bind=engine)
    logger.info("KMT started (database: %s)", engine.url.render_as_string(hide_password=True))
    yield


ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ForbiddenError: 403,
    InvalidTransitionError: 409,
    AlreadyDeletedError: 409,
    NotDeletedError: 409,
    ConflictError: 409,
}

# Create FastAPI app
app = FastAPI(
    title="KMT - Material Request Tracking",
    description="Material and PPE requests: submission, supervisor review, completion, recovery and export.",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix=settings.api_prefix, tags=["KMT"])


@app.exception_handler(KmtError)
async def kmt_error_handler(request: Request, exc: KmtError):
    """Map service errors onto HTTP status codes."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "retryable": isinstance(exc, ConflictError),
        }
    )


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "KMT"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
