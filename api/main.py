"""Main FastAPI application."""
import uuid
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from shared.exceptions import DocumentNotFoundError, MalformedInputError, StoreUnavailableError, VaultError
from api.routes import auth, diagnostics, documents, search, security, upload
from api.services.container import VaultServices, build_services
from workers.maintenance.worker import MaintenanceWorker
import logging
import traceback

# Correlation ID context variable for request tracing
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""
    def filter(self, record):
        record.correlation_id = correlation_id_var.get("")
        return True

# Configure logging with correlation ID
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"
)
for handler in logging.root.handlers:
    handler.addFilter(CorrelationIdFilter())

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to each request."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4())[:8])
        correlation_id_var.set(correlation_id)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s"
        )

        return response


def _error_response(status_code: int, exc: VaultError) -> JSONResponse:
    content = {"detail": exc.message, "type": type(exc).__name__}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


def create_app(services: Optional[VaultServices] = None, run_maintenance: bool = True) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built service container; built from configuration at startup when omitted
        run_maintenance: Whether to run the periodic sweep worker alongside the app

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            app.state.services = build_services()
        worker = None
        if run_maintenance:
            worker = MaintenanceWorker(app.state.services)
            worker.start()
        yield
        if worker:
            worker.stop()
        app.state.services.extractor.close()

    app = FastAPI(
        title="Document Vault API",
        description="Secure document intake, classification and search with policy enforcement",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.services = services

    # Add correlation ID middleware (must be first)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"Store unavailable: {exc.message} ({exc.details})")
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    @app.exception_handler(MalformedInputError)
    async def malformed_input_handler(request: Request, exc: MalformedInputError):
        logger.warning(f"Malformed input: {exc.message}")
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)

    @app.exception_handler(DocumentNotFoundError)
    async def not_found_handler(request: Request, exc: DocumentNotFoundError):
        return _error_response(status.HTTP_404_NOT_FOUND, exc)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        error_trace = traceback.format_exc()
        logger.error(f"Unhandled exception: {exc}\n{error_trace}")
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "type": type(exc).__name__
            }
        )

    app.include_router(upload.router)
    app.include_router(search.router)
    app.include_router(documents.router)
    app.include_router(auth.router)
    app.include_router(security.router)
    app.include_router(diagnostics.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Document Vault API",
            "version": "1.0.0",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
