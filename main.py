"""FastAPI application entrypoint for the school portal.

``create_app`` wires the store, upload storage and services explicitly; the
module-level ``app`` is what uvicorn serves.
"""
import sys
import time
import uuid
from typing import Optional

# Ensure UTF-8 encoding
if sys.stdout and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding='utf-8')

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from portal.api.routes import router
from portal.core.config import Settings, settings
from portal.core.errors import register_exception_handlers
from portal.core.logging import get_logger, setup_logging
from portal.infrastructure.store import DocumentStore, create_store
from portal.infrastructure.uploads import UploadStorage
from portal.services.registry import build_services

logger = get_logger(__name__)

# Application metadata
APP_VERSION = "1.0.0"
APP_NAME = "School Portal"


def create_app(
    config: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    uploads: Optional[UploadStorage] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Settings (default: environment settings)
        store: Document store (default: chosen from MONGODB_URI)
        uploads: Upload storage (default: UPLOAD_DIR)

    Returns:
        Configured FastAPI app
    """
    config = config or settings
    store = store if store is not None else create_store(config)
    uploads = uploads or UploadStorage.from_settings(config)

    app = FastAPI(
        title=APP_NAME,
        description="Classes, announcements, assignments, events and media for a school",
        version=APP_VERSION,
        docs_url="/docs" if config.environment != "production" else None,
        redoc_url="/redoc" if config.environment != "production" else None,
    )
    app.state.services = build_services(store, uploads, config)
    app.state.settings = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with timing; turn uncaught errors into a JSON 500."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id}
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )

        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)
    app.include_router(router, prefix=config.api_prefix)
    app.mount(
        config.upload_url_prefix,
        StaticFiles(directory=str(uploads.directory), check_dir=False),
        name="uploads",
    )

    @app.get("/")
    def root():
        """Root endpoint with basic service info."""
        return {
            "service": APP_NAME,
            "version": APP_VERSION,
            "status": "running",
            "environment": config.environment
        }

    @app.get("/health")
    def health_check():
        """Liveness probe."""
        return {"status": "healthy", "version": APP_VERSION}

    @app.get("/ready")
    def readiness_check():
        """Readiness probe: verifies the document store answers."""
        services = app.state.services
        checks = {"store": "ok" if services.store.ping() else "error"}
        all_ok = checks["store"] != "error"
        return JSONResponse(
            status_code=200 if all_ok else 503,
            content={"status": "ready" if all_ok else "degraded", "checks": checks},
        )

    logger.info(f"Application configured ({config.environment})")
    return app


# Initialize structured logging
setup_logging(level=settings.log_level, json_format=settings.environment == "production")

app = create_app()


if __name__ == "__main__":
    import os
    import uvicorn
    port = int(os.getenv("PORT", 10000))
    uvicorn.run(app, host="0.0.0.0", port=port)
