"""
Exam Verification API - FastAPI application entry point.

This module:
1. Loads settings once and builds the shared Google Sheets store
2. Sets up structured JSON logging
3. Adds CORS and request ID (X-Request-ID) middleware
4. Maps service exceptions to JSON error responses
5. Registers the student and analytics routes plus a health check
6. Probes the sheet on startup and logs troubleshooting steps on failure

Layout:
- routes/: API endpoint handlers
- services/: business logic (students, analytics, normalization)
- models/: the student row layout
- sheets.py: Google Sheets access
- config.py: settings
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from exam_verification.config import Settings, load_settings
from exam_verification.errors import SheetAccessError, VerificationError
from exam_verification.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from exam_verification.routes import analytics, students
from exam_verification.sheets import SheetStore

SERVICE_NAME = "exam-verification-api"
VERSION = "1.0.0"

logger = get_logger("http")


def create_app(settings: Optional[Settings] = None, store=None,
               probe_on_startup: bool = True) -> FastAPI:
    """
    Build the application.

    ``store`` defaults to a SheetStore over ``settings``; tests pass an
    in-memory replacement.
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    store = store if store is not None else SheetStore(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if probe_on_startup and hasattr(store, "probe"):
            store.probe()
        yield

    app = FastAPI(
        title="Exam Verification API",
        description=(
            "Invigilation console backend: look up students by mobile number, register "
            "new students and record test approvals and retakes in a Google Sheet."
        ),
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    # ──────────────────────────────────────────────────────────
    # CORS: the console front end is served from another origin.
    # ──────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"]
    )

    # ──────────────────────────────────────────────────────────
    # Request ID middleware
    #
    # One UUID per request, stored in a context variable so that
    # every log entry of the request carries it, and echoed in
    # the X-Request-ID response header.
    # ──────────────────────────────────────────────────────────
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        req_id = generate_request_id()
        request_id_var.set(req_id)
        start_time = time.time()

        log_with_context(logger, "INFO",
            f"Request started: {request.method} {request.url.path}",
            context={"request_id": req_id},
            extra_data={
                "ip": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent", ""),
                "query_params": dict(request.query_params)
            })

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = req_id

        log_with_context(logger, "INFO",
            f"Request completed: {request.method} {request.url.path} → {response.status_code}",
            context={"request_id": req_id},
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "status_code": response.status_code
            })

        return response

    # ──────────────────────────────────────────────────────────
    # Error handlers
    # ──────────────────────────────────────────────────────────
    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError):
        level = "ERROR" if exc.status_code >= 500 else "WARNING"
        log_with_context(logger, level,
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra_data={"status_code": exc.status_code, "error": exc.error, "details": exc.details},
            exc_info=exc if exc.status_code >= 500 else None)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            "{}: {}".format(".".join(str(p) for p in err.get("loc", ())), err.get("msg", ""))
            for err in exc.errors()
        )
        log_with_context(logger, "WARNING", f"Malformed request to {request.url.path}",
                         extra_data={"problems": problems})
        return JSONResponse(status_code=400, content={
            "error": "Invalid request",
            "message": "The request body or parameters are malformed.",
            "details": problems,
        })

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_with_context(logger, "ERROR",
            f"{request.method} {request.url.path} failed with an unexpected error",
            extra_data={"status_code": 500, "error": repr(exc)},
            exc_info=exc)
        error = SheetAccessError(type(exc).__name__)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    app.include_router(students.router, tags=["Students"])
    app.include_router(analytics.router, tags=["Analytics"])

    @app.get("/health", tags=["Health"])
    def health_check():
        """Liveness check; also reports whether sheet credentials loaded."""
        init_error = getattr(store, "init_error", None)
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
            "credentials_loaded": init_error is None,
        }

    @app.get("/", tags=["Root"])
    def root():
        """Root endpoint with API information."""
        return {
            "service": "Exam Verification API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "lookup": "GET /student?mobileNo=",
                "list": "GET /students",
                "stats": "GET /students/stats",
                "create": "POST /student",
                "update": "POST /student/update"
            }
        }

    return app


def run():
    """Console entry point: serve with uvicorn on $PORT (default 4001)."""
    uvicorn.run("exam_verification.main:create_app", factory=True,
                host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "4001")))


if __name__ == "__main__":
    run()
