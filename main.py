"""DiabeaCheck - Diabetes Risk Prediction API."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import Settings, get_settings
from app.database import Database, get_db
from app.errors import ApiError, ErrorKind, validation_details
from app.rate_limit import limiter
from app.routers import auth_router, predictions_router, users_router
from app.services.auth import build_auth_service
from app.services.prediction import build_prediction_service
from app.services.profile import ProfileService

APP_VERSION = "1.0.0"

logger = logging.getLogger("diabeacheck")


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    MAX_BODY_SIZE = 10 * 1024 * 1024  # 10MB

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PREFIXES = ("/api/auth/", "/api/predict", "/api/user/")

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        method = request.method
        if method in ("POST", "PUT", "DELETE") and path.startswith(self.AUDIT_PREFIXES):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map errors to JSON bodies. Internal details never reach the client."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ApiError(ErrorKind.VALIDATION_FAILED, "Validation failed", validation_details(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        error = ApiError(ErrorKind.RATE_LIMITED, "Rate limit exceeded. Try again later.")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
        error = ApiError(ErrorKind.INTERNAL_FAILURE, "Internal server error")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application. Services and the database handle live on app.state."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        errors = settings.validate()
        if errors:
            for error in errors:
                logger.error("Configuration error: %s", error)
            raise RuntimeError(f"Invalid configuration: {'; '.join(errors)}")

        database = Database(settings.DATABASE_URL, echo=settings.DEBUG)
        app.state.database = database
        app.state.auth_service = build_auth_service(settings)
        app.state.profile_service = ProfileService()
        app.state.prediction_service = build_prediction_service(settings)
        logger.info("DiabeaCheck API started (env=%s)", settings.APP_ENV)
        try:
            yield
        finally:
            app.state.prediction_service.client.close()
            database.dispose()
            logger.info("DiabeaCheck API stopped")

    app = FastAPI(title="DiabeaCheck API", version=APP_VERSION, lifespan=lifespan)
    app.state.limiter = limiter

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(AuditLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(predictions_router)
    app.include_router(users_router)
    register_exception_handlers(app)

    @app.get("/api/health")
    def health_check(db: Session = Depends(get_db)) -> JSONResponse:
        """Health check endpoint, including database connectivity."""
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Health check database ping failed")
            return JSONResponse(
                status_code=503,
                content={"status": "error", "app": "diabeacheck", "database": "disconnected"},
            )
        return JSONResponse(
            content={"status": "ok", "app": "diabeacheck", "version": APP_VERSION, "database": "connected"}
        )

    return app


# Logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
