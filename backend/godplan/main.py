import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from godplan.api import attendance as attendance_api
from godplan.api import auth as auth_api
from godplan.api import users as users_api
from godplan.core.config import Settings, get_settings
from godplan.core.database import Database, DatabaseUnavailable, init_database, mask_database_url
from godplan.core.logging_config import setup_logging
from godplan.core.responses import error_response, success
from godplan.core.security import TokenService
from godplan.services.attendance import MonotonicClock
from godplan.services.geofence import GeofencePolicy

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
MAX_BODY_BYTES = 10 * 1024 * 1024  # 10MB, bounds inline selfies
WRITE_METHODS = {"POST", "PUT", "PATCH"}
ALLOWED_CONTENT_TYPES = ("application/json", "multipart/form-data", "application/x-www-form-urlencoded")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Content-Security-Policy": "default-src 'self'; img-src * data:; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database (with retries) and make sure tables exist."""
    db: Database = app.state.db
    db.connect()
    init_database(db)
    yield
    db.dispose()


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    if settings.DATABASE_URL:
        logger.info("Using DATABASE_URL: %s", mask_database_url(settings.database_url))
    else:
        logger.info(
            f"DATABASE_URL not found, using DB host={settings.DB_HOST} port={settings.DB_PORT} "
            f"user={settings.DB_USER} name={settings.DB_NAME} sslmode={settings.DB_SSLMODE}"
        )

    # Disable API docs in production
    docs_url = "/docs" if not settings.is_production else None
    redoc_url = "/redoc" if not settings.is_production else None

    app = FastAPI(
        title=settings.APP_NAME,
        description="GodPlan - workplace attendance API",
        version=VERSION,
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=redoc_url,
    )

    # Process-wide components, built once and read by dependencies
    app.state.settings = settings
    app.state.db = database or Database(settings.database_url)
    app.state.tokens = TokenService(
        settings.JWT_SECRET,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        leeway=settings.TOKEN_LEEWAY_SECONDS,
    )
    app.state.geofence = GeofencePolicy.from_settings(settings)
    app.state.clock = MonotonicClock()

    _register_exception_handlers(app)
    _register_middleware(app, settings)
    _register_health(app)

    app.include_router(auth_api.router)
    app.include_router(attendance_api.router)
    app.include_router(users_api.router)

    logger.info(f"Application ready in {settings.ENVIRONMENT} mode")
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    # Every error leaves through the same JSON envelope

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if exc.status_code == 404 and detail == "Not Found":
            detail = f"Route not found: {request.url.path}"
        return error_response(exc.status_code, str(detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return error_response(400, "Validation failed: " + ", ".join(problems))

    @app.exception_handler(DatabaseUnavailable)
    async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
        logger.error(f"Database unavailable: {exc}")
        return error_response(503, "Service temporarily unavailable")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(500, "Internal server error")


def _register_middleware(app: FastAPI, settings: Settings) -> None:
    @app.middleware("http")
    async def validate_input(request: Request, call_next):
        if request.method in WRITE_METHODS:
            content_type = request.headers.get("content-type", "")
            if not any(ct in content_type for ct in ALLOWED_CONTENT_TYPES):
                return error_response(400, "Invalid content type")
            # Write bodies must declare their length; chunked uploads are refused
            content_length = request.headers.get("content-length")
            if content_length is None or not content_length.isdigit():
                return error_response(400, "Content-Length required")
            if int(content_length) > MAX_BODY_BYTES:
                return error_response(400, "Request body too large")
        return await call_next(request)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} - {response.status_code} - {duration_ms:.1f}ms")
        return response

    # CORS: local dev plus the configured frontend
    allowed_origins = ["http://localhost:3000", "http://localhost:5173"]
    if settings.FRONTEND_URL and settings.FRONTEND_URL not in allowed_origins:
        allowed_origins.append(settings.FRONTEND_URL)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _register_health(app: FastAPI) -> None:
    def health_check(request: Request):
        """Liveness plus database reachability."""
        try:
            request.app.state.db.health()
        except DatabaseUnavailable as e:
            logger.error(f"Database health check failed: {e}")
            return error_response(503, "Database unavailable")
        settings = request.app.state.settings
        return success(
            {
                "status": "ok",
                "service": "godplan-backend",
                "database": "connected",
                "environment": settings.ENVIRONMENT,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": VERSION,
                "using_db_url": bool(settings.DATABASE_URL),
            },
            "Service healthy",
        )

    app.add_api_route("/health", health_check, methods=["GET"], tags=["health"])
    app.add_api_route("/api/v1/health", health_check, methods=["GET"], tags=["health"])
