"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Initialize the FastAPI application with metadata (title, version)
  - Configure middleware (request context, CORS, security headers, request gate)
  - Mount the auth, page and user-administration routers
  - Expose the public health check

Collaborators:
  - FastAPI: ASGI web framework
  - RequestContextMiddleware: request id and logging context
  - RequestGateMiddleware: identity resolution, redirects and route permissions
  - auth_routes / user_routes: HTTP endpoints
  - infrastructure.db.pool: PostgreSQL connection pool lifecycle

Constraints:
  - CORS configurable via ALLOWED_ORIGINS (comma-separated)
  - In test environments the pool is not opened (in-memory repositories)

Notes:
  - Middleware order (outermost first): RequestContext -> SecurityHeaders
    -> CORS -> RequestGate -> routes
  - /api/health answers 503 when the database is unreachable
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..container import _is_test_env, get_auth_service, get_route_policy
from ..crosscutting.auth_gate import RequestGateMiddleware
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.middleware import RequestContextMiddleware
from ..crosscutting.security import SecurityHeadersMiddleware
from ..infrastructure.db.pool import close_pool, get_pool, init_pool, is_pool_initialized
from .auth_routes import router as auth_router
from .exception_handlers import register_exception_handlers
from .user_routes import router as user_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Opens the pool outside test environments."""
    settings = get_settings()
    use_database = not _is_test_env()

    if use_database:
        init_pool(
            database_url=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    logger.info(
        "Gym Auth API starting up",
        extra={
            "app_env": settings.app_env,
            "database": use_database,
            "db_pool_min": settings.db_pool_min_size,
            "db_pool_max": settings.db_pool_max_size,
        },
    )

    try:
        yield
    finally:
        if use_database:
            close_pool()
        logger.info("Gym Auth API shutting down")


# R: CORS origins from settings, with fallback for import-time errors
def _get_allowed_origins() -> list[str]:
    try:
        return get_settings().get_allowed_origins_list()
    except Exception:
        return ["http://localhost:3000"]


def _get_cors_allow_credentials() -> bool:
    try:
        return get_settings().cors_allow_credentials
    except Exception:
        return False


app = FastAPI(
    title="Gym Auth API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "auth", "description": "Login, logout, token validation"},
        {"name": "pages", "description": "Login, logout and first-time setup pages"},
        {"name": "users", "description": "User administration (permission-guarded)"},
        {"name": "health", "description": "Liveness and database status"},
    ],
)

# R: add_middleware wraps: the last one added runs first.
app.add_middleware(
    RequestGateMiddleware,
    service_provider=get_auth_service,
    policy=get_route_policy(),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_credentials=_get_cors_allow_credentials(),
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-Id"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(auth_router)
app.include_router(user_router)

register_exception_handlers(app)


def _database_status() -> str:
    if _is_test_env():
        return "in_memory"
    if not is_pool_initialized():
        return "disconnected"
    try:
        with get_pool().connection() as conn:
            conn.execute("SELECT 1").fetchone()
        return "connected"
    except Exception as e:
        logger.warning("Health check: DB unavailable", extra={"error": str(e)})
        return "disconnected"


@app.get("/api/health", tags=["health"])
def health(request: Request):
    """
    Returns:
        ok: True when the database answers
        db: "connected", "disconnected" or "in_memory"
        request_id: correlation id for this request
    """
    db_status = _database_status()
    ok = db_status != "disconnected"
    return JSONResponse(
        {
            "ok": ok,
            "db": db_status,
            "request_id": getattr(request.state, "request_id", None),
        },
        status_code=200 if ok else 503,
    )
