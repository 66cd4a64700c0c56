"""
Lyrics Studio - Main Application

Single-container FastAPI application that serves:
- REST API endpoints for the release / track catalog
- Timed lyrics: read, replace, highlight lookup and timing generation
- Listener likes
- Health check endpoint
- Simple session-based authentication for admin writes

All persistent data (catalog, lyrics, likes) lives in one local SQLite file.
"""

import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger

from src.auth import (
    auth_required,
    clear_session_cookie,
    get_current_user,
    render_login_page,
    set_session_cookie,
    verify_credentials,
)
from src.config import (
    APP_ENV,
    APP_HOST,
    APP_PORT,
    APP_VERSION,
    AUTH_PASSWORD,
    DEBUG,
    LOG_LEVEL,
    ensure_directories,
)
from src.database import init_db
from src.routes.api import router as api_router
from src.services.ai_timing import close_client, is_configured as ai_is_configured

# ---------------------------------------------------------------------------
# Logging setup: stdout only
# ---------------------------------------------------------------------------
logger.remove()

logger.add(
    sys.stdout,
    level="DEBUG" if DEBUG else LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    On startup:
        1. Create the data directory
        2. Initialize / migrate the SQLite database

    On shutdown:
        3. Close the shared AI timing HTTP client
    """
    logger.info("🚀 Starting Lyrics Studio v{}", APP_VERSION)
    logger.info("📋 Environment: {} | Debug: {}", APP_ENV, DEBUG)

    if AUTH_PASSWORD:
        logger.info("🔒 Authentication enabled")
    else:
        logger.warning("🔓 Authentication DISABLED (no AUTH_PASSWORD set)")

    if ai_is_configured():
        logger.info("🤖 AI lyric timing enabled")
    else:
        logger.info("🕒 AI lyric timing not configured, heuristic timing only")

    ensure_directories()
    logger.info("📁 Data directory initialized")

    try:
        init_db()
    except Exception as e:
        logger.critical("❌ Database initialization failed: {}", e)
        raise

    logger.success("✅ Application ready — listening on {}:{}", APP_HOST, APP_PORT)

    yield

    logger.info("🛑 Shutting down Lyrics Studio …")
    await close_client()
    logger.info("👋 Shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Lyrics Studio",
        description=(
            "Catalog and synchronized lyrics service for a music streaming app. "
            "Stores line- and word-timed lyrics, generates timing heuristically "
            "or with an AI service, and resolves the active lyric for playback."
        ),
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
    )

    # ------------------------------------------------------------------
    # Authentication middleware
    # ------------------------------------------------------------------
    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        """Reject admin writes from requests without a valid session."""
        if auth_required(request):
            return JSONResponse(
                status_code=401,
                content={"detail": "Authentication required"},
            )

        response = await call_next(request)
        return response

    # ------------------------------------------------------------------
    # Request logging middleware
    # ------------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every incoming HTTP request with timing information."""
        start = time.time()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration = round(time.time() - start, 3)
            logger.error(
                "❌ {method} {path} — unhandled error after {duration}s: {exc}",
                method=request.method,
                path=request.url.path,
                duration=duration,
                exc=exc,
            )
            raise

        duration = round(time.time() - start, 3)
        status = response.status_code
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        elif request.url.path.endswith("/lyrics/active"):
            # Polled on every playback tick
            log = logger.debug
        else:
            log = logger.info

        log(
            "📤 {method} {path} — {status} [{duration}s]",
            method=request.method,
            path=request.url.path,
            status=status,
            duration=duration,
        )
        return response

    # ------------------------------------------------------------------
    # Login / Logout routes
    # ------------------------------------------------------------------
    @app.get("/login")
    async def login_page(request: Request):
        """Show the login form."""
        if get_current_user(request):
            return RedirectResponse(url="/docs" if DEBUG else "/api/health", status_code=302)
        return render_login_page()

    @app.post("/login")
    async def login_post(
        request: Request,
        username: str = Form(...),
        password: str = Form(...),
    ):
        """Handle login form submission."""
        if verify_credentials(username, password):
            logger.info("🔓 User '{}' logged in", username)
            response = RedirectResponse(url="/docs" if DEBUG else "/api/health", status_code=302)
            set_session_cookie(response, username)
            return response

        logger.warning("🔒 Failed login attempt for '{}'", username)
        return render_login_page(
            error="Invalid username or password",
            prefill_user=username,
        )

    @app.get("/logout")
    async def logout(request: Request):
        """Log out and redirect to login page."""
        user = get_current_user(request)
        if user:
            logger.info("🔒 User '{}' logged out", user)
        response = RedirectResponse(url="/login", status_code=302)
        clear_session_cookie(response)
        return response

    app.include_router(api_router)  # /api/*  JSON endpoints

    return app


# ---------------------------------------------------------------------------
# Create the app instance (used by Uvicorn)
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Direct execution (development)
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=APP_HOST,
        port=APP_PORT,
        reload=DEBUG,
        log_level="debug" if DEBUG else "info",
    )
