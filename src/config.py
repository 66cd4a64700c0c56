"""
Lyrics Studio - Configuration
All settings loaded from environment variables with sensible defaults.

The service keeps its catalog and lyric timing data in a local SQLite file.
AI-assisted timing talks to an OpenAI-compatible chat completions endpoint
and is optional: without an API key the heuristic timing is the only option.
"""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
_ = load_dotenv()

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")

if APP_ENV == "production" and SECRET_KEY == "change-me-in-production":
    raise RuntimeError(
        "SECRET_KEY must be changed from the default value in production. "
        "Set the SECRET_KEY environment variable to a random secret."
    )

# ---------------------------------------------------------------------------
# Authentication (single admin account for catalog and lyric edits)
# ---------------------------------------------------------------------------
AUTH_USERNAME = os.getenv("AUTH_USERNAME", "admin")
AUTH_PASSWORD = os.getenv("AUTH_PASSWORD", "")  # empty disables auth
# Session cookie name and max age (seconds), default 30 days
SESSION_COOKIE_NAME = "ls_session"
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 24 * 30)))

# Listener identity for likes is passed explicitly by the client in this header
SESSION_HEADER_NAME = os.getenv("SESSION_HEADER_NAME", "X-Session-Id")

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
DATA_DIR = Path(
    os.getenv("DATA_DIR", os.path.join(tempfile.gettempdir(), "lyrics_studio"))
)
DB_PATH = Path(os.getenv("DB_PATH", os.path.join(DATA_DIR, "lyrics_studio.db")))

# ---------------------------------------------------------------------------
# Logging: stdout only
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# ---------------------------------------------------------------------------
# AI timing service (OpenAI-compatible chat completions)
# ---------------------------------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# A slow service is treated like a broken one once this expires
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
# Extra attempts after the first one (0 disables retrying)
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "1"))
AI_RETRY_BACKOFF_SECONDS = float(os.getenv("AI_RETRY_BACKOFF_SECONDS", "1.0"))

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
RELEASE_TYPES = {"single", "ep", "album"}


def ensure_directories() -> None:
    """Create the local data directory that holds the SQLite database."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
