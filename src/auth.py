"""
Lyrics Studio - Simple Session Auth

Single-admin authentication using signed cookies.  The username and password
are read from environment variables (AUTH_USERNAME / AUTH_PASSWORD).

Listening is public: browsing the catalog, reading lyrics, resolving the
active lyric line and liking tracks need no login.  Every other write to
the API (catalog edits, lyric saves, timing generation) requires the admin
session.  With AUTH_PASSWORD unset, auth is disabled entirely.
"""

import hashlib
import hmac
import json
import time
from html import escape
from typing import Any

from fastapi import Request, Response
from fastapi.responses import HTMLResponse

from src.config import (
    AUTH_PASSWORD,
    AUTH_USERNAME,
    SECRET_KEY,
    SESSION_COOKIE_NAME,
    SESSION_MAX_AGE,
)

# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _sign(payload: str) -> str:
    """Create an HMAC-SHA256 signature for a payload string."""
    return hmac.new(
        SECRET_KEY.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _create_session_cookie(username: str) -> str:
    """Create a signed session cookie value."""
    data = json.dumps({"user": username, "ts": int(time.time())})
    return f"{data}|{_sign(data)}"


def _parse_session_cookie(cookie_value: str) -> dict[str, Any] | None:
    """Parse and verify a session cookie.  Returns the session dict or None."""
    if not cookie_value or "|" not in cookie_value:
        return None

    try:
        data_part, sig_part = cookie_value.rsplit("|", 1)
        if not hmac.compare_digest(sig_part, _sign(data_part)):
            return None

        session = json.loads(data_part)

        # Check expiry
        if time.time() - session.get("ts", 0) > SESSION_MAX_AGE:
            return None

        return session
    except (ValueError, TypeError, AttributeError):
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_current_user(request: Request) -> str | None:
    """Return the logged-in username, or None if not authenticated."""
    session = _parse_session_cookie(request.cookies.get(SESSION_COOKIE_NAME, ""))
    if session:
        return session.get("user")
    return None


def is_authenticated(request: Request) -> bool:
    """Check whether the current request has a valid session."""
    return get_current_user(request) is not None


def set_session_cookie(response: Response, username: str) -> None:
    """Set the signed session cookie on a response."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=_create_session_cookie(username),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    """Remove the session cookie."""
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


# ---------------------------------------------------------------------------
# Auth check
# ---------------------------------------------------------------------------

READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# Write endpoints open to anonymous listeners
PUBLIC_WRITE_PREFIXES = ("/api/likes",)


def _is_admin_write(request: Request) -> bool:
    """Return True if the request modifies data only the admin may change."""
    path = request.url.path
    if request.method.upper() in READ_METHODS:
        return False
    if not path.startswith("/api/"):
        return False
    return not any(path == p or path.startswith(p + "/") for p in PUBLIC_WRITE_PREFIXES)


def auth_required(request: Request) -> bool:
    """
    Return True if this request requires auth and the user is NOT logged in.

    If AUTH_PASSWORD is empty, auth is disabled entirely (always returns False).
    """
    if not AUTH_PASSWORD:
        return False

    if not _is_admin_write(request):
        return False

    return not is_authenticated(request)


def verify_credentials(username: str, password: str) -> bool:
    """Verify login credentials against the configured values."""
    if not AUTH_PASSWORD:
        return False

    user_ok = hmac.compare_digest(username.lower(), AUTH_USERNAME.lower())
    pass_ok = hmac.compare_digest(password, AUTH_PASSWORD)
    return user_ok and pass_ok


# ---------------------------------------------------------------------------
# Login page HTML
# ---------------------------------------------------------------------------

LOGIN_PAGE_HTML = """\
<!doctype html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Login — Lyrics Studio</title>
    <style>
        body {
            min-height: 100vh;
            margin: 0;
            display: flex;
            align-items: center;
            justify-content: center;
            background: #000;
            font-family: system-ui, sans-serif;
            color: #f5f5f5;
        }
        .login-card {
            background: #111;
            border: 1px solid #2a2a2a;
            border-radius: 12px;
            padding: 40px;
            width: 100%%;
            max-width: 380px;
        }
        .login-card h1 { font-size: 1.4em; margin: 0 0 24px; text-align: center; }
        .form-group { margin-bottom: 16px; }
        .form-group label { display: block; margin-bottom: 6px; color: #aaa; font-size: 0.9em; }
        .form-group input {
            width: 100%%;
            box-sizing: border-box;
            padding: 10px 12px;
            background: #1b1b1b;
            border: 1px solid #333;
            border-radius: 6px;
            color: #f5f5f5;
        }
        .login-btn {
            width: 100%%;
            padding: 12px;
            background: #16a34a;
            border: none;
            border-radius: 6px;
            color: white;
            font-weight: bold;
            cursor: pointer;
        }
        .error-msg {
            background: rgba(220, 38, 38, 0.15);
            border: 1px solid rgba(220, 38, 38, 0.4);
            color: #f87171;
            padding: 10px;
            border-radius: 6px;
            margin-bottom: 16px;
            text-align: center;
        }
    </style>
</head>
<body>
    <div class="login-card">
        <h1>🎤 Lyrics Studio Admin</h1>

        %(error_html)s

        <form method="POST" action="/login">
            <div class="form-group">
                <label for="username">Username</label>
                <input type="text" id="username" name="username"
                       autocomplete="username" value="%(prefill_user)s" required autofocus />
            </div>
            <div class="form-group">
                <label for="password">Password</label>
                <input type="password" id="password" name="password"
                       autocomplete="current-password" required />
            </div>
            <button type="submit" class="login-btn">Sign In</button>
        </form>
    </div>
</body>
</html>
"""


def render_login_page(error: str = "", prefill_user: str = "") -> HTMLResponse:
    """Render the login page with an optional error message."""
    error_html = ""
    if error:
        error_html = f'<div class="error-msg">❌ {escape(error)}</div>'

    html = LOGIN_PAGE_HTML % {
        "error_html": error_html,
        "prefill_user": escape(prefill_user),
    }
    return HTMLResponse(content=html)
