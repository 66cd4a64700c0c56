"""
Lyrics Studio - SQLite Database

Embedded SQLite store for the catalog (releases, tracks, likes) and the
relational lyric tables (one row per line, one row per word).
Uses aiosqlite for async operations within FastAPI and plain sqlite3 for
schema setup.

Foreign keys are enabled on every connection so that deleting a release
cascades to its tracks, and deleting a track cascades to its lyric lines
and their words.  Lyric rows are read and written by
``src.services.lyrics_store``; this module only owns the schema and the
catalog CRUD.
"""

import sqlite3
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, List, Optional

import aiosqlite
from loguru import logger

from src.config import DB_PATH
from src.utils import like_pattern, normalize_search

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS releases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'single',
    cover_url TEXT DEFAULT '',
    release_date TEXT DEFAULT '',
    is_featured INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tracks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    release_id INTEGER REFERENCES releases(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    audio_url TEXT DEFAULT '',
    cover_url TEXT DEFAULT '',
    duration INTEGER DEFAULT 0,
    track_order INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_tracks_release ON tracks(release_id);
CREATE INDEX IF NOT EXISTS idx_tracks_title ON tracks(title COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist COLLATE NOCASE);

CREATE TABLE IF NOT EXISTS lyrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
    line_time REAL NOT NULL,
    line_order INTEGER NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_lyrics_track ON lyrics(track_id);

CREATE TABLE IF NOT EXISTS lyric_words (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    lyric_id INTEGER NOT NULL REFERENCES lyrics(id) ON DELETE CASCADE,
    word TEXT NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    word_order INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_lyric_words_line ON lyric_words(lyric_id);

CREATE TABLE IF NOT EXISTS liked_songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
    user_session TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(track_id, user_session)
);

CREATE TRIGGER IF NOT EXISTS update_tracks_timestamp
    AFTER UPDATE ON tracks
    FOR EACH ROW
BEGIN
    UPDATE tracks SET updated_at = CURRENT_TIMESTAMP WHERE id = OLD.id;
END;
"""

# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------
def init_db() -> None:
    """Initialize the SQLite database and create any missing tables."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    try:
        with sqlite3.connect(str(DB_PATH)) as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        logger.success(f"✅ Database initialized at {DB_PATH}")
    except Exception as e:
        logger.critical(f"❌ Failed to initialize database: {e}")
        raise


# ---------------------------------------------------------------------------
# Async context manager (for use in FastAPI routes and services)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def get_async_connection():
    """Async context manager for an aiosqlite connection with row factory."""
    db = await aiosqlite.connect(str(DB_PATH))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    try:
        yield db
    finally:
        await db.close()


# ---------------------------------------------------------------------------
# Sync context manager (for scripts and tests)
# ---------------------------------------------------------------------------
@contextmanager
def get_connection():
    """Synchronous context manager for a sqlite3 connection with row factory."""
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Helper: convert sqlite3.Row / aiosqlite.Row to plain dict
# ---------------------------------------------------------------------------
def row_to_dict(row) -> Dict[str, Any]:
    """Convert a database row to a plain dictionary."""
    if row is None:
        return {}
    return dict(row)


def _release_to_dict(row) -> Dict[str, Any]:
    release = row_to_dict(row)
    if release:
        release["is_featured"] = bool(release.get("is_featured"))
    return release


# ---------------------------------------------------------------------------
# Releases
# ---------------------------------------------------------------------------
async def insert_release(
    title: str,
    release_type: str = "single",
    cover_url: str = "",
    release_date: str = "",
    is_featured: bool = False,
    tracks: Optional[List[Dict[str, Any]]] = None,
) -> int:
    """
    Insert a release together with its tracks and return the release id.

    *tracks* are dicts with ``title``, ``artist`` and optional
    ``audio_url``, ``cover_url`` and ``duration``; their list position
    becomes ``track_order``.
    """
    async with get_async_connection() as db:
        cursor = await db.execute(
            """
            INSERT INTO releases (title, type, cover_url, release_date, is_featured)
            VALUES (?, ?, ?, ?, ?)
            """,
            (title, release_type, cover_url, release_date, int(is_featured)),
        )
        release_id = cursor.lastrowid or 0

        for index, track in enumerate(tracks or []):
            await db.execute(
                """
                INSERT INTO tracks
                    (release_id, title, artist, audio_url, cover_url, duration, track_order)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    release_id,
                    track["title"],
                    track["artist"],
                    track.get("audio_url", ""),
                    track.get("cover_url") or cover_url,
                    int(track.get("duration", 0) or 0),
                    index,
                ),
            )
        await db.commit()
        logger.success(
            f"✅ Release added (id={release_id}): {title} with {len(tracks or [])} track(s)"
        )
        return release_id


async def get_releases(search: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Fetch releases (newest release date first) with their tracks in order.

    With *search*, only releases whose title or any track title / artist
    contains the search string (case-insensitive) are returned.
    """
    search_query = normalize_search(search)
    async with get_async_connection() as db:
        if search_query:
            pattern = like_pattern(search_query)
            cursor = await db.execute(
                """
                SELECT DISTINCT r.* FROM releases r
                LEFT JOIN tracks t ON t.release_id = r.id
                WHERE r.title LIKE ? ESCAPE '\\'
                   OR t.title LIKE ? ESCAPE '\\'
                   OR t.artist LIKE ? ESCAPE '\\'
                ORDER BY r.release_date DESC, r.id DESC
                """,
                (pattern, pattern, pattern),
            )
        else:
            cursor = await db.execute(
                "SELECT * FROM releases ORDER BY release_date DESC, id DESC"
            )
        releases = [_release_to_dict(r) for r in await cursor.fetchall()]

        for release in releases:
            cursor = await db.execute(
                "SELECT * FROM tracks WHERE release_id = ? ORDER BY track_order, id",
                (release["id"],),
            )
            release["tracks"] = [row_to_dict(r) for r in await cursor.fetchall()]
        return releases


async def delete_release(release_id: int) -> bool:
    """Delete a release (and, by cascade, its tracks and lyrics)."""
    async with get_async_connection() as db:
        cursor = await db.execute("DELETE FROM releases WHERE id = ?", (release_id,))
        await db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"🗑️ Release id={release_id} deleted from database")
        else:
            logger.warning(f"⚠️ Release id={release_id} not found for deletion")
        return deleted


async def set_release_featured(release_id: int, is_featured: bool) -> bool:
    """Set or clear the featured flag. Returns True if a row was modified."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "UPDATE releases SET is_featured = ? WHERE id = ?",
            (int(is_featured), release_id),
        )
        await db.commit()
        return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------
async def insert_track(
    title: str,
    artist: str,
    audio_url: str = "",
    cover_url: str = "",
    duration: int = 0,
    release_id: Optional[int] = None,
    track_order: int = 0,
) -> int:
    """Insert a standalone track and return its id."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            """
            INSERT INTO tracks
                (release_id, title, artist, audio_url, cover_url, duration, track_order)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (release_id, title, artist, audio_url, cover_url, duration, track_order),
        )
        await db.commit()
        track_id = cursor.lastrowid or 0
        logger.success(f"✅ Track added (id={track_id}): {title} - {artist}")
        return track_id


async def get_tracks(
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Fetch tracks with optional case-insensitive substring search and pagination."""
    search_query = normalize_search(search)
    async with get_async_connection() as db:
        if search_query:
            pattern = like_pattern(search_query)
            cursor = await db.execute(
                """
                SELECT * FROM tracks
                WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\'
                ORDER BY title COLLATE NOCASE ASC, id ASC
                LIMIT ? OFFSET ?
                """,
                (pattern, pattern, limit, offset),
            )
        else:
            cursor = await db.execute(
                "SELECT * FROM tracks ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


async def count_tracks(search: Optional[str] = None) -> int:
    """Return total number of tracks, optionally filtered by search."""
    search_query = normalize_search(search)
    async with get_async_connection() as db:
        if search_query:
            pattern = like_pattern(search_query)
            cursor = await db.execute(
                "SELECT COUNT(*) as cnt FROM tracks"
                " WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\'",
                (pattern, pattern),
            )
        else:
            cursor = await db.execute("SELECT COUNT(*) as cnt FROM tracks")
        row = await cursor.fetchone()
        return row["cnt"] if row else 0


async def get_track_by_id(track_id: int) -> Optional[Dict[str, Any]]:
    """Fetch a single track by its id."""
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT * FROM tracks WHERE id = ?", (track_id,))
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def delete_track(track_id: int) -> bool:
    """Delete a track (and, by cascade, its lyrics). Returns True if deleted."""
    async with get_async_connection() as db:
        cursor = await db.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
        await db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"🗑️ Track id={track_id} deleted from database")
        else:
            logger.warning(f"⚠️ Track id={track_id} not found for deletion")
        return deleted


# ---------------------------------------------------------------------------
# Likes (keyed by an explicit listener session id)
# ---------------------------------------------------------------------------
async def get_liked_track_ids(user_session: str) -> List[int]:
    """Return the ids of tracks liked by *user_session*, oldest like first."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "SELECT track_id FROM liked_songs WHERE user_session = ? ORDER BY id",
            (user_session,),
        )
        rows = await cursor.fetchall()
        return [r["track_id"] for r in rows]


async def toggle_like(track_id: int, user_session: str) -> bool:
    """Like or unlike a track for *user_session*. Returns the new liked state."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "SELECT id FROM liked_songs WHERE track_id = ? AND user_session = ?",
            (track_id, user_session),
        )
        existing = await cursor.fetchone()
        if existing:
            await db.execute("DELETE FROM liked_songs WHERE id = ?", (existing["id"],))
            liked = False
        else:
            await db.execute(
                "INSERT INTO liked_songs (track_id, user_session) VALUES (?, ?)",
                (track_id, user_session),
            )
            liked = True
        await db.commit()
        logger.debug("💜 Track id={} liked={} for session {}", track_id, liked, user_session)
        return liked
