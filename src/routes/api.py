"""
Lyrics Studio - JSON API Routes

Provides all REST API endpoints for:
- Health check
- Catalog: releases and tracks (case-insensitive substring search)
- Lyrics: read, replace and delete a track's timed lyrics
- Lyric highlighting: the active line / word at a playback position
- Lyric timing: heuristic (or ``seconds:text``) timing and AI timing
- Likes, keyed by an explicit listener session header
"""

import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from src.config import APP_VERSION, DB_PATH, RELEASE_TYPES, SESSION_HEADER_NAME
from src.database import (
    count_tracks,
    delete_release,
    delete_track,
    get_liked_track_ids,
    get_releases,
    get_track_by_id,
    get_tracks,
    insert_release,
    insert_track,
    set_release_featured,
    toggle_like,
)
from src.services.ai_timing import (
    AITimingNotConfiguredError,
    analyze_with_ai,
    is_configured as ai_is_configured,
)
from src.services.lyrics_resolver import build_display_frame
from src.services.lyrics_store import (
    LyricsStoreError,
    TrackNotFoundError,
    delete_lyrics,
    load_lyrics,
    save_lyrics,
)
from src.services.lyrics_timing import generate_heuristic_timing, has_time_prefixes, parse_timed_text
from src.services.timed_lyrics import LyricDocument, LyricsDecodeError

router = APIRouter(prefix="/api", tags=["API"])

# Track startup time for health check
_START_TIME = time.time()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class TimedWordModel(BaseModel):
    word: str
    start: float
    end: float


class TimedLineModel(BaseModel):
    time: float
    words: List[TimedWordModel] = Field(default_factory=list)


class LyricsUpdate(BaseModel):
    timedLyrics: List[TimedLineModel]


class ManualTimingRequest(BaseModel):
    lyrics: str


class AITimingRequest(BaseModel):
    lyrics: str
    audioUrl: str = ""


class TrackCreate(BaseModel):
    title: str
    artist: str
    audio_url: str = ""
    cover_url: str = ""
    duration: int = 0


class ReleaseCreate(BaseModel):
    title: str
    type: str = "single"
    cover_url: str = ""
    release_date: str = ""
    is_featured: bool = False
    tracks: List[TrackCreate] = Field(default_factory=list)


class FeaturedUpdate(BaseModel):
    is_featured: bool


def _document_from_body(lines: List[TimedLineModel]) -> LyricDocument:
    try:
        return LyricDocument.from_list([line.model_dump() for line in lines])
    except LyricsDecodeError as e:
        raise HTTPException(status_code=422, detail=str(e))


async def _require_track(track_id: int) -> Dict[str, Any]:
    track = await get_track_by_id(track_id)
    if not track:
        raise HTTPException(status_code=404, detail="Track not found")
    return track


async def _load_or_500(track_id: int) -> LyricDocument:
    try:
        return await load_lyrics(track_id)
    except LyricsStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@router.get("/health")
async def health_check():
    """Health check endpoint for the service."""
    uptime = round(time.time() - _START_TIME, 2)
    db_ok = DB_PATH.exists()

    return {
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "missing",
        "ai_timing_configured": ai_is_configured(),
        "uptime_seconds": uptime,
        "version": APP_VERSION,
    }


# ---------------------------------------------------------------------------
# Releases
# ---------------------------------------------------------------------------
@router.get("/releases")
async def api_list_releases(search: Optional[str] = Query(None)):
    """List releases with their tracks, newest first."""
    releases = await get_releases(search=search)
    return {"total": len(releases), "releases": releases}


@router.post("/releases", status_code=201)
async def api_create_release(body: ReleaseCreate):
    """Create a release together with its tracks."""
    if body.type not in RELEASE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Release type must be one of: {', '.join(sorted(RELEASE_TYPES))}",
        )
    release_id = await insert_release(
        title=body.title,
        release_type=body.type,
        cover_url=body.cover_url,
        release_date=body.release_date,
        is_featured=body.is_featured,
        tracks=[t.model_dump() for t in body.tracks],
    )
    return {"id": release_id}


@router.post("/releases/{release_id}/featured")
async def api_set_featured(release_id: int, body: FeaturedUpdate):
    """Mark or unmark a release as featured."""
    if not await set_release_featured(release_id, body.is_featured):
        raise HTTPException(status_code=404, detail="Release not found")
    return {"id": release_id, "is_featured": body.is_featured}


@router.delete("/releases/{release_id}")
async def api_delete_release(release_id: int):
    """Delete a release, its tracks and their lyrics."""
    if not await delete_release(release_id):
        raise HTTPException(status_code=404, detail="Release not found")
    return {"deleted": True, "id": release_id}


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------
@router.get("/tracks")
async def api_list_tracks(
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List tracks; *search* matches title or artist (case-insensitive substring)."""
    total = await count_tracks(search=search)
    tracks = await get_tracks(search=search, limit=limit, offset=offset)
    return {"total": total, "limit": limit, "offset": offset, "tracks": tracks}


@router.post("/tracks", status_code=201)
async def api_create_track(body: TrackCreate):
    """Create a standalone track (not part of a release)."""
    track_id = await insert_track(
        title=body.title,
        artist=body.artist,
        audio_url=body.audio_url,
        cover_url=body.cover_url,
        duration=body.duration,
    )
    return {"id": track_id}


@router.get("/tracks/{track_id}")
async def api_get_track(track_id: int):
    """Get a single track with its timed lyrics."""
    track = await _require_track(track_id)
    track["lyrics"] = (await _load_or_500(track_id)).to_list()
    return track


@router.delete("/tracks/{track_id}")
async def api_delete_track(track_id: int):
    """Delete a track together with its lyrics and likes."""
    if not await delete_track(track_id):
        raise HTTPException(status_code=404, detail="Track not found")
    return {"deleted": True, "id": track_id}


# ---------------------------------------------------------------------------
# Lyrics
# ---------------------------------------------------------------------------
@router.get("/tracks/{track_id}/lyrics")
async def api_get_lyrics(track_id: int):
    """Return the track's LyricDocument."""
    await _require_track(track_id)
    document = await _load_or_500(track_id)
    return {"trackId": track_id, "timedLyrics": document.to_list()}


@router.put("/tracks/{track_id}/lyrics")
async def api_save_lyrics(track_id: int, body: LyricsUpdate):
    """
    Replace the track's lyrics.

    The document must contain at least one line; it is sorted and its word
    spans repaired before it is stored.
    """
    document = _document_from_body(body.timedLyrics)
    if document.is_empty:
        raise HTTPException(status_code=400, detail="Lyrics must contain at least one line")

    try:
        saved = await save_lyrics(track_id, document)
    except TrackNotFoundError:
        raise HTTPException(status_code=404, detail="Track not found")
    except LyricsStoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save lyrics: {e}")

    return {"trackId": track_id, "timedLyrics": saved.to_list()}


@router.delete("/tracks/{track_id}/lyrics")
async def api_delete_lyrics(track_id: int):
    """Remove all lyrics of a track."""
    await _require_track(track_id)
    try:
        removed = await delete_lyrics(track_id)
    except LyricsStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"trackId": track_id, "removedLines": removed}


@router.get("/tracks/{track_id}/lyrics/active")
async def api_active_lyric(track_id: int, t: float = Query(..., description="Playback time in seconds")):
    """
    Resolve which lyric line and word are active at playback time *t*.

    ``activeLineIndex == -1`` means nothing is highlighted and every line
    is shown dimmed.
    """
    await _require_track(track_id)
    document = await _load_or_500(track_id)
    frame = build_display_frame(t, document)
    data = frame.to_dict()
    data["trackId"] = track_id
    return data


@router.post("/lyrics/timing/manual")
async def api_manual_timing(body: ManualTimingRequest):
    """
    Time pasted lyrics at the fixed 4 s per line / 0.5 s per word cadence.

    Lines written as ``seconds:text`` keep their explicit start time.
    """
    if has_time_prefixes(body.lyrics):
        document = parse_timed_text(body.lyrics)
    else:
        document = generate_heuristic_timing(body.lyrics)
    return {"timedLyrics": document.to_list(), "source": "heuristic", "usedFallback": False}


@router.post("/lyrics/timing/ai")
async def api_ai_timing(body: AITimingRequest):
    """
    Time pasted lyrics with the AI service.

    Falls back to heuristic timing (``usedFallback: true``) when the service
    fails; answers 503 when AI timing is not configured at all.
    """
    try:
        result = await analyze_with_ai(body.lyrics, body.audioUrl)
    except AITimingNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"❌ AI timing error: {e}")
        raise HTTPException(status_code=500, detail=f"AI timing failed: {e}")

    return result.to_dict()


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def _require_session(session_id: Optional[str]) -> str:
    if not session_id or not session_id.strip():
        raise HTTPException(status_code=400, detail=f"Missing {SESSION_HEADER_NAME} header")
    return session_id.strip()


@router.get("/likes")
async def api_list_likes(session_id: Optional[str] = Header(None, alias=SESSION_HEADER_NAME)):
    """Track ids liked by the calling listener session."""
    session = _require_session(session_id)
    return {"trackIds": await get_liked_track_ids(session)}


@router.post("/likes/{track_id}")
async def api_toggle_like(
    track_id: int,
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER_NAME),
):
    """Like or unlike a track for the calling listener session."""
    session = _require_session(session_id)
    await _require_track(track_id)
    liked = await toggle_like(track_id, session)
    return {"trackId": track_id, "liked": liked}
