"""
Lyrics Studio - Pytest Configuration & Shared Fixtures

Provides reusable fixtures for:
- A fresh SQLite database per test (DB_PATH redirected into tmp_path)
- Sample timed lyric documents in the JSON wire shape
- Sample pasted lyrics, with and without ``seconds:`` prefixes
- A factory that creates catalog tracks to attach lyrics to
- Fake AI timing services built on httpx.MockTransport
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

import src.database as database
from src.services.timed_lyrics import LyricDocument

# ---------------------------------------------------------------------------
# Sample lyric content constants
# ---------------------------------------------------------------------------

SAMPLE_LYRICS = """\
Hello world
Goodbye now
"""

SAMPLE_LYRICS_WITH_BLANKS = """\

  Hello world

Goodbye now
   \t
"""

SAMPLE_BULK_TIMED = """\
0:First line of lyrics
4:Second line of lyrics
12.5:Third line comes late
"""

SAMPLE_TIMED_LIST: List[Dict[str, Any]] = [
    {
        "time": 0.0,
        "words": [
            {"word": "Hello", "start": 0.0, "end": 0.5},
            {"word": "world", "start": 0.5, "end": 1.0},
        ],
    },
    {
        "time": 4.0,
        "words": [
            {"word": "Goodbye", "start": 4.0, "end": 4.5},
            {"word": "now", "start": 4.5, "end": 5.0},
        ],
    },
    {
        "time": 8.0,
        "words": [
            {"word": "See", "start": 8.0, "end": 8.4},
            {"word": "you", "start": 8.6, "end": 9.0},
        ],
    },
]


def run(coro):
    """Run a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_db(tmp_path: Path, monkeypatch) -> Path:
    """Point the database module at a fresh, initialized SQLite file."""
    db_path = tmp_path / "lyrics_studio.db"
    monkeypatch.setattr(database, "DB_PATH", db_path)
    database.init_db()
    return db_path


@pytest.fixture
def create_track(temp_db: Path) -> Callable[..., int]:
    """
    Factory fixture: call with optional title / artist / audio_url to
    insert a standalone track.  Returns the new track id.
    """

    def _factory(
        title: str = "Test Song",
        artist: str = "Test Artist",
        audio_url: str = "https://cdn.example.com/audio/test.mp3",
    ) -> int:
        return run(database.insert_track(title=title, artist=artist, audio_url=audio_url))

    return _factory


# ---------------------------------------------------------------------------
# Lyric document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_timed_list() -> List[Dict[str, Any]]:
    """A fresh copy of the three-line sample document in wire shape."""
    return json.loads(json.dumps(SAMPLE_TIMED_LIST))


@pytest.fixture
def sample_document(sample_timed_list) -> LyricDocument:
    return LyricDocument.from_list(sample_timed_list)


# ---------------------------------------------------------------------------
# Fake AI service
# ---------------------------------------------------------------------------


def chat_completion(content: str) -> Dict[str, Any]:
    """Wrap *content* the way a chat completions endpoint answers."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


@pytest.fixture
def mock_ai_client():
    """
    Factory fixture: call with a handler ``(request) -> httpx.Response``
    to get an AsyncClient that never touches the network.  The returned
    client records every request it saw in ``client.calls``.
    """

    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        calls: List[httpx.Request] = []

        def _recording(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_recording))
        client.calls = calls  # type: ignore[attr-defined]
        return client

    return _factory
