"""
Lyrics Studio - AI Lyrics Timing

Asks an OpenAI-compatible chat completions service to estimate per-word
timing for pasted lyrics, and decodes its JSON answer into a LyricDocument.

Outcomes:
    - service answered with a valid document      -> ``source == "ai"``
    - request failed, timed out, or the answer did
      not match the expected shape                 -> heuristic timing,
                                                      ``source == "heuristic"``
    - no API key configured                        -> AITimingNotConfiguredError

The call is one-shot and non-streaming, with a timeout and a small bounded
number of retries on transient failures (network errors, timeouts, 429/5xx).
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Annotated, Any

import httpx
from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from src.config import (
    AI_MAX_RETRIES,
    AI_RETRY_BACKOFF_SECONDS,
    AI_TIMEOUT_SECONDS,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_MODEL,
)
from src.services.lyrics_timing import generate_heuristic_timing
from src.services.timed_lyrics import LyricDocument, LyricsError, TimedLine, TimedWord
from src.utils import strip_code_fences

SOURCE_AI = "ai"
SOURCE_HEURISTIC = "heuristic"

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

SYSTEM_PROMPT = """\
You are an expert in music timing and lyrics synchronization. Given lyrics text, \
estimate realistic timing for each word based on typical song patterns.

Return a JSON object {"lines": [...]} where each element represents a line with this structure:
{
  "time": <start_time_in_seconds>,
  "words": [
    {
      "word": "<word>",
      "start": <start_time_in_seconds>,
      "end": <end_time_in_seconds>
    }
  ]
}

Guidelines:
- Average song tempo is 120 BPM (2 beats per second)
- Average word duration is 0.3-0.6 seconds
- Leave small gaps (0.1-0.2s) between words
- Consider natural breathing pauses between lines
- Typical verse line lasts 3-5 seconds
- Chorus lines might be faster/slower based on energy
- Keep lines in the order given and their start times ascending"""


# ---------------------------------------------------------------------------
# Errors / results
# ---------------------------------------------------------------------------
class AITimingNotConfiguredError(LyricsError):
    """Raised when AI timing is requested but no API key is configured."""


class AITimingError(LyricsError):
    """The AI service could not be reached or returned an unusable answer."""


@dataclass
class TimingResult:
    """A timed document plus where its timing came from."""

    document: LyricDocument
    source: str
    error: str | None = None

    @property
    def used_fallback(self) -> bool:
        return self.source != SOURCE_AI

    def to_dict(self) -> dict[str, Any]:
        return {
            "timedLyrics": self.document.to_list(),
            "source": self.source,
            "usedFallback": self.used_fallback,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------
Seconds = Annotated[float, Field(ge=0, allow_inf_nan=False)]


class _AIWord(BaseModel):
    word: str
    start: Seconds
    end: Seconds

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end < self.start:
            raise ValueError("word ends before it starts")
        return self


class _AILine(BaseModel):
    time: Seconds
    words: list[_AIWord]


_LINES_ADAPTER = TypeAdapter(list[_AILine])

# Keys a json_object answer may wrap the line list in
_WRAPPER_KEYS = ("lines", "timedLyrics", "lyrics")


def decode_timed_lyrics(content: str) -> LyricDocument:
    """
    Decode the model's message content into a LyricDocument.

    Accepts a bare JSON list of lines or an object holding that list under
    ``lines``, ``timedLyrics`` or ``lyrics``.  Raises AITimingError on any
    JSON or shape problem, or when no lines come back.
    """
    try:
        raw = json.loads(strip_code_fences(content))
    except (json.JSONDecodeError, TypeError) as e:
        raise AITimingError(f"AI response is not valid JSON: {e}") from e

    if isinstance(raw, dict):
        for key in _WRAPPER_KEYS:
            if key in raw:
                raw = raw[key]
                break
        else:
            raise AITimingError("AI response object has no lines list")

    try:
        lines = _LINES_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise AITimingError(
            f"AI response does not match the lyric schema ({e.error_count()} error(s))"
        ) from e

    if not lines:
        raise AITimingError("AI response contained no lines")

    return LyricDocument(
        lines=[
            TimedLine(
                time=line.time,
                words=[TimedWord(w.word, w.start, w.end) for w in line.words],
            )
            for line in lines
        ]
    )


def extract_message_content(payload: Any) -> str:
    """Pull ``choices[0].message.content`` out of a chat completions payload."""
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise AITimingError("AI response has no message content") from e
    if not isinstance(content, str):
        raise AITimingError("AI message content is not text")
    return content


# ---------------------------------------------------------------------------
# Shared client
# ---------------------------------------------------------------------------
_client: httpx.AsyncClient | None = None


def get_client() -> httpx.AsyncClient:
    """Return the process-wide AI client, creating it on first use."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(timeout=AI_TIMEOUT_SECONDS)
    return _client


async def close_client() -> None:
    """Close the shared client (called on application shutdown)."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


def is_configured(api_key: str | None = None) -> bool:
    """Return True if an API key for the AI service is available."""
    return bool(OPENAI_API_KEY if api_key is None else api_key)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------
def build_request_body(lyrics: str, audio_url: str = "", model: str | None = None) -> dict[str, Any]:
    """Build the chat completions request for *lyrics*."""
    user_content = f"Please analyze these lyrics and provide timing estimates:\n\n{lyrics}"
    if audio_url:
        user_content = f"Audio: {audio_url}\n\n{user_content}"
    return {
        "model": model or OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ],
        "response_format": {"type": "json_object"},
    }


async def request_ai_timing(
    lyrics: str,
    audio_url: str = "",
    *,
    api_key: str,
    client: httpx.AsyncClient | None = None,
    base_url: str | None = None,
    timeout: float | None = None,
    max_retries: int | None = None,
    backoff: float | None = None,
) -> LyricDocument:
    """
    Call the AI service and decode its answer.

    Retries transient failures up to *max_retries* extra times with a
    linear backoff.  Raises AITimingError once attempts are exhausted or
    on a non-retryable failure.
    """
    c = client or get_client()
    url = (base_url or OPENAI_BASE_URL).rstrip("/") + "/chat/completions"
    headers = {"Authorization": f"Bearer {api_key}"}
    body = build_request_body(lyrics, audio_url)
    attempts = 1 + max(0, AI_MAX_RETRIES if max_retries is None else max_retries)
    delay = AI_RETRY_BACKOFF_SECONDS if backoff is None else backoff
    request_timeout = AI_TIMEOUT_SECONDS if timeout is None else timeout

    last_error = "no attempt made"
    for attempt in range(1, attempts + 1):
        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange
            response = await asyncio.wait_for(
                c.post(url, json=body, headers=headers, timeout=request_timeout),
                request_timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            last_error = f"AI service timed out after {request_timeout}s"
        except httpx.HTTPError as e:
            last_error = f"AI service request failed: {e}"
        else:
            if response.status_code == 200:
                try:
                    payload = response.json()
                except ValueError as e:
                    raise AITimingError("AI service returned a non-JSON body") from e
                return decode_timed_lyrics(extract_message_content(payload))

            last_error = f"AI service returned HTTP {response.status_code}"
            if response.status_code not in RETRYABLE_STATUS:
                raise AITimingError(last_error)

        logger.warning("⚠️ AI timing attempt {}/{} failed: {}", attempt, attempts, last_error)
        if attempt < attempts:
            await asyncio.sleep(delay * attempt)

    raise AITimingError(last_error)


async def analyze_with_ai(
    lyrics: str,
    audio_url: str = "",
    *,
    api_key: str | None = None,
    client: httpx.AsyncClient | None = None,
    **request_options: Any,
) -> TimingResult:
    """
    Time *lyrics* with the AI service, falling back to heuristic timing.

    Raises ValueError for blank lyrics and AITimingNotConfiguredError when no
    API key is available.  Every other failure is recovered by returning
    the heuristic document with ``used_fallback`` set.
    """
    if not lyrics or not lyrics.strip():
        raise ValueError("Lyrics are required")

    key = OPENAI_API_KEY if api_key is None else api_key
    if not key:
        raise AITimingNotConfiguredError("AI timing is not configured (missing OPENAI_API_KEY)")

    try:
        document = await request_ai_timing(
            lyrics, audio_url, api_key=key, client=client, **request_options
        )
    except AITimingError as e:
        logger.warning("⚠️ AI timing unavailable, using heuristic timing: {}", e)
        return TimingResult(
            document=generate_heuristic_timing(lyrics),
            source=SOURCE_HEURISTIC,
            error=str(e),
        )

    logger.success(
        "✅ AI timing produced {} line(s), {} word(s)", len(document), document.word_count
    )
    return TimingResult(document=document, source=SOURCE_AI)
