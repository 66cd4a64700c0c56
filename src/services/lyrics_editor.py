"""
Lyrics Studio - Lyrics Authoring Editor

Holds one track's lyric document in memory while an operator edits it.

Two modes share the same document, so switching between them never loses
edits:

    SIMPLE    paste lyrics into ``bulk_text`` and generate timing, either
              with the fixed heuristic cadence or with the AI service
    ADVANCED  edit lines and words directly (add / remove / retime)

``save()`` persists the document and closes the editor; ``close()`` drops
it.  While an AI request is outstanding the editor refuses a second one,
and an answer that arrives after the editor was closed is discarded.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

from loguru import logger

from src.services.ai_timing import (
    SOURCE_HEURISTIC,
    AITimingNotConfiguredError,
    TimingResult,
    analyze_with_ai,
)
from src.services.lyrics_timing import generate_heuristic_timing, has_time_prefixes, parse_timed_text
from src.services.lyrics_store import LyricsStore
from src.services.timed_lyrics import LyricDocument, LyricsError, TimedLine, TimedWord


class EditorMode(str, enum.Enum):
    SIMPLE = "simple"
    ADVANCED = "advanced"


class EditorError(LyricsError):
    """Base class for editor workflow errors."""


class EditorClosedError(EditorError):
    """The editor was already saved or closed."""


class EditorBusyError(EditorError):
    """An AI timing request is already outstanding."""


class LyricsSaveError(EditorError):
    """Persisting the document failed; the editor state is kept for retry."""


# Notice kinds shown to the operator
NOTICE_AI_APPLIED = "ai_applied"
NOTICE_FALLBACK_USED = "fallback_used"
NOTICE_AI_UNAVAILABLE = "ai_unavailable"
NOTICE_EMPTY_INPUT = "empty_input"
NOTICE_DISCARDED = "discarded"
NOTICE_MANUAL_APPLIED = "manual_applied"


@dataclass(frozen=True)
class EditorNotice:
    kind: str
    message: str


class LyricsSaver(Protocol):
    async def save(self, track_id: int, document: LyricDocument) -> LyricDocument: ...


AITimer = Callable[[str, str], Awaitable[TimingResult]]


class LyricsEditor:
    """In-memory lyric editing session for a single track."""

    def __init__(
        self,
        track: dict[str, Any],
        store: Optional[LyricsSaver] = None,
        ai_timer: Optional[AITimer] = None,
        document: Optional[LyricDocument] = None,
    ):
        self.track = track
        self.track_id: int = track["id"]
        self._store = store or LyricsStore()
        self._ai_timer = ai_timer or analyze_with_ai
        self.document = document.copy() if document is not None else LyricDocument()
        self.mode = EditorMode.SIMPLE
        self.bulk_text = ""
        self.is_analyzing = False
        self.is_saving = False
        self.is_open = True
        # Bumped on every AI request and on close; a continuation only
        # applies its result if the generation it started with is current.
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def can_save(self) -> bool:
        return (
            self.is_open
            and not self.is_analyzing
            and not self.is_saving
            and not self.document.is_empty
        )

    def _require_open(self) -> None:
        if not self.is_open:
            raise EditorClosedError("The lyrics editor is closed")

    def toggle_mode(self) -> EditorMode:
        self._require_open()
        self.mode = EditorMode.ADVANCED if self.mode is EditorMode.SIMPLE else EditorMode.SIMPLE
        return self.mode

    def set_mode(self, mode: EditorMode | str) -> None:
        self._require_open()
        self.mode = EditorMode(mode)

    # ------------------------------------------------------------------
    # Simple mode
    # ------------------------------------------------------------------
    def apply_manual_timing(self) -> EditorNotice:
        """
        Replace the document with heuristic timing of ``bulk_text``.

        Lines written as ``seconds:text`` keep their explicit start time.
        """
        self._require_open()
        if not self.bulk_text.strip():
            return EditorNotice(NOTICE_EMPTY_INPUT, "Please enter lyrics first")

        if has_time_prefixes(self.bulk_text):
            self.document = parse_timed_text(self.bulk_text)
        else:
            self.document = generate_heuristic_timing(self.bulk_text)
        self.bulk_text = ""
        logger.info(
            "🕒 Manual timing applied to track id={} ({} line(s))",
            self.track_id,
            len(self.document),
        )
        return EditorNotice(
            NOTICE_MANUAL_APPLIED,
            f"Created {len(self.document)} timed line(s)",
        )

    async def apply_ai_timing(self) -> EditorNotice:
        """
        Time ``bulk_text`` with the AI service.

        The document is replaced by the AI timing, or by heuristic timing
        when the service failed.  A missing API key leaves the document
        untouched.  Raises EditorBusyError if a request is already running.
        """
        self._require_open()
        if self.is_analyzing:
            raise EditorBusyError("AI timing is already running")
        if not self.bulk_text.strip():
            return EditorNotice(NOTICE_EMPTY_INPUT, "Please enter lyrics first")

        self._generation += 1
        generation = self._generation
        text = self.bulk_text
        self.is_analyzing = True
        try:
            result = await self._ai_timer(text, self.track.get("audio_url") or "")
        except AITimingNotConfiguredError as e:
            if generation != self._generation or not self.is_open:
                return EditorNotice(NOTICE_DISCARDED, "Editor closed before AI timing finished")
            logger.warning("⚠️ AI timing not available: {}", e)
            return EditorNotice(
                NOTICE_AI_UNAVAILABLE,
                "AI timing is not available. Please use manual timing instead.",
            )
        except LyricsError as e:
            logger.warning("⚠️ AI timing failed for track id={}: {}", self.track_id, e)
            result = TimingResult(generate_heuristic_timing(text), SOURCE_HEURISTIC, str(e))
        finally:
            if generation == self._generation:
                self.is_analyzing = False

        if generation != self._generation or not self.is_open:
            logger.debug("🗑️ Dropping AI timing result for closed editor (track id={})", self.track_id)
            return EditorNotice(NOTICE_DISCARDED, "Editor closed before AI timing finished")

        self.document = result.document
        self.bulk_text = ""
        if result.used_fallback:
            return EditorNotice(
                NOTICE_FALLBACK_USED,
                "AI timing failed, basic 4-second timing was used instead.",
            )
        return EditorNotice(NOTICE_AI_APPLIED, f"AI timed {len(self.document)} line(s)")

    # ------------------------------------------------------------------
    # Advanced mode
    # ------------------------------------------------------------------
    def add_line(self) -> int:
        """Append an empty line with one blank word; returns its index."""
        self._require_open()
        self.document.lines.append(TimedLine(time=0.0, words=[TimedWord("", 0.0, 0.0)]))
        return len(self.document.lines) - 1

    def remove_line(self, line_index: int) -> None:
        self._require_open()
        del self.document.lines[line_index]

    def update_line_time(self, line_index: int, time: float) -> None:
        self._require_open()
        self.document.lines[line_index].time = float(time)

    def add_word(self, line_index: int) -> int:
        """Append a blank word to a line; returns its index."""
        self._require_open()
        words = self.document.lines[line_index].words
        words.append(TimedWord("", 0.0, 0.0))
        return len(words) - 1

    def remove_word(self, line_index: int, word_index: int) -> bool:
        """Remove a word unless it is the line's only word. Returns True if removed."""
        self._require_open()
        words = self.document.lines[line_index].words
        if len(words) <= 1:
            return False
        del words[word_index]
        return True

    def update_word(
        self,
        line_index: int,
        word_index: int,
        *,
        word: Optional[str] = None,
        start: Optional[float] = None,
        end: Optional[float] = None,
    ) -> None:
        self._require_open()
        target = self.document.lines[line_index].words[word_index]
        if word is not None:
            target.word = word
        if start is not None:
            target.start = float(start)
        if end is not None:
            target.end = float(end)

    # ------------------------------------------------------------------
    # Commit / discard
    # ------------------------------------------------------------------
    async def save(self) -> LyricDocument:
        """
        Persist the document and close the editor.

        Raises EditorError when saving is not allowed (closed, empty,
        analyzing) and LyricsSaveError when the store fails; in that case
        the editor stays open with its document intact.
        """
        self._require_open()
        if not self.can_save:
            raise EditorError("Nothing to save" if self.document.is_empty else "Editor is busy")

        self.is_saving = True
        try:
            saved = await self._store.save(self.track_id, self.document.normalized())
        except LyricsError as e:
            logger.error("❌ Saving lyrics for track id={} failed: {}", self.track_id, e)
            raise LyricsSaveError(str(e)) from e
        finally:
            self.is_saving = False

        self._finish()
        self.document = saved
        return saved

    def close(self) -> None:
        """Discard in-memory edits; pending AI answers are ignored."""
        if not self.is_open:
            return
        self._finish()
        self.document = LyricDocument()

    def _finish(self) -> None:
        self.is_open = False
        self._generation += 1
        self.is_analyzing = False
        self.bulk_text = ""
