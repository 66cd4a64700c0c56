"""
Lyrics Studio - Playback-to-Lyric Resolver

Maps the current playback position to the active lyric line and word.

The resolver is called on every playback time update (irregular cadence,
arbitrary seeks in both directions), so it is a pure function of
``(current_time, document)`` and never raises.

Interval conventions:
    - line ``i`` is active on ``[line[i].time, line[i + 1].time)``; the last
      line has no upper bound
    - word ``j`` is active on ``[start, end)``, except the last word of the
      line which is active on ``[start, end]``
    - ``-1`` means "nothing active" (before the first line, in a gap
      between words, empty or unreadable document)
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Sequence

from loguru import logger

from src.services.timed_lyrics import (
    LyricDocument,
    LyricsDecodeError,
    TimedLine,
    TimedWord,
)

NO_MATCH = -1

LINE_ACTIVE = "active"
LINE_PAST = "past"
LINE_UPCOMING = "upcoming"
LINE_NEUTRAL = "neutral"

WORD_ACTIVE = "active"
WORD_SUNG = "sung"
WORD_PENDING = "pending"


@dataclass(frozen=True)
class ActivePosition:
    """Indices of the active line and word, ``-1`` when none."""

    line_index: int = NO_MATCH
    word_index: int = NO_MATCH

    @property
    def is_visible(self) -> bool:
        return self.line_index != NO_MATCH

    def to_dict(self) -> dict[str, int]:
        return {"activeLineIndex": self.line_index, "activeWordIndex": self.word_index}


NOT_VISIBLE = ActivePosition()


@dataclass
class DisplayFrame:
    """Highlight state for every line and for the words of the active line."""

    position: ActivePosition
    line_states: list[str] = field(default_factory=list)
    word_states: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = self.position.to_dict()
        data["lineStates"] = self.line_states
        data["wordStates"] = self.word_states
        return data


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------
def _coerce_lines(document: Any) -> Sequence[TimedLine]:
    """Return the document's lines, or an empty list if it is unusable."""
    if document is None:
        return []
    if isinstance(document, LyricDocument):
        return document.lines
    if isinstance(document, (list, tuple)) and all(isinstance(line, TimedLine) for line in document):
        return list(document)
    try:
        return LyricDocument.from_list(document).lines
    except LyricsDecodeError as e:
        logger.debug("🎤 Unreadable lyric document, nothing to highlight: {}", e)
        return []
    except TypeError:
        return []


def _coerce_time(current_time: Any) -> float | None:
    if current_time is None or isinstance(current_time, bool):
        return None
    try:
        t = float(current_time)
    except (TypeError, ValueError):
        return None
    if math.isnan(t):
        return None
    return t


def _word_span(word: Any) -> tuple[float, float] | None:
    """A word's ``(start, end)``, or None when either is missing or not numeric."""
    try:
        return float(word.start), float(word.end)
    except (AttributeError, TypeError, ValueError):
        return None


def _line_words(line: Any) -> Sequence[TimedWord] | None:
    """A line's words, or None when the line has no usable word list."""
    words = getattr(line, "words", None)
    if isinstance(words, (list, tuple)):
        return words
    return None


def _line_time(line: Any) -> float:
    """A line's start time, or NaN when it is missing or not numeric."""
    try:
        return float(line.time)
    except (AttributeError, TypeError, ValueError):
        return math.nan


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def find_active_line(current_time: float, lines: Sequence[TimedLine]) -> int:
    """
    Index of the line whose interval contains *current_time*, else ``-1``.

    Lines are time-ordered, so this is a binary search on start times.  If
    any start time is unusable the search falls back to a linear scan that
    simply skips such lines.
    """
    if not lines:
        return NO_MATCH

    times = [_line_time(line) for line in lines]
    if all(math.isfinite(t) for t in times):
        return bisect_right(times, current_time) - 1

    active = NO_MATCH
    for i, t in enumerate(times):
        if math.isfinite(t) and t <= current_time:
            active = i
        elif math.isfinite(t):
            break
    return active


def find_active_word(current_time: float, words: Sequence[TimedWord]) -> int:
    """Index of the word whose interval contains *current_time*, else ``-1``."""
    last = len(words) - 1
    for j, word in enumerate(words):
        span = _word_span(word)
        if span is None:
            continue
        start, end = span
        if j == last:
            if start <= current_time <= end:
                return j
        elif start <= current_time < end:
            return j
    return NO_MATCH


def resolve_active(current_time: Any, document: Any) -> ActivePosition:
    """
    Resolve the active line and word at *current_time*.

    *document* may be a :class:`LyricDocument`, its JSON list form, or None.
    Any unreadable input resolves to "not visible", including an active
    line whose ``words`` list is missing.
    """
    t = _coerce_time(current_time)
    if t is None:
        return NOT_VISIBLE

    lines = _coerce_lines(document)
    line_index = find_active_line(t, lines)
    if line_index == NO_MATCH:
        return NOT_VISIBLE

    words = _line_words(lines[line_index])
    if words is None:
        return NOT_VISIBLE
    return ActivePosition(line_index, find_active_word(t, words))


def build_display_frame(current_time: Any, document: Any) -> DisplayFrame:
    """
    Resolve the active position and derive the highlight state of each line.

    With no active line every line is ``"neutral"`` (rendered dimmed).
    Otherwise lines before the active one are ``"past"`` and later ones
    ``"upcoming"``.  Words of the active line are ``"sung"`` before the
    active word, ``"active"`` at it and ``"pending"`` after it.  In a gap
    between words (word index ``-1``) words that already ended are
    ``"sung"`` and the rest ``"pending"``.
    """
    lines = _coerce_lines(document)
    position = resolve_active(current_time, LyricDocument(lines=list(lines)))

    if not position.is_visible:
        return DisplayFrame(position=position, line_states=[LINE_NEUTRAL] * len(lines))

    line_states = [
        LINE_PAST if i < position.line_index
        else LINE_ACTIVE if i == position.line_index
        else LINE_UPCOMING
        for i in range(len(lines))
    ]

    active_words = _line_words(lines[position.line_index]) or []
    if position.word_index == NO_MATCH:
        t = _coerce_time(current_time)
        word_states = []
        for w in active_words:
            span = _word_span(w)
            sung = t is not None and span is not None and span[1] <= t
            word_states.append(WORD_SUNG if sung else WORD_PENDING)
    else:
        word_states = [
            WORD_SUNG if j < position.word_index
            else WORD_ACTIVE if j == position.word_index
            else WORD_PENDING
            for j in range(len(active_words))
        ]

    return DisplayFrame(position=position, line_states=line_states, word_states=word_states)
