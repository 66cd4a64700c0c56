"""
Lyrics Studio - Timed Lyric Model

A song's lyrics as an ordered list of lines, each with a start time and an
ordered list of timed words.  Every producer (heuristic timing, AI timing,
the editor) hands one of these to the resolver and the store.

JSON wire shape (shared by the API, the AI service and the editor)::

    [
      {"time": 0.0, "words": [{"word": "Hello", "start": 0.0, "end": 0.5}]},
      ...
    ]

Lines are expected in ascending ``time`` order and words in non-decreasing
``start`` order.  Nothing here enforces that on construction; the store and
the editor call :meth:`LyricDocument.normalized` at their boundaries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class LyricsError(Exception):
    """Base class for lyric subsystem errors."""


class LyricsDecodeError(LyricsError):
    """Raised when external data cannot be decoded into a LyricDocument."""


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------
@dataclass
class TimedWord:
    """One word with its ``[start, end]`` time span in seconds."""

    word: str
    start: float
    end: float

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.word, "start": self.start, "end": self.end}


@dataclass
class TimedLine:
    """A lyric line: its start time plus its words in display order."""

    time: float
    words: list[TimedWord] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(w.word for w in self.words)

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "words": [w.to_dict() for w in self.words]}


@dataclass
class LyricDocument:
    """All timed lines of one track."""

    lines: list[TimedLine] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def word_count(self) -> int:
        return sum(len(line.words) for line in self.lines)

    def to_list(self) -> list[dict[str, Any]]:
        """Serialise to the JSON wire shape."""
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_list(cls, raw: Iterable[Any] | None) -> LyricDocument:
        """
        Build a document from the JSON wire shape.

        Raises :class:`LyricsDecodeError` if the structure is not a list of
        ``{"time", "words"}`` objects with numeric times.  Every line must carry
        a ``words`` list, which may be empty.
        """
        if raw is None:
            return cls()
        if isinstance(raw, (str, bytes, dict)):
            raise LyricsDecodeError("Lyrics must be a list of line objects")

        lines: list[TimedLine] = []
        for i, raw_line in enumerate(raw):
            if not isinstance(raw_line, dict):
                raise LyricsDecodeError(f"Line {i} is not an object")
            time = _as_seconds(raw_line.get("time"), f"line {i} time")
            if "words" not in raw_line:
                raise LyricsDecodeError(f"Line {i} has no words")
            raw_words = raw_line["words"]
            if not isinstance(raw_words, list):
                raise LyricsDecodeError(f"Line {i} words must be a list")

            words: list[TimedWord] = []
            for j, raw_word in enumerate(raw_words):
                if not isinstance(raw_word, dict):
                    raise LyricsDecodeError(f"Word {j} of line {i} is not an object")
                words.append(
                    TimedWord(
                        word=str(raw_word.get("word", "")),
                        start=_as_seconds(raw_word.get("start"), f"line {i} word {j} start"),
                        end=_as_seconds(raw_word.get("end"), f"line {i} word {j} end"),
                    )
                )
            lines.append(TimedLine(time=time, words=words))
        return cls(lines=lines)

    def copy(self) -> LyricDocument:
        """Return a deep copy (lines and words are mutable dataclasses)."""
        return LyricDocument(
            lines=[
                TimedLine(
                    time=line.time,
                    words=[TimedWord(w.word, w.start, w.end) for w in line.words],
                )
                for line in self.lines
            ]
        )

    def ordering_problems(self) -> list[str]:
        """
        List every ordering / span violation without changing anything.

        An empty list means the document already satisfies the model
        invariants.
        """
        problems: list[str] = []
        for i, line in enumerate(self.lines):
            if i > 0 and line.time < self.lines[i - 1].time:
                problems.append(f"line {i} starts before line {i - 1}")
            for j, word in enumerate(line.words):
                if word.end < word.start:
                    problems.append(f"line {i} word {j} ends before it starts")
                if j > 0 and word.start < line.words[j - 1].start:
                    problems.append(f"line {i} word {j} starts before word {j - 1}")
        return problems

    def normalized(self) -> LyricDocument:
        """
        Return a validated, sorted copy.

        - negative times are clamped to 0
        - a word ending before it starts gets ``end = start``
        - words are sorted by ``start`` within each line
        - lines are sorted by ``time``

        Sorting is stable, so entries with equal times keep their order.
        """
        lines: list[TimedLine] = []
        for line in self.lines:
            words = []
            for w in line.words:
                start = max(w.start, 0.0)
                end = max(w.end, start)
                words.append(TimedWord(w.word, start, end))
            words.sort(key=lambda w: w.start)
            lines.append(TimedLine(time=max(line.time, 0.0), words=words))
        lines.sort(key=lambda line: line.time)
        return LyricDocument(lines=lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _as_seconds(value: Any, label: str) -> float:
    """Coerce a wire value to finite float seconds or raise LyricsDecodeError."""
    if isinstance(value, bool) or value is None:
        raise LyricsDecodeError(f"Missing or invalid {label}")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise LyricsDecodeError(f"Invalid {label}: {value!r}") from None
    if not math.isfinite(seconds):
        raise LyricsDecodeError(f"Non-finite {label}: {value!r}")
    return seconds
