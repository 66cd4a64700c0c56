"""
Lyrics Studio - Heuristic Lyrics Timing

Turns pasted lyrics into a timed LyricDocument without looking at the audio.
Each non-empty line starts ``LINE_INTERVAL`` seconds after the previous one
and each word lasts ``WORD_INTERVAL`` seconds.  This is also the fallback the
AI timing delegate uses whenever the service call or its output is unusable.

The admin bulk format may prefix a line with an explicit start time::

    0:First line of lyrics
    4:Second line of lyrics
    Third line without a prefix

Unprefixed lines fall back to the index-based cadence.
"""

import re
from typing import List, Tuple

from loguru import logger

from src.services.timed_lyrics import LyricDocument, TimedLine, TimedWord

LINE_INTERVAL = 4.0  # seconds between line starts
WORD_INTERVAL = 0.5  # seconds per word

_TIME_PREFIX_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*:\s*(.*)$")


def split_lyric_lines(text: str) -> List[str]:
    """Split raw text into stripped, non-empty lines, preserving order."""
    if not text:
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def _timed_line(line_time: float, text: str) -> TimedLine:
    """Space the words of *text* at the fixed cadence from *line_time*."""
    words = text.split()
    return TimedLine(
        time=line_time,
        words=[
            TimedWord(
                word=word,
                start=line_time + j * WORD_INTERVAL,
                end=line_time + (j + 1) * WORD_INTERVAL,
            )
            for j, word in enumerate(words)
        ],
    )


def generate_heuristic_timing(text: str) -> LyricDocument:
    """
    Build a LyricDocument with fixed per-line and per-word offsets.

    Line ``i`` starts at ``i * 4.0`` seconds; word ``j`` of that line spans
    ``[time + j * 0.5, time + (j + 1) * 0.5]``.  Never fails; blank input
    gives an empty document.
    """
    lines = [
        _timed_line(index * LINE_INTERVAL, line)
        for index, line in enumerate(split_lyric_lines(text))
    ]
    logger.debug(
        "🕒 Heuristic timing: {} line(s), {} word(s)",
        len(lines),
        sum(len(line.words) for line in lines),
    )
    return LyricDocument(lines=lines)


def parse_time_prefix(line: str) -> Tuple[float | None, str]:
    """
    Split an optional ``seconds:`` prefix off a bulk-text line.

    Returns ``(seconds, text)``; *seconds* is None when the line has no
    numeric prefix.
    """
    match = _TIME_PREFIX_RE.match(line)
    if not match:
        return None, line.strip()
    return float(match.group(1)), match.group(2).strip()


def parse_timed_text(text: str) -> LyricDocument:
    """
    Parse admin bulk text where lines may carry a ``seconds:text`` prefix.

    Prefixed lines start at the given time; the rest use ``index * 4.0``
    where *index* counts non-empty lines.  The result is not re-sorted.
    """
    lines: List[TimedLine] = []
    explicit = 0
    for index, raw in enumerate(split_lyric_lines(text)):
        seconds, body = parse_time_prefix(raw)
        if seconds is None:
            seconds = index * LINE_INTERVAL
        else:
            explicit += 1
        lines.append(_timed_line(seconds, body))

    logger.debug(
        "🕒 Parsed bulk lyrics: {} line(s), {} with explicit start time",
        len(lines),
        explicit,
    )
    return LyricDocument(lines=lines)


def has_time_prefixes(text: str) -> bool:
    """Return True if any non-empty line of *text* uses the ``seconds:`` prefix."""
    return any(_TIME_PREFIX_RE.match(line) for line in split_lyric_lines(text))
