"""
Lyrics Studio - Lyrics Persistence

Maps a LyricDocument to and from the relational lyric tables:

    lyrics       (id, track_id, line_time, line_order)
    lyric_words  (id, lyric_id, word, start_time, end_time, word_order)

``line_order`` / ``word_order`` mirror list positions because the store
does not promise any retrieval order.  Saving replaces the whole document:
the delete of the old rows and the insert of the new ones run in a single
transaction, so a concurrent reader sees either the old document or the
new one, never an empty or half-written one.
"""

from collections import defaultdict
from typing import Dict, List, Tuple

import aiosqlite
from loguru import logger

from src.database import get_async_connection
from src.services.timed_lyrics import LyricDocument, LyricsError, TimedLine, TimedWord


class LyricsStoreError(LyricsError):
    """The lyric tables could not be read or written."""


class TrackNotFoundError(LyricsError):
    """The track a lyric document belongs to does not exist."""


async def save_lyrics(track_id: int, document: LyricDocument) -> LyricDocument:
    """
    Replace the lyrics of *track_id* with *document*.

    The document is normalized (sorted, spans fixed) before it is written;
    the normalized copy is returned.  An empty document deletes the
    track's lyrics.  Raises TrackNotFoundError or LyricsStoreError.
    """
    normalized = document.normalized()
    problems = document.ordering_problems()
    if problems:
        logger.warning(
            "⚠️ Lyrics for track id={} were out of order and have been sorted: {}",
            track_id,
            "; ".join(problems[:5]),
        )

    try:
        async with get_async_connection() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute("SELECT id FROM tracks WHERE id = ?", (track_id,))
                if await cursor.fetchone() is None:
                    raise TrackNotFoundError(f"Track {track_id} not found")

                # lyric_words rows go with their lines (ON DELETE CASCADE)
                await db.execute("DELETE FROM lyrics WHERE track_id = ?", (track_id,))

                word_rows: List[Tuple[int, str, float, float, int]] = []
                for line_order, line in enumerate(normalized.lines):
                    cursor = await db.execute(
                        "INSERT INTO lyrics (track_id, line_time, line_order) VALUES (?, ?, ?)",
                        (track_id, line.time, line_order),
                    )
                    lyric_id = cursor.lastrowid
                    word_rows.extend(
                        (lyric_id, w.word, w.start, w.end, word_order)
                        for word_order, w in enumerate(line.words)
                    )

                if word_rows:
                    await db.executemany(
                        """
                        INSERT INTO lyric_words (lyric_id, word, start_time, end_time, word_order)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        word_rows,
                    )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
    except aiosqlite.Error as e:
        logger.error("❌ Failed to save lyrics for track id={}: {}", track_id, e)
        raise LyricsStoreError(f"Could not save lyrics: {e}") from e

    logger.success(
        "✅ Lyrics saved for track id={} ({} line(s), {} word(s))",
        track_id,
        len(normalized),
        normalized.word_count,
    )
    return normalized


async def load_lyrics(track_id: int) -> LyricDocument:
    """
    Load the lyrics of *track_id*; an empty document if it has none.

    Lines and words are read by one statement, so a save committing while
    the load runs is seen either entirely or not at all.  Rows are
    re-ordered by ``line_order`` / ``word_order`` and the result is
    normalized before it is returned.
    """
    try:
        async with get_async_connection() as db:
            cursor = await db.execute(
                """
                SELECT l.id AS lyric_id, l.line_time, l.line_order,
                       w.word, w.start_time, w.end_time, w.word_order
                FROM lyrics l
                LEFT JOIN lyric_words w ON w.lyric_id = l.id
                WHERE l.track_id = ?
                """,
                (track_id,),
            )
            rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        logger.error("❌ Failed to load lyrics for track id={}: {}", track_id, e)
        raise LyricsStoreError(f"Could not load lyrics: {e}") from e

    line_rows: Dict[int, Dict] = {}
    word_rows: List[Dict] = []
    for row in rows:
        line_rows.setdefault(
            row["lyric_id"],
            {"id": row["lyric_id"], "line_time": row["line_time"], "line_order": row["line_order"]},
        )
        # LEFT JOIN yields one all-NULL word column set for a line without words
        if row["word_order"] is not None:
            word_rows.append(dict(row))
    return rows_to_document(list(line_rows.values()), word_rows)


def rows_to_document(line_rows: List[Dict], word_rows: List[Dict]) -> LyricDocument:
    """Rebuild a document from unordered line and word rows."""
    words_by_line: Dict[int, List[Dict]] = defaultdict(list)
    for row in word_rows:
        words_by_line[row["lyric_id"]].append(row)

    lines: List[TimedLine] = []
    for line_row in sorted(line_rows, key=lambda r: r["line_order"]):
        words = sorted(words_by_line.get(line_row["id"], []), key=lambda r: r["word_order"])
        lines.append(
            TimedLine(
                time=float(line_row["line_time"]),
                words=[
                    TimedWord(
                        word=w["word"],
                        start=float(w["start_time"]),
                        end=float(w["end_time"]),
                    )
                    for w in words
                ],
            )
        )
    return LyricDocument(lines=lines).normalized()


async def delete_lyrics(track_id: int) -> int:
    """Delete all lyric lines (and their words) of a track. Returns lines removed."""
    try:
        async with get_async_connection() as db:
            cursor = await db.execute("DELETE FROM lyrics WHERE track_id = ?", (track_id,))
            await db.commit()
            removed = cursor.rowcount
    except aiosqlite.Error as e:
        raise LyricsStoreError(f"Could not delete lyrics: {e}") from e

    if removed:
        logger.info("🗑️ Removed {} lyric line(s) for track id={}", removed, track_id)
    return removed


class LyricsStore:
    """Object facade over the module functions, injected into the editor."""

    async def save(self, track_id: int, document: LyricDocument) -> LyricDocument:
        return await save_lyrics(track_id, document)

    async def load(self, track_id: int) -> LyricDocument:
        return await load_lyrics(track_id)
