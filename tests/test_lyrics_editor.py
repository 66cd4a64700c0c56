"""
Lyrics Studio - Lyrics Authoring Editor Tests

Tests for src/services/lyrics_editor.py, with an in-memory store and fake
AI timers:
- Save gating (empty document, busy, closed)
- Simple mode: heuristic timing and the ``seconds:text`` bulk format
- AI timing outcomes: applied, fallback, unavailable
- Busy guard and discarding answers that arrive after close
- Advanced mode edits; switching modes keeps edits
- A failed save keeps the editor state for a retry
"""

import asyncio

import pytest

from src.services.ai_timing import (
    SOURCE_AI,
    SOURCE_HEURISTIC,
    AITimingError,
    AITimingNotConfiguredError,
    TimingResult,
)
from src.services.lyrics_editor import (
    NOTICE_AI_APPLIED,
    NOTICE_AI_UNAVAILABLE,
    NOTICE_DISCARDED,
    NOTICE_EMPTY_INPUT,
    NOTICE_FALLBACK_USED,
    NOTICE_MANUAL_APPLIED,
    EditorBusyError,
    EditorClosedError,
    EditorError,
    EditorMode,
    LyricsEditor,
    LyricsSaveError,
)
from src.services.lyrics_store import LyricsStoreError
from src.services.lyrics_timing import generate_heuristic_timing
from src.services.timed_lyrics import LyricDocument, TimedLine, TimedWord
from tests.conftest import SAMPLE_BULK_TIMED, SAMPLE_LYRICS, run

TRACK = {"id": 7, "title": "Test Song", "artist": "Test Artist", "audio_url": "https://cdn.example.com/7.mp3"}

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStore:
    """Records saves; optionally fails."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.saved: list[tuple[int, LyricDocument]] = []

    async def save(self, track_id: int, document: LyricDocument) -> LyricDocument:
        if self.error is not None:
            raise self.error
        self.saved.append((track_id, document))
        return document


def _timer_returning(result: TimingResult, seen: list | None = None):
    async def timer(text: str, audio_url: str) -> TimingResult:
        if seen is not None:
            seen.append((text, audio_url))
        return result

    return timer


def _timer_raising(error: Exception):
    async def timer(text: str, audio_url: str) -> TimingResult:
        raise error

    return timer


AI_DOC = LyricDocument(
    [TimedLine(0.3, [TimedWord("Hello", 0.3, 0.7), TimedWord("world", 0.8, 1.2)])]
)


def _editor(**kwargs) -> LyricsEditor:
    kwargs.setdefault("store", FakeStore())
    return LyricsEditor(dict(TRACK), **kwargs)


# ===========================================================================
# Save gating
# ===========================================================================


class TestSaveGating:
    def test_new_editor_cannot_save(self):
        editor = _editor()
        assert editor.document.is_empty
        assert not editor.can_save

    def test_save_empty_document_raises(self):
        editor = _editor()
        with pytest.raises(EditorError):
            run(editor.save())

    def test_can_save_after_timing(self):
        editor = _editor()
        editor.bulk_text = SAMPLE_LYRICS
        editor.apply_manual_timing()
        assert editor.can_save

    def test_initial_document_is_copied(self, sample_document):
        editor = _editor(document=sample_document)
        editor.update_word(0, 0, word="Changed")
        assert sample_document.lines[0].words[0].word == "Hello"
        assert editor.can_save


# ===========================================================================
# Simple mode
# ===========================================================================


class TestManualTiming:
    def test_heuristic_timing(self):
        editor = _editor()
        editor.bulk_text = SAMPLE_LYRICS
        notice = editor.apply_manual_timing()
        assert notice.kind == NOTICE_MANUAL_APPLIED
        assert notice.message == "Created 2 timed line(s)"
        assert editor.document == generate_heuristic_timing(SAMPLE_LYRICS)
        assert editor.bulk_text == ""

    def test_time_prefixed_bulk_text(self):
        editor = _editor()
        editor.bulk_text = SAMPLE_BULK_TIMED
        editor.apply_manual_timing()
        assert [line.time for line in editor.document] == [0.0, 4.0, 12.5]

    def test_blank_input(self, sample_document):
        editor = _editor(document=sample_document)
        editor.bulk_text = "   \n"
        notice = editor.apply_manual_timing()
        assert notice.kind == NOTICE_EMPTY_INPUT
        assert editor.document == sample_document


class TestAITiming:
    def test_ai_result_applied(self):
        seen: list = []
        editor = _editor(ai_timer=_timer_returning(TimingResult(AI_DOC, SOURCE_AI), seen))
        editor.bulk_text = "Hello world"
        notice = run(editor.apply_ai_timing())
        assert notice.kind == NOTICE_AI_APPLIED
        assert editor.document == AI_DOC
        assert editor.bulk_text == ""
        assert not editor.is_analyzing
        assert seen == [("Hello world", TRACK["audio_url"])]

    def test_fallback_result_applied_with_notice(self):
        fallback = TimingResult(generate_heuristic_timing(SAMPLE_LYRICS), SOURCE_HEURISTIC, "HTTP 500")
        editor = _editor(ai_timer=_timer_returning(fallback))
        editor.bulk_text = SAMPLE_LYRICS
        notice = run(editor.apply_ai_timing())
        assert notice.kind == NOTICE_FALLBACK_USED
        assert editor.document == generate_heuristic_timing(SAMPLE_LYRICS)

    def test_timer_failure_falls_back_to_heuristic(self):
        editor = _editor(ai_timer=_timer_raising(AITimingError("boom")))
        editor.bulk_text = SAMPLE_LYRICS
        notice = run(editor.apply_ai_timing())
        assert notice.kind == NOTICE_FALLBACK_USED
        assert editor.document == generate_heuristic_timing(SAMPLE_LYRICS)
        assert not editor.is_analyzing

    def test_not_configured_keeps_document(self, sample_document):
        editor = _editor(
            document=sample_document,
            ai_timer=_timer_raising(AITimingNotConfiguredError("no key")),
        )
        editor.bulk_text = "New lyrics"
        notice = run(editor.apply_ai_timing())
        assert notice.kind == NOTICE_AI_UNAVAILABLE
        assert editor.document == sample_document
        assert editor.bulk_text == "New lyrics"
        assert not editor.is_analyzing

    def test_blank_input_does_not_call_timer(self):
        seen: list = []
        editor = _editor(ai_timer=_timer_returning(TimingResult(AI_DOC, SOURCE_AI), seen))
        notice = run(editor.apply_ai_timing())
        assert notice.kind == NOTICE_EMPTY_INPUT
        assert seen == []

    def test_missing_audio_url_sends_empty_string(self):
        seen: list = []
        editor = LyricsEditor({"id": 1}, store=FakeStore(), ai_timer=_timer_returning(TimingResult(AI_DOC, SOURCE_AI), seen))
        editor.bulk_text = "Hello"
        run(editor.apply_ai_timing())
        assert seen == [("Hello", "")]


class TestConcurrency:
    def test_busy_guard_and_save_blocked_while_analyzing(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow_timer(text, audio_url):
                await gate.wait()
                return TimingResult(AI_DOC, SOURCE_AI)

            editor = _editor(ai_timer=slow_timer, document=generate_heuristic_timing(SAMPLE_LYRICS))
            editor.bulk_text = "Hello world"
            task = asyncio.create_task(editor.apply_ai_timing())
            await asyncio.sleep(0)

            assert editor.is_analyzing
            assert not editor.can_save
            with pytest.raises(EditorBusyError):
                await editor.apply_ai_timing()
            with pytest.raises(EditorError):
                await editor.save()

            gate.set()
            notice = await task
            return editor, notice

        editor, notice = run(scenario())
        assert notice.kind == NOTICE_AI_APPLIED
        assert not editor.is_analyzing
        assert editor.can_save

    def test_answer_after_close_is_discarded(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow_timer(text, audio_url):
                await gate.wait()
                return TimingResult(AI_DOC, SOURCE_AI)

            editor = _editor(ai_timer=slow_timer)
            editor.bulk_text = "Hello world"
            task = asyncio.create_task(editor.apply_ai_timing())
            await asyncio.sleep(0)

            editor.close()
            gate.set()
            notice = await task
            return editor, notice

        editor, notice = run(scenario())
        assert notice.kind == NOTICE_DISCARDED
        assert not editor.is_open
        assert editor.document.is_empty
        assert not editor.is_analyzing

    def test_failure_after_close_is_discarded(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow_failing_timer(text, audio_url):
                await gate.wait()
                raise AITimingError("late failure")

            editor = _editor(ai_timer=slow_failing_timer)
            editor.bulk_text = "Hello world"
            task = asyncio.create_task(editor.apply_ai_timing())
            await asyncio.sleep(0)
            editor.close()
            gate.set()
            return editor, await task

        editor, notice = run(scenario())
        assert notice.kind == NOTICE_DISCARDED
        assert editor.document.is_empty


# ===========================================================================
# Advanced mode and mode switching
# ===========================================================================


class TestAdvancedEditing:
    def test_add_line(self):
        editor = _editor()
        index = editor.add_line()
        assert index == 0
        assert editor.document.lines[0] == TimedLine(0.0, [TimedWord("", 0.0, 0.0)])

    def test_edit_line_and_words(self):
        editor = _editor()
        line = editor.add_line()
        editor.update_line_time(line, 2.5)
        editor.update_word(line, 0, word="Hey", start=2.5, end=3.0)
        word = editor.add_word(line)
        editor.update_word(line, word, word="you", start=3.0, end=3.4)
        assert editor.document.to_list() == [
            {
                "time": 2.5,
                "words": [
                    {"word": "Hey", "start": 2.5, "end": 3.0},
                    {"word": "you", "start": 3.0, "end": 3.4},
                ],
            }
        ]

    def test_update_word_partial(self, sample_document):
        editor = _editor(document=sample_document)
        editor.update_word(0, 1, end=2.0)
        assert editor.document.lines[0].words[1] == TimedWord("world", 0.5, 2.0)

    def test_remove_word_keeps_last_word(self):
        editor = _editor()
        line = editor.add_line()
        assert editor.remove_word(line, 0) is False
        editor.add_word(line)
        assert editor.remove_word(line, 0) is True
        assert len(editor.document.lines[line].words) == 1

    def test_remove_line(self, sample_document):
        editor = _editor(document=sample_document)
        editor.remove_line(1)
        assert [line.time for line in editor.document] == [0.0, 8.0]

    def test_bad_index_raises(self, sample_document):
        editor = _editor(document=sample_document)
        with pytest.raises(IndexError):
            editor.remove_line(10)


class TestModes:
    def test_starts_in_simple_mode(self):
        assert _editor().mode is EditorMode.SIMPLE

    def test_toggle(self):
        editor = _editor()
        assert editor.toggle_mode() is EditorMode.ADVANCED
        assert editor.toggle_mode() is EditorMode.SIMPLE

    def test_set_mode_from_string(self):
        editor = _editor()
        editor.set_mode("advanced")
        assert editor.mode is EditorMode.ADVANCED

    def test_switching_modes_keeps_edits(self):
        editor = _editor()
        editor.bulk_text = SAMPLE_LYRICS
        editor.apply_manual_timing()
        editor.toggle_mode()
        editor.update_word(0, 0, word="Howdy")
        editor.toggle_mode()
        editor.toggle_mode()
        assert editor.document.lines[0].words[0].word == "Howdy"
        assert len(editor.document) == 2


# ===========================================================================
# Save / close
# ===========================================================================


class TestSaveAndClose:
    def test_save_persists_normalized_document_and_closes(self):
        store = FakeStore()
        editor = _editor(store=store)
        editor.add_line()
        editor.update_line_time(0, 4.0)
        editor.add_line()
        editor.update_word(1, 0, word="first")
        saved = run(editor.save())

        (track_id, document), = store.saved
        assert track_id == TRACK["id"]
        assert [line.time for line in document] == [0.0, 4.0]
        assert saved == document
        assert not editor.is_open
        assert not editor.can_save

    def test_failed_save_keeps_state(self, sample_document):
        editor = _editor(store=FakeStore(error=LyricsStoreError("disk full")), document=sample_document)
        with pytest.raises(LyricsSaveError, match="disk full"):
            run(editor.save())
        assert editor.is_open
        assert not editor.is_saving
        assert editor.document == sample_document
        assert editor.can_save

    def test_retry_after_failed_save(self, sample_document):
        store = FakeStore(error=LyricsStoreError("locked"))
        editor = _editor(store=store, document=sample_document)
        with pytest.raises(LyricsSaveError):
            run(editor.save())
        store.error = None
        run(editor.save())
        assert len(store.saved) == 1

    def test_close_discards(self, sample_document):
        editor = _editor(document=sample_document)
        editor.bulk_text = "draft"
        editor.close()
        assert not editor.is_open
        assert editor.document.is_empty
        assert editor.bulk_text == ""

    def test_close_twice_is_harmless(self):
        editor = _editor()
        editor.close()
        editor.close()
        assert not editor.is_open

    def test_closed_editor_rejects_edits(self):
        editor = _editor()
        editor.close()
        with pytest.raises(EditorClosedError):
            editor.add_line()
        with pytest.raises(EditorClosedError):
            editor.toggle_mode()
        with pytest.raises(EditorClosedError):
            run(editor.save())
