"""
Tests for the stream decoder and consume_stream().
"""

import pytest

from agent_memory_runtime.streaming import (
    ChatState,
    StreamDecoder,
    UpdateKind,
    consume_stream,
    render_assistant_message,
)
from agent_memory_runtime.streaming.wire import (
    ERROR_PREFIX,
    data_frame,
    error_frame,
    finish_message_frame,
    text_frame,
    tool_call_frame,
)


class ChunkSource:
    """Async iterable over byte chunks that records whether it was closed."""

    def __init__(self, chunks, fail_after=None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.closed = False
        self.consumed = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        try:
            for chunk in self.chunks:
                if self.fail_after is not None and self.consumed >= self.fail_after:
                    raise ConnectionResetError("connection dropped")
                self.consumed += 1
                yield chunk
        finally:
            self.closed = True


def text_of(message):
    return message["content"][0]["text"]


# =============================================================================
# StreamDecoder
# =============================================================================


class TestStreamDecoder:
    """Tests for StreamDecoder updates."""

    def test_first_delta_appends_then_replaces(self):
        """"Hel" + "lo" produces one APPEND followed by a REPLACE with "Hello"."""
        decoder = StreamDecoder()

        first = decoder.feed(text_frame("Hel"))
        second = decoder.feed(text_frame("lo"))

        assert [u.kind for u in first] == [UpdateKind.APPEND]
        assert [u.kind for u in second] == [UpdateKind.REPLACE]
        assert text_of(second[-1].message) == "Hello"
        assert decoder.accumulated_text == "Hello"

    def test_exactly_one_append(self):
        decoder = StreamDecoder()
        updates = decoder.feed(text_frame("Hel") + text_frame("lo"))
        updates += decoder.finish()

        assert [u.kind for u in updates].count(UpdateKind.APPEND) == 1
        assert decoder.committed
        assert decoder.message == render_assistant_message("Hello")

    def test_non_text_frames_ignored(self):
        decoder = StreamDecoder()
        updates = decoder.feed(
            text_frame("Hi")
            + data_frame([{"status": "searching"}])
            + tool_call_frame("c1", "lookup", {"q": "x"})
            + finish_message_frame("stop")
        )

        assert len(updates) == 1
        assert decoder.accumulated_text == "Hi"

    def test_error_frame_halts(self):
        """The first error frame emits an error message and stops decoding."""
        decoder = StreamDecoder()
        decoder.feed(text_frame("Partial "))

        updates = decoder.feed(error_frame(f"{ERROR_PREFIX}RuntimeError: boom"))
        assert len(updates) == 1
        assert updates[0].kind == UpdateKind.APPEND
        assert updates[0].message["is_error"] is True
        assert text_of(updates[0].message) == "RuntimeError: boom"
        assert decoder.halted

        assert decoder.feed(text_frame("more")) == []
        assert decoder.finish() == []
        assert not decoder.committed

    def test_error_in_same_chunk_wins_over_text(self):
        decoder = StreamDecoder()
        updates = decoder.feed(text_frame("ok") + error_frame("failed"))

        assert len(updates) == 1
        assert updates[0].message["is_error"] is True
        assert decoder.accumulated_text == ""

    def test_text_mentioning_error_halts(self):
        """Text deltas containing "Error" are treated as errors."""
        decoder = StreamDecoder()
        updates = decoder.feed(text_frame("ValueError raised"))

        assert decoder.halted
        assert updates[0].message["is_error"] is True

    def test_partial_frame_policy(self):
        retained = StreamDecoder(retain_partial=True)
        retained.feed(b'0:"Hel')
        retained.feed(b'lo"\n')
        assert retained.accumulated_text == "Hello"

        dropped = StreamDecoder(retain_partial=False)
        dropped.feed(b'0:"Hel')
        dropped.feed(b'0:"lo"\n')
        assert dropped.accumulated_text == "lo"

    def test_dropped_frame_does_not_halt(self):
        decoder = StreamDecoder(retain_partial=False)
        decoder.feed(b'0:"Hel')
        updates = decoder.feed(b'lo"\n0:" world"\n')

        assert not decoder.halted
        assert decoder.accumulated_text == " world"
        assert not updates[0].message.get("is_error")

    def test_message_before_any_text(self):
        assert StreamDecoder().message is None


# =============================================================================
# ChatState
# =============================================================================


class TestChatState:
    def test_apply_append_and_replace(self):
        state = ChatState(messages=[{"role": "user", "content": "Hi"}])
        decoder = StreamDecoder()

        for update in decoder.feed(text_frame("Hel") + text_frame("lo")):
            state.apply(update)

        assert len(state.messages) == 2
        assert text_of(state.messages[-1]) == "Hello"


# =============================================================================
# consume_stream
# =============================================================================


class TestConsumeStream:
    """Tests for consume_stream()."""

    async def test_consumes_to_completion(self):
        source = ChunkSource([text_frame("Hel"), text_frame("lo"), finish_message_frame("stop")])
        state = ChatState()

        message = await consume_stream(source, state)

        assert text_of(message) == "Hello"
        assert len(state.messages) == 1
        assert state.is_running is False
        assert source.closed

    async def test_split_chunks(self):
        data = text_frame("Hello") + text_frame(" world")
        source = ChunkSource([data[:5], data[5:11], data[11:]])

        message = await consume_stream(source)
        assert text_of(message) == "Hello world"

    async def test_error_stops_reading_and_closes(self):
        source = ChunkSource([
            text_frame("Hi"),
            error_frame("rate limited"),
            text_frame("never read"),
        ])
        state = ChatState()

        message = await consume_stream(source, state)

        assert message["is_error"] is True
        assert text_of(message) == "rate limited"
        assert source.consumed == 2
        assert source.closed
        assert state.is_running is False
        assert [m.get("is_error", False) for m in state.messages] == [False, True]

    async def test_source_exception_propagates_and_cleans_up(self):
        source = ChunkSource([text_frame("Hi"), text_frame("there")], fail_after=1)
        state = ChatState()

        with pytest.raises(ConnectionResetError):
            await consume_stream(source, state)

        assert source.closed
        assert state.is_running is False

    async def test_empty_stream(self):
        assert await consume_stream(ChunkSource([])) is None
