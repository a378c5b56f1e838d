"""
Stream decoder: wire-format bytes -> one incrementally updated assistant message.

The decoder keeps the streamed answer as plain accumulated text and renders
the assistant message from it with a pure projection. The first text delta
appends a new assistant message; later deltas replace it. The first error
frame emits a separate error-flagged assistant message and halts decoding.

Example:
    state = ChatState()
    message = await consume_stream(agent.stream("Hi"), state)
    print(state.messages[-1])
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterable, Optional, Union

from agent_memory_runtime.interfaces import Message, text_part
from agent_memory_runtime.streaming.wire import Frame, FrameTokenizer

logger = logging.getLogger(__name__)


class UpdateKind(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


@dataclass
class MessageUpdate:
    """Instruction to append a message, or replace the last one."""

    kind: UpdateKind
    message: Message


def render_assistant_message(text: str, is_error: bool = False) -> Message:
    """Project accumulated text into an assistant message."""
    message: Message = {"role": "assistant", "content": [text_part(text)]}
    if is_error:
        message["is_error"] = True
    return message


@dataclass
class ChatState:
    """Client-side view of a conversation being streamed into."""

    messages: list[Message] = field(default_factory=list)
    is_running: bool = False

    def apply(self, update: MessageUpdate) -> None:
        if update.kind == UpdateKind.APPEND or not self.messages:
            self.messages.append(update.message)
        else:
            self.messages[-1] = update.message


class StreamDecoder:
    """
    Incremental decoder for one streamed response.

    State:
        buffer: undecoded trailing text (see FrameTokenizer partial-frame policy)
        accumulated_text: all text deltas applied so far
        has_emitted_assistant_message: whether an APPEND was already emitted
        halted: an error frame was seen; further chunks are ignored
        committed: the stream ended normally
    """

    def __init__(self, retain_partial: bool = True):
        self._tokenizer = FrameTokenizer(retain_partial=retain_partial)
        self.accumulated_text = ""
        self.has_emitted_assistant_message = False
        self.halted = False
        self.committed = False
        self.error: Optional[str] = None

    @property
    def buffer(self) -> str:
        return self._tokenizer.buffer

    def feed(self, chunk: Union[bytes, str]) -> list[MessageUpdate]:
        """Decode one chunk and return the message updates it produces."""
        if self.halted or self.committed:
            return []
        return self._apply(self._tokenizer.feed(chunk))

    def finish(self) -> list[MessageUpdate]:
        """Signal end of stream. Commits the message unless an error was seen."""
        if self.halted or self.committed:
            return []
        updates = self._apply(self._tokenizer.flush())
        if not self.halted:
            self.committed = True
        return updates

    def _apply(self, frames: list[Frame]) -> list[MessageUpdate]:
        for frame in frames:
            if frame.is_error:
                self.halted = True
                self.error = frame.error_message()
                logger.debug(f"Stream halted on error frame: {frame.raw!r}")
                return [
                    MessageUpdate(
                        UpdateKind.APPEND,
                        render_assistant_message(self.error, is_error=True),
                    )
                ]

        updates = []
        for frame in frames:
            if not frame.is_text:
                continue
            self.accumulated_text += frame.value
            kind = UpdateKind.REPLACE if self.has_emitted_assistant_message else UpdateKind.APPEND
            self.has_emitted_assistant_message = True
            updates.append(MessageUpdate(kind, render_assistant_message(self.accumulated_text)))
        return updates

    @property
    def message(self) -> Optional[Message]:
        """The error message if halted, else the current assistant message."""
        if self.error is not None:
            return render_assistant_message(self.error, is_error=True)
        if self.has_emitted_assistant_message:
            return render_assistant_message(self.accumulated_text)
        return None


@asynccontextmanager
async def _open_reader(source: AsyncIterable[bytes], chat_state: ChatState):
    reader = source.__aiter__()
    chat_state.is_running = True
    try:
        yield reader
    finally:
        try:
            aclose = getattr(reader, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            chat_state.is_running = False


async def consume_stream(
    source: AsyncIterable[bytes],
    chat_state: Optional[ChatState] = None,
    retain_partial: bool = True,
) -> Optional[Message]:
    """
    Drive a StreamDecoder over `source`, applying updates to `chat_state`.

    The reader is closed and `chat_state.is_running` cleared on every exit
    path. Exceptions raised by the source propagate.

    Returns:
        The final assistant message (error-flagged if the stream failed), or
        None if the stream carried no text
    """
    chat_state = chat_state if chat_state is not None else ChatState()
    decoder = StreamDecoder(retain_partial=retain_partial)

    async with _open_reader(source, chat_state) as reader:
        async for chunk in reader:
            for update in decoder.feed(chunk):
                chat_state.apply(update)
            if decoder.halted:
                break
        else:
            for update in decoder.finish():
                chat_state.apply(update)

    return decoder.message

