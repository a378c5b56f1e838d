"""
Tagged-frame wire format.

A stream is a sequence of frames `<tag>:<json-value>`, normally one per line:

    0:"Hel"
    0:"lo"
    9:{"toolCallId":"call_1","toolName":"get_weather","args":{"city":"Paris"}}
    a:{"toolCallId":"call_1","result":{"temp":21}}
    e:{"finishReason":"tool-calls","usage":{"promptTokens":12,"completionTokens":4},"isContinued":false}
    d:{"finishReason":"stop","usage":{"promptTokens":30,"completionTokens":9}}

Tags:
    0  text delta (string)
    2  data (array)
    3  error (string)
    9  tool call
    a  tool result
    d  finish message
    e  finish step

FrameTokenizer decodes bytes into frames with an explicit state machine
rather than pattern matching, so payloads containing quotes, escapes or
newlines are handled and a frame split across chunks is recovered.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from agent_memory_runtime.exceptions import StreamParseError

logger = logging.getLogger(__name__)

TEXT_TAG = "0"
DATA_TAG = "2"
ERROR_TAG = "3"
TOOL_CALL_TAG = "9"
TOOL_RESULT_TAG = "a"
FINISH_MESSAGE_TAG = "d"
FINISH_STEP_TAG = "e"

ERROR_PREFIX = "An error occurred while processing your request. "

_TAG_CHARS = frozenset("0123456789abcdefghijklmnopqrstuvwxyz")
_WHITESPACE = " \t\r\n"


# =============================================================================
# Frames
# =============================================================================


@dataclass
class Frame:
    """One decoded frame. Malformed frames carry the parse error instead of a value."""

    tag: str
    value: Any = None
    raw: str = ""
    error: Optional[StreamParseError] = None

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG and self.error is None and isinstance(self.value, str)

    @property
    def is_error(self) -> bool:
        """
        Error frames: tag 3, malformed frames, and any frame whose string
        payload mentions "Error".
        """
        if self.error is not None or self.tag == ERROR_TAG:
            return True
        return isinstance(self.value, str) and "Error" in self.value

    def error_message(self) -> str:
        if self.error is not None:
            message = str(self.error)
        elif isinstance(self.value, str):
            message = self.value
        else:
            message = json.dumps(self.value)
        if message.startswith(ERROR_PREFIX):
            message = message[len(ERROR_PREFIX):]
        return message.lstrip()


# =============================================================================
# Encoding
# =============================================================================


def encode_frame(tag: str, value: Any) -> bytes:
    if not tag or any(c not in _TAG_CHARS for c in tag):
        raise ValueError(f"Invalid frame tag: {tag!r}")
    return f"{tag}:{json.dumps(value, separators=(',', ':'))}\n".encode("utf-8")


def text_frame(text: str) -> bytes:
    return encode_frame(TEXT_TAG, text)


def data_frame(data: list) -> bytes:
    return encode_frame(DATA_TAG, data)


def error_frame(message: str) -> bytes:
    return encode_frame(ERROR_TAG, message)


def tool_call_frame(tool_call_id: str, tool_name: str, args: dict) -> bytes:
    return encode_frame(
        TOOL_CALL_TAG,
        {"toolCallId": tool_call_id, "toolName": tool_name, "args": args},
    )


def tool_result_frame(tool_call_id: str, result: Any) -> bytes:
    return encode_frame(TOOL_RESULT_TAG, {"toolCallId": tool_call_id, "result": result})


def _usage(usage: Optional[dict]) -> dict:
    usage = usage or {}
    return {
        "promptTokens": usage.get("prompt_tokens", 0),
        "completionTokens": usage.get("completion_tokens", 0),
    }


def finish_step_frame(
    finish_reason: str,
    usage: Optional[dict] = None,
    is_continued: bool = False,
) -> bytes:
    return encode_frame(
        FINISH_STEP_TAG,
        {"finishReason": finish_reason, "usage": _usage(usage), "isContinued": is_continued},
    )


def finish_message_frame(finish_reason: str, usage: Optional[dict] = None) -> bytes:
    return encode_frame(
        FINISH_MESSAGE_TAG,
        {"finishReason": finish_reason, "usage": _usage(usage)},
    )


# =============================================================================
# Decoding
# =============================================================================


class _Incomplete(Exception):
    """The buffer ends inside a frame."""


class FrameTokenizer:
    """
    Incremental frame decoder.

    Feed raw chunks with `feed()`; each call returns the frames completed by
    that chunk. Multi-byte UTF-8 characters split across chunks are held by
    an incremental decoder.

    Partial frames: with `retain_partial=True` an incomplete trailing frame
    stays in the buffer and is completed by the next chunk. With
    `retain_partial=False` the buffer is cleared after every scan and a
    split frame is lost; its remainder at the start of the next chunk is
    skipped rather than reported as malformed. Call `flush()` at end of
    stream; a frame still incomplete then is reported as malformed.
    """

    def __init__(self, retain_partial: bool = True):
        self.retain_partial = retain_partial
        self.buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._resync = False

    def feed(self, chunk: Union[bytes, str]) -> list[Frame]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self.buffer += chunk
        frames, rest = self._scan(self.buffer, final=False)
        if self.retain_partial:
            self.buffer = rest
            return frames

        # The tail of a discarded frame is skipped, not reported
        if self._resync and frames:
            self._resync = False
            if frames[0].error is not None:
                logger.debug(f"Skipped remainder of discarded frame: {frames[0].raw!r}")
                frames = frames[1:]
        if rest:
            logger.debug(f"Discarded partial frame: {rest!r}")
            self._resync = True
        self.buffer = ""
        return frames

    def flush(self) -> list[Frame]:
        self.buffer += self._decoder.decode(b"", final=True)
        frames, _ = self._scan(self.buffer, final=True)
        self.buffer = ""
        self._resync = False
        return frames

    def _scan(self, text: str, final: bool) -> tuple[list[Frame], str]:
        frames = []
        pos = 0
        length = len(text)
        while True:
            while pos < length and text[pos] in _WHITESPACE:
                pos += 1
            if pos >= length:
                return frames, ""
            start = pos
            try:
                frame, pos = self._read_frame(text, pos, final)
            except _Incomplete:
                if final:
                    raw = text[start:]
                    frames.append(
                        Frame(tag="", raw=raw, error=StreamParseError("Stream ended inside a frame", raw))
                    )
                    return frames, ""
                return frames, text[start:]
            frames.append(frame)

    def _read_frame(self, text: str, pos: int, final: bool) -> tuple[Frame, int]:
        start = pos
        length = len(text)

        # TAG
        while pos < length and text[pos] in _TAG_CHARS:
            pos += 1
        if pos >= length:
            raise _Incomplete()
        if text[pos] != ":" or pos == start:
            end = _line_end(text, pos)
            if end is None and not final:
                raise _Incomplete()
            end = length if end is None else end
            raw = text[start:end]
            return Frame(tag="", raw=raw, error=StreamParseError(f"Invalid frame: {raw!r}", raw)), end
        tag = text[start:pos]
        pos += 1

        # VALUE
        while pos < length and text[pos] in " \t":
            pos += 1
        if pos >= length:
            raise _Incomplete()
        value_start = pos
        first = text[pos]
        if first == '"':
            pos = _string_end(text, pos)
        elif first in "{[":
            pos = _container_end(text, pos)
        else:
            end = _line_end(text, pos)
            if end is None:
                if not final:
                    raise _Incomplete()
                end = length
            pos = end

        raw_value = text[value_start:pos].strip()
        raw = text[start:pos]
        try:
            value = json.loads(raw_value)
        except json.JSONDecodeError as e:
            return Frame(tag=tag, raw=raw, error=StreamParseError(f"Invalid JSON in frame {tag}: {e}", raw)), pos
        return Frame(tag=tag, value=value, raw=raw), pos


def _line_end(text: str, pos: int) -> Optional[int]:
    index = text.find("\n", pos)
    return None if index == -1 else index


def _string_end(text: str, pos: int) -> int:
    """Index just past the string literal starting at pos."""
    escaped = False
    for i in range(pos + 1, len(text)):
        c = text[i]
        if escaped:
            escaped = False
        elif c == "\\":
            escaped = True
        elif c == '"':
            return i + 1
    raise _Incomplete()


def _container_end(text: str, pos: int) -> int:
    """Index just past the object or array starting at pos."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(pos, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
        elif c in "{[":
            depth += 1
        elif c in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
    raise _Incomplete()
