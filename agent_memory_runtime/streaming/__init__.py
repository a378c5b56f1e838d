"""
Streaming: the tagged-frame wire format and the client-side decoder.
"""

from agent_memory_runtime.streaming.decoder import (
    ChatState,
    MessageUpdate,
    StreamDecoder,
    UpdateKind,
    consume_stream,
    render_assistant_message,
)
from agent_memory_runtime.streaming.wire import (
    ERROR_PREFIX,
    Frame,
    FrameTokenizer,
    encode_frame,
    error_frame,
    finish_message_frame,
    finish_step_frame,
    text_frame,
    tool_call_frame,
    tool_result_frame,
)

__all__ = [
    # Decoder
    "ChatState",
    "MessageUpdate",
    "StreamDecoder",
    "UpdateKind",
    "consume_stream",
    "render_assistant_message",
    # Wire format
    "ERROR_PREFIX",
    "Frame",
    "FrameTokenizer",
    "encode_frame",
    "error_frame",
    "finish_message_frame",
    "finish_step_frame",
    "text_frame",
    "tool_call_frame",
    "tool_result_frame",
]
