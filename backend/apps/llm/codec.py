"""
Messages API codec.

encode()           conversation + tools -> WireRequest
decode_complete()  single-shot JSON body -> ChatResult
decode_error()     non-2xx status/body/headers -> LLMError
decode_stream()    async byte chunks -> async StreamEvent sequence

The streaming path is split into two small stateful pieces so chunk reassembly
can be tested without any network I/O:

  FrameBuffer    buffers raw bytes across chunk boundaries and yields complete
                 server-sent-event frames ("event: x\\ndata: {...}\\n\\n")
  StreamDecoder  turns each frame's JSON payload into a typed StreamEvent
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from .errors import ApiError, LLMError, ProtocolError, RateLimited, Unauthorized
from .types import (
    ChatResult,
    MessageStart,
    Ping,
    StopReason,
    StreamError,
    StreamEvent,
    TextDelta,
    ToolSpec,
    ToolUseComplete,
    ToolUseInputDelta,
    ToolUseStart,
    TurnComplete,
    Usage,
    WireMessage,
    WireRequest,
    block_from_wire,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DONE_MARKER = "[DONE]"
# error_type of a StreamError for one undecodable frame; the stream goes on
MALFORMED_FRAME = "malformed_frame"

# A blank line ends a frame; tolerate CRLF line endings
_FRAME_DELIMITER = re.compile(rb"\r?\n\r?\n")


# ═══════════════════════════════════════════════════════════════════
# Encoding
# ═══════════════════════════════════════════════════════════════════

def encode(
    messages: Sequence[WireMessage],
    system_prompt: Optional[str],
    tools: Sequence[ToolSpec],
    streaming: bool,
    model: str,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> WireRequest:
    """Build the request body for one model call."""
    body: Dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [message.to_wire() for message in messages],
    }
    if system_prompt:
        body["system"] = system_prompt
    if tools:
        body["tools"] = [tool.to_wire() for tool in tools]
    if streaming:
        body["stream"] = True
    return WireRequest(body=body, stream=streaming)


# ═══════════════════════════════════════════════════════════════════
# Single-shot decoding
# ═══════════════════════════════════════════════════════════════════

def decode_complete(body: bytes) -> ChatResult:
    """Decode a 2xx JSON response. Raises ProtocolError / ApiError."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Response body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Response body is not a JSON object")

    if data.get("type") == "error":
        error = data.get("error") or {}
        raise ApiError(200, error.get("message", ""), error.get("type"))

    try:
        content = [
            block for block in (block_from_wire(raw) for raw in data.get("content") or [])
            if block is not None
        ]
        return ChatResult(
            id=data.get("id", ""),
            model=data.get("model", ""),
            content=content,
            stop_reason=StopReason.parse(data.get("stop_reason")),
            usage=Usage.from_wire(data.get("usage")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Unexpected response shape: {e}") from e


def _parse_retry_after(headers: Mapping[str, str]) -> int:
    raw = headers.get("retry-after")
    if raw is None:
        return RateLimited.DEFAULT_RETRY_AFTER
    try:
        seconds = int(float(raw.strip()))
    except (TypeError, ValueError):
        return RateLimited.DEFAULT_RETRY_AFTER
    return seconds if seconds >= 0 else RateLimited.DEFAULT_RETRY_AFTER


def decode_error(status: int, body: bytes, headers: Mapping[str, str]) -> LLMError:
    """Map a non-2xx response to the matching error (returned, not raised)."""
    if status == 429:
        return RateLimited(_parse_retry_after(headers))

    text = body.decode("utf-8", errors="replace")
    error_type = None
    message = text
    try:
        data = json.loads(text)
        error = data.get("error") or {}
        if data.get("type") == "error" and isinstance(error, dict):
            error_type = error.get("type")
            message = error.get("message", text)
    except (json.JSONDecodeError, AttributeError):
        pass

    if status == 401:
        return Unauthorized(message or "Invalid API key")
    return ApiError(status, message, error_type)


# ═══════════════════════════════════════════════════════════════════
# Streaming
# ═══════════════════════════════════════════════════════════════════

@dataclass
class SseFrame:
    event: Optional[str]
    data: str


def _parse_frame(raw: bytes) -> Optional[SseFrame]:
    event = None
    data_lines: List[str] = []
    for line in raw.decode("utf-8", errors="replace").splitlines():
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)

    if not data_lines:
        return None
    data = "\n".join(data_lines)
    if data.strip() == DONE_MARKER:
        return None
    return SseFrame(event=event, data=data)


class FrameBuffer:
    """
    Reassembles SSE frames from arbitrarily split byte chunks.

    Bytes after the last delimiter are held until the next feed(); frames
    without a data line and the end marker are dropped.
    """

    def __init__(self):
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> List[SseFrame]:
        self._pending += chunk
        frames = []
        while True:
            match = _FRAME_DELIMITER.search(self._pending)
            if match is None:
                break
            raw = self._pending[:match.start()]
            self._pending = self._pending[match.end():]
            frame = _parse_frame(raw)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> List[SseFrame]:
        """Emit a final frame the server closed without a trailing blank line."""
        raw, self._pending = self._pending, b""
        if not raw.strip():
            return []
        frame = _parse_frame(raw)
        return [frame] if frame is not None else []


class StreamDecoder:
    """
    Turns frame payloads into StreamEvents.

    Tracks which content block indices are tool_use blocks so that a
    content_block_stop can be reported as ToolUseComplete only for those.
    """

    def __init__(self):
        self.frames = FrameBuffer()
        self._tool_indices = set()

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        return self._decode_frames(self.frames.feed(chunk))

    def finish(self) -> List[StreamEvent]:
        return self._decode_frames(self.frames.flush())

    def _decode_frames(self, frames: List[SseFrame]) -> List[StreamEvent]:
        events = []
        for frame in frames:
            event = self.decode_payload(frame.data)
            if event is not None:
                events.append(event)
        return events

    def decode_payload(self, data: str) -> Optional[StreamEvent]:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("stream_frame_malformed", extra={"error": str(e), "data": data[:200]})
            return StreamError(message=f"Malformed event payload: {e}", error_type=MALFORMED_FRAME)

        if not isinstance(payload, dict):
            return StreamError(message="Event payload is not a JSON object", error_type=MALFORMED_FRAME)

        event_type = payload.get("type")

        if event_type == "ping":
            return Ping()

        if event_type == "message_start":
            message = payload.get("message") or {}
            return MessageStart(
                message_id=message.get("id", ""),
                model=message.get("model", ""),
                usage=Usage.from_wire(message.get("usage")),
            )

        if event_type == "content_block_start":
            index = payload.get("index", 0)
            block = payload.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._tool_indices.add(index)
                return ToolUseStart(index=index, id=block.get("id", ""), name=block.get("name", ""))
            if block.get("type") == "text" and block.get("text"):
                return TextDelta(index=index, text=block["text"])
            return None

        if event_type == "content_block_delta":
            index = payload.get("index", 0)
            delta = payload.get("delta") or {}
            if delta.get("type") == "text_delta":
                return TextDelta(index=index, text=delta.get("text", ""))
            if delta.get("type") == "input_json_delta":
                return ToolUseInputDelta(index=index, partial_json=delta.get("partial_json", ""))
            return None

        if event_type == "content_block_stop":
            index = payload.get("index", 0)
            if index in self._tool_indices:
                self._tool_indices.discard(index)
                return ToolUseComplete(index=index)
            return None

        if event_type == "message_delta":
            delta = payload.get("delta") or {}
            return TurnComplete(
                stop_reason=StopReason.parse(delta.get("stop_reason")),
                usage=Usage.from_wire(payload.get("usage")),
            )

        if event_type == "error":
            error = payload.get("error") or {}
            return StreamError(
                message=error.get("message", "Unknown stream error"),
                error_type=error.get("type", "stream_error"),
            )

        # message_stop and event types we don't use
        return None


async def decode_stream(chunks: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
    """
    Lazily decode a byte stream into events.

    Consumes `chunks` once; closing this generator stops reading from it.
    """
    decoder = StreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.finish():
        yield event
