"""
Tests for the Messages API codec, stream reassembly and client.

Pure-Python; no database needed.

Run with:
    pytest backend/apps/llm/tests.py -v
"""
import asyncio
import json
from unittest import TestCase

import httpx

from .accumulator import TurnAccumulator
from .client import MessagesClient
from .codec import (
    FrameBuffer,
    StreamDecoder,
    decode_complete,
    decode_error,
    decode_stream,
    encode,
)
from .errors import ApiError, ProtocolError, RateLimited, Unauthorized
from .types import (
    MessageStart,
    Ping,
    StopReason,
    StreamError,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolSpec,
    ToolUseBlock,
    ToolUseComplete,
    ToolUseInputDelta,
    ToolUseStart,
    TurnComplete,
    WireMessage,
)


# ═══════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════

def _frame(event_type: str, payload: dict) -> bytes:
    return f"event: {event_type}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n".encode()


def _tool_call_stream() -> bytes:
    """A realistic stream: text, then a tool_use whose input arrives in pieces."""
    return b"".join([
        _frame("message_start", {
            "type": "message_start",
            "message": {"id": "msg_1", "model": "claude-test", "usage": {"input_tokens": 42, "output_tokens": 1}},
        }),
        _frame("content_block_start", {
            "type": "content_block_start", "index": 0,
            "content_block": {"type": "text", "text": ""},
        }),
        _frame("ping", {"type": "ping"}),
        _frame("content_block_delta", {
            "type": "content_block_delta", "index": 0,
            "delta": {"type": "text_delta", "text": "Let me cancel "},
        }),
        _frame("content_block_delta", {
            "type": "content_block_delta", "index": 0,
            "delta": {"type": "text_delta", "text": "that order. ✅"},
        }),
        _frame("content_block_stop", {"type": "content_block_stop", "index": 0}),
        _frame("content_block_start", {
            "type": "content_block_start", "index": 1,
            "content_block": {"type": "tool_use", "id": "toolu_1", "name": "cancel_order", "input": {}},
        }),
        _frame("content_block_delta", {
            "type": "content_block_delta", "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": '{"order_id": '},
        }),
        _frame("content_block_delta", {
            "type": "content_block_delta", "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": '"1001", "reason": "CUSTOMER"}'},
        }),
        _frame("content_block_stop", {"type": "content_block_stop", "index": 1}),
        _frame("message_delta", {
            "type": "message_delta",
            "delta": {"stop_reason": "tool_use"},
            "usage": {"output_tokens": 57},
        }),
        _frame("message_stop", {"type": "message_stop"}),
    ])


def _decode_in_chunks(raw: bytes, size: int) -> list:
    decoder = StreamDecoder()
    events = []
    for i in range(0, len(raw), size):
        events.extend(decoder.feed(raw[i:i + size]))
    events.extend(decoder.finish())
    return events


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


# ═══════════════════════════════════════════════════════════════════
# Frame reassembly
# ═══════════════════════════════════════════════════════════════════


class TestFrameBuffer(TestCase):
    """FrameBuffer: byte chunks in, complete SSE frames out."""

    def test_ping_split_mid_payload(self):
        """A frame split inside its JSON yields nothing until it completes, then one Ping."""
        decoder = StreamDecoder()

        first = decoder.feed(b'event: ping\ndata: {"typ')
        self.assertEqual(first, [])

        second = decoder.feed(b'e":"ping"}\n\n')
        self.assertEqual(len(second), 1)
        self.assertIsInstance(second[0], Ping)

    def test_every_split_point_yields_same_frames(self):
        """Splitting the byte stream at any offset gives the same frames as no split."""
        raw = _tool_call_stream()
        expected = FrameBuffer().feed(raw)

        for cut in range(1, len(raw)):
            buffer = FrameBuffer()
            frames = buffer.feed(raw[:cut]) + buffer.feed(raw[cut:])
            self.assertEqual(frames, expected, f"split at byte {cut}")
            self.assertEqual(buffer.pending, b"")

    def test_single_byte_chunks(self):
        """Feeding one byte at a time still reassembles every event."""
        raw = _tool_call_stream()
        self.assertEqual(_decode_in_chunks(raw, 1), _decode_in_chunks(raw, len(raw)))

    def test_multibyte_character_split_across_chunks(self):
        """A UTF-8 sequence cut between chunks is decoded intact."""
        raw = _frame("content_block_delta", {
            "type": "content_block_delta", "index": 0,
            "delta": {"type": "text_delta", "text": "café ✅"},
        })
        split_at = raw.index("é".encode()) + 1
        decoder = StreamDecoder()
        events = decoder.feed(raw[:split_at]) + decoder.feed(raw[split_at:])
        self.assertEqual(events, [TextDelta(index=0, text="café ✅")])

    def test_crlf_delimiters(self):
        """CRLF line endings delimit frames too."""
        raw = b'event: ping\r\ndata: {"type": "ping"}\r\n\r\n'
        events = StreamDecoder().feed(raw)
        self.assertEqual(len(events), 1)
        self.assertIsInstance(events[0], Ping)

    def test_frame_without_data_is_ignored(self):
        """Frames with only an event line or comments produce nothing."""
        buffer = FrameBuffer()
        frames = buffer.feed(b"event: ping\n\n: keep-alive comment\n\n")
        self.assertEqual(frames, [])

    def test_done_marker_is_ignored(self):
        """The literal [DONE] payload is dropped."""
        decoder = StreamDecoder()
        events = decoder.feed(b"data: [DONE]\n\n")
        self.assertEqual(events, [])

    def test_flush_emits_unterminated_final_frame(self):
        """A last frame without its trailing blank line is emitted on finish()."""
        decoder = StreamDecoder()
        self.assertEqual(decoder.feed(b'data: {"type": "ping"}'), [])
        events = decoder.finish()
        self.assertEqual(len(events), 1)
        self.assertIsInstance(events[0], Ping)


# ═══════════════════════════════════════════════════════════════════
# Event decoding
# ═══════════════════════════════════════════════════════════════════


class TestStreamDecoder(TestCase):
    """StreamDecoder: frame payloads to typed events."""

    def test_full_tool_call_stream(self):
        events = _decode_in_chunks(_tool_call_stream(), 7)

        self.assertIsInstance(events[0], MessageStart)
        self.assertEqual(events[0].message_id, "msg_1")
        self.assertIn(Ping(), events)
        self.assertIn(ToolUseStart(index=1, id="toolu_1", name="cancel_order"), events)
        self.assertIn(ToolUseComplete(index=1), events)

        deltas = [e for e in events if isinstance(e, ToolUseInputDelta)]
        self.assertEqual(len(deltas), 2)

        turn = events[-1]
        self.assertIsInstance(turn, TurnComplete)
        self.assertEqual(turn.stop_reason, StopReason.TOOL_USE)
        self.assertEqual(turn.usage.output_tokens, 57)

    def test_text_block_stop_is_not_tool_complete(self):
        """content_block_stop for a text block emits nothing."""
        events = _decode_in_chunks(_tool_call_stream(), 64)
        completes = [e for e in events if isinstance(e, ToolUseComplete)]
        self.assertEqual(completes, [ToolUseComplete(index=1)])

    def test_malformed_frame_does_not_stop_stream(self):
        """Bad JSON in one frame yields a StreamError; following frames still decode."""
        raw = b'data: {"type": "ping"\n\n' + _frame("ping", {"type": "ping"})
        events = StreamDecoder().feed(raw)

        self.assertEqual(len(events), 2)
        self.assertIsInstance(events[0], StreamError)
        self.assertEqual(events[0].error_type, "malformed_frame")
        self.assertIsInstance(events[1], Ping)

    def test_error_event(self):
        raw = _frame("error", {
            "type": "error",
            "error": {"type": "overloaded_error", "message": "Overloaded"},
        })
        events = StreamDecoder().feed(raw)
        self.assertEqual(events, [StreamError(message="Overloaded", error_type="overloaded_error")])

    def test_decode_stream_async(self):
        """decode_stream drives the decoder over an async chunk source."""
        raw = _tool_call_stream()
        chunks = [raw[i:i + 13] for i in range(0, len(raw), 13)]

        async def collect():
            return [event async for event in decode_stream(_aiter(chunks))]

        events = asyncio.run(collect())
        self.assertEqual(events, _decode_in_chunks(raw, len(raw)))


# ═══════════════════════════════════════════════════════════════════
# Accumulator
# ═══════════════════════════════════════════════════════════════════


class TestTurnAccumulator(TestCase):

    def test_reassembles_text_and_tool_input(self):
        accumulator = TurnAccumulator()
        for event in _decode_in_chunks(_tool_call_stream(), 5):
            accumulator.add(event)

        self.assertEqual(accumulator.text, "Let me cancel that order. ✅")
        self.assertEqual(accumulator.stop_reason, StopReason.TOOL_USE)
        self.assertEqual(accumulator.usage.input_tokens, 42)
        self.assertEqual(accumulator.usage.output_tokens, 57)
        self.assertEqual(
            accumulator.tool_uses,
            [ToolUseBlock(id="toolu_1", name="cancel_order", input={"order_id": "1001", "reason": "CUSTOMER"})],
        )
        self.assertEqual(accumulator.invalid_inputs, {})

    def test_malformed_tool_input_is_recorded(self):
        accumulator = TurnAccumulator()
        accumulator.add(ToolUseStart(index=0, id="toolu_x", name="get_order"))
        accumulator.add(ToolUseInputDelta(index=0, partial_json='{"order_id": '))
        accumulator.add(ToolUseComplete(index=0))

        self.assertEqual(accumulator.tool_uses[0].input, {})
        self.assertIn("toolu_x", accumulator.invalid_inputs)

    def test_empty_tool_input_is_empty_object(self):
        accumulator = TurnAccumulator()
        accumulator.add(ToolUseStart(index=0, id="toolu_y", name="get_shop"))
        accumulator.add(ToolUseComplete(index=0))
        self.assertEqual(accumulator.tool_uses[0].input, {})
        self.assertEqual(accumulator.invalid_inputs, {})


# ═══════════════════════════════════════════════════════════════════
# Encoding / single-shot decoding / errors
# ═══════════════════════════════════════════════════════════════════


class TestEncode(TestCase):

    def test_encode_with_tools_and_stream(self):
        messages = [
            WireMessage(role="user", content=[TextBlock(text="cancel order 1001")]),
            WireMessage(role="assistant", content=[
                ToolUseBlock(id="toolu_1", name="cancel_order", input={"order_id": "1001"}),
            ]),
            WireMessage(role="user", content=[
                ToolResultBlock(tool_use_id="toolu_1", content="Not allowed", is_error=True),
            ]),
        ]
        tools = [ToolSpec(name="cancel_order", description="Cancel", input_schema={"type": "object"})]

        request = encode(messages, "You are helpful", tools, True, "claude-test", 1024)

        self.assertTrue(request.stream)
        body = json.loads(request.to_json())
        self.assertEqual(body["model"], "claude-test")
        self.assertEqual(body["max_tokens"], 1024)
        self.assertEqual(body["system"], "You are helpful")
        self.assertTrue(body["stream"])
        self.assertEqual(body["tools"][0]["name"], "cancel_order")
        self.assertEqual(body["messages"][2]["content"][0], {
            "type": "tool_result", "tool_use_id": "toolu_1", "content": "Not allowed", "is_error": True,
        })

    def test_encode_omits_empty_optionals(self):
        request = encode([WireMessage(role="user", content=[TextBlock(text="hi")])], None, [], False, "m")
        self.assertNotIn("system", request.body)
        self.assertNotIn("tools", request.body)
        self.assertNotIn("stream", request.body)
        self.assertEqual(request.body["max_tokens"], 4096)


class TestDecodeComplete(TestCase):

    def test_decodes_text_and_tool_use(self):
        body = json.dumps({
            "id": "msg_2", "type": "message", "model": "claude-test",
            "content": [
                {"type": "text", "text": "Looking it up"},
                {"type": "tool_use", "id": "toolu_2", "name": "get_order", "input": {"order_id": "1"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 10, "output_tokens": 5},
        }).encode()

        result = decode_complete(body)

        self.assertEqual(result.text, "Looking it up")
        self.assertEqual(result.tool_uses[0].name, "get_order")
        self.assertEqual(result.stop_reason, StopReason.TOOL_USE)
        self.assertEqual(result.usage.input_tokens, 10)

    def test_invalid_json_is_protocol_error(self):
        with self.assertRaises(ProtocolError):
            decode_complete(b"<html>bad gateway</html>")

    def test_error_body_is_api_error(self):
        body = json.dumps({"type": "error", "error": {"type": "invalid_request_error", "message": "bad"}}).encode()
        with self.assertRaises(ApiError) as ctx:
            decode_complete(body)
        self.assertEqual(ctx.exception.error_type, "invalid_request_error")


class TestDecodeError(TestCase):

    def test_rate_limited_with_header(self):
        error = decode_error(429, b"", {"retry-after": "17"})
        self.assertIsInstance(error, RateLimited)
        self.assertEqual(error.retry_after, 17)
        self.assertIn("17 seconds", error.user_message())

    def test_rate_limited_default_retry_after(self):
        self.assertEqual(decode_error(429, b"", {}).retry_after, 60)
        self.assertEqual(decode_error(429, b"", {"retry-after": "soon"}).retry_after, 60)

    def test_unauthorized(self):
        self.assertIsInstance(decode_error(401, b"nope", {}), Unauthorized)

    def test_structured_api_error(self):
        body = json.dumps({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}).encode()
        error = decode_error(529, body, {})
        self.assertIsInstance(error, ApiError)
        self.assertEqual(error.status, 529)
        self.assertEqual(error.error_type, "overloaded_error")
        self.assertEqual(error.message, "Overloaded")

    def test_unstructured_body_falls_back_to_raw_text(self):
        error = decode_error(500, b"upstream connect error", {})
        self.assertIsInstance(error, ApiError)
        self.assertIsNone(error.error_type)
        self.assertEqual(error.message, "upstream connect error")


# ═══════════════════════════════════════════════════════════════════
# Client (httpx.MockTransport)
# ═══════════════════════════════════════════════════════════════════


class TestMessagesClient(TestCase):

    def _client(self, handler) -> MessagesClient:
        return MessagesClient(
            api_key="sk-test", model="claude-test",
            transport=httpx.MockTransport(handler),
        )

    def test_create_sends_headers_and_decodes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["api_key"] = request.headers["x-api-key"]
            seen["version"] = request.headers["anthropic-version"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "id": "msg_3", "model": "claude-test",
                "content": [{"type": "text", "text": "Done"}],
                "stop_reason": "end_turn", "usage": {"input_tokens": 3, "output_tokens": 1},
            })

        async def run():
            async with self._client(handler) as client:
                return await client.create([WireMessage(role="user", content=[TextBlock(text="hi")])])

        result = asyncio.run(run())

        self.assertEqual(result.text, "Done")
        self.assertEqual(seen["api_key"], "sk-test")
        self.assertEqual(seen["version"], "2023-06-01")
        self.assertEqual(seen["body"]["model"], "claude-test")

    def test_create_maps_rate_limit(self):
        def handler(request):
            return httpx.Response(429, headers={"retry-after": "5"})

        async def run():
            async with self._client(handler) as client:
                await client.create([WireMessage(role="user", content=[TextBlock(text="hi")])])

        with self.assertRaises(RateLimited) as ctx:
            asyncio.run(run())
        self.assertEqual(ctx.exception.retry_after, 5)

    def test_stream_yields_events(self):
        def handler(request):
            return httpx.Response(
                200,
                content=_tool_call_stream(),
                headers={"content-type": "text/event-stream"},
            )

        async def run():
            async with self._client(handler) as client:
                accumulator = TurnAccumulator()
                async for event in client.stream([WireMessage(role="user", content=[TextBlock(text="x")])]):
                    accumulator.add(event)
                return accumulator

        accumulator = asyncio.run(run())
        self.assertEqual(accumulator.tool_uses[0].name, "cancel_order")

    def test_stream_error_status_raises(self):
        def handler(request):
            return httpx.Response(401, content=b'{"type":"error","error":{"type":"authentication_error","message":"invalid x-api-key"}}')

        async def run():
            async with self._client(handler) as client:
                async for _ in client.stream([WireMessage(role="user", content=[TextBlock(text="x")])]):
                    pass

        with self.assertRaises(Unauthorized):
            asyncio.run(run())

    def test_transport_failure_is_protocol_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async def run():
            async with self._client(handler) as client:
                await client.create([WireMessage(role="user", content=[TextBlock(text="x")])])

        with self.assertRaises(ProtocolError):
            asyncio.run(run())
