"""
Wire types for the Messages API.

Content blocks, requests, single-shot results and the typed stream events the
codec produces. Everything here is plain data; encoding and decoding live in
codec.py.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class StopReason(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["StopReason"]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------

@dataclass
class TextBlock:
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_wire(self) -> Dict[str, Any]:
        block = {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}
        if self.is_error:
            block["is_error"] = True
        return block


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


def block_from_wire(data: Dict[str, Any]) -> Optional[ContentBlock]:
    """Build a content block from its wire dict. Unknown block types return None."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=data.get("text", ""))
    if block_type == "tool_use":
        return ToolUseBlock(id=data["id"], name=data["name"], input=data.get("input") or {})
    if block_type == "tool_result":
        content = data.get("content", "")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return ToolResultBlock(
            tool_use_id=data["tool_use_id"],
            content=content,
            is_error=bool(data.get("is_error", False)),
        )
    return None


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------

@dataclass
class WireMessage:
    """One conversation turn as the API sees it (role is 'user' or 'assistant')."""
    role: str
    content: List[ContentBlock] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {"role": self.role, "content": [block.to_wire() for block in self.content]}


@dataclass
class ToolSpec:
    name: str
    description: str
    input_schema: Dict[str, Any]

    def to_wire(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class WireRequest:
    """Encoded request body plus whether the response will be an event stream."""
    body: Dict[str, Any]
    stream: bool = False

    def to_json(self) -> bytes:
        return json.dumps(self.body).encode("utf-8")


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> "Usage":
        data = data or {}
        return cls(
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0),
        )

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass
class ChatResult:
    """A complete (non-streamed) model response."""
    id: str
    model: str
    content: List[ContentBlock]
    stop_reason: Optional[StopReason]
    usage: Usage = field(default_factory=Usage)

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass
class MessageStart:
    message_id: str
    model: str
    usage: Usage = field(default_factory=Usage)


@dataclass
class Ping:
    pass


@dataclass
class TextDelta:
    index: int
    text: str


@dataclass
class ToolUseStart:
    index: int
    id: str
    name: str


@dataclass
class ToolUseInputDelta:
    index: int
    partial_json: str


@dataclass
class ToolUseComplete:
    index: int


@dataclass
class TurnComplete:
    stop_reason: Optional[StopReason]
    usage: Usage = field(default_factory=Usage)


@dataclass
class StreamError:
    message: str
    error_type: str = "stream_error"


StreamEvent = Union[
    MessageStart,
    Ping,
    TextDelta,
    ToolUseStart,
    ToolUseInputDelta,
    ToolUseComplete,
    TurnComplete,
    StreamError,
]
