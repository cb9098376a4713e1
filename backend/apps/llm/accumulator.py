"""
Rebuilds a complete assistant turn from stream events.

Text deltas are concatenated per block; tool_use input arrives as partial JSON
fragments that are joined and parsed once the block completes.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .types import (
    ContentBlock,
    MessageStart,
    StopReason,
    StreamEvent,
    TextBlock,
    TextDelta,
    ToolUseBlock,
    ToolUseComplete,
    ToolUseInputDelta,
    ToolUseStart,
    TurnComplete,
    Usage,
)

logger = logging.getLogger(__name__)


@dataclass
class _OpenBlock:
    kind: str
    text: str = ""
    tool_id: str = ""
    tool_name: str = ""
    json_parts: List[str] = field(default_factory=list)
    closed: Optional[ContentBlock] = None


class TurnAccumulator:
    """Feed every event of one model call; read `content`, `stop_reason`, `usage` afterwards."""

    def __init__(self):
        self._blocks: Dict[int, _OpenBlock] = {}
        self.message_id: str = ""
        self.model: str = ""
        self.stop_reason: Optional[StopReason] = None
        self.usage = Usage()
        # tool_use id -> reason its input could not be parsed
        self.invalid_inputs: Dict[str, str] = {}

    def add(self, event: StreamEvent) -> None:
        if isinstance(event, MessageStart):
            self.message_id = event.message_id
            self.model = event.model
            self.usage = self.usage + event.usage
        elif isinstance(event, TextDelta):
            block = self._blocks.setdefault(event.index, _OpenBlock(kind="text"))
            block.text += event.text
        elif isinstance(event, ToolUseStart):
            self._blocks[event.index] = _OpenBlock(
                kind="tool_use", tool_id=event.id, tool_name=event.name,
            )
        elif isinstance(event, ToolUseInputDelta):
            block = self._blocks.get(event.index)
            if block is not None and block.kind == "tool_use":
                block.json_parts.append(event.partial_json)
        elif isinstance(event, ToolUseComplete):
            block = self._blocks.get(event.index)
            if block is not None and block.kind == "tool_use":
                block.closed = self._close_tool(block)
        elif isinstance(event, TurnComplete):
            self.stop_reason = event.stop_reason
            # message_delta usage is cumulative output for the turn
            self.usage = Usage(
                input_tokens=max(self.usage.input_tokens, event.usage.input_tokens),
                output_tokens=event.usage.output_tokens or self.usage.output_tokens,
            )

    def _close_tool(self, block: _OpenBlock) -> ToolUseBlock:
        raw = "".join(block.json_parts).strip()
        tool_input = {}
        if raw:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as e:
                self.invalid_inputs[block.tool_id] = f"Tool input was not valid JSON: {e}"
                logger.warning(
                    "tool_input_malformed",
                    extra={"tool_use_id": block.tool_id, "tool_name": block.tool_name},
                )
            else:
                if isinstance(parsed, dict):
                    tool_input = parsed
                else:
                    self.invalid_inputs[block.tool_id] = "Tool input must be a JSON object"
        return ToolUseBlock(id=block.tool_id, name=block.tool_name, input=tool_input)

    @property
    def content(self) -> List[ContentBlock]:
        """Blocks in index order; tool blocks that never completed are closed here."""
        blocks: List[ContentBlock] = []
        for index in sorted(self._blocks):
            block = self._blocks[index]
            if block.kind == "text":
                if block.text:
                    blocks.append(TextBlock(text=block.text))
            else:
                if block.closed is None:
                    block.closed = self._close_tool(block)
                blocks.append(block.closed)
        return blocks

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]
