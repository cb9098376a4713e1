"""
Scripted model client and selector for orchestrator tests.
"""
import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

from apps.llm.types import (
    MessageStart,
    StopReason,
    StreamError,
    TextDelta,
    ToolUseComplete,
    ToolUseInputDelta,
    ToolUseStart,
    TurnComplete,
    Usage,
)
from apps.tool_selection.selector import SelectionResult
from apps.tools.domains import Domain
from apps.tools.registry import ToolCatalog


def text_turn(text: str, input_tokens: int = 12, output_tokens: int = 5) -> list:
    """Events of a model call that answers with text only."""
    half = len(text) // 2
    return [
        MessageStart(message_id="msg_text", model="claude-test", usage=Usage(input_tokens, 1)),
        TextDelta(index=0, text=text[:half]),
        TextDelta(index=0, text=text[half:]),
        TurnComplete(stop_reason=StopReason.END_TURN, usage=Usage(0, output_tokens)),
    ]


def tool_turn(tool_use_id: str, name: str, tool_input: Optional[Dict[str, Any]] = None,
              text: str = "", raw_json: Optional[str] = None) -> list:
    """Events of a model call that asks for one tool; input arrives in two fragments."""
    raw = raw_json if raw_json is not None else json.dumps(tool_input or {})
    split = len(raw) // 2
    events = [MessageStart(message_id="msg_tool", model="claude-test", usage=Usage(20, 1))]
    index = 0
    if text:
        events.append(TextDelta(index=0, text=text))
        index = 1
    events += [
        ToolUseStart(index=index, id=tool_use_id, name=name),
        ToolUseInputDelta(index=index, partial_json=raw[:split]),
        ToolUseInputDelta(index=index, partial_json=raw[split:]),
        ToolUseComplete(index=index),
        TurnComplete(stop_reason=StopReason.TOOL_USE, usage=Usage(0, 8)),
    ]
    return events


def error_turn(message: str = "Overloaded") -> list:
    return [
        MessageStart(message_id="msg_err", model="claude-test"),
        StreamError(message=message, error_type="overloaded_error"),
    ]


class ScriptedClient:
    """
    Stands in for MessagesClient. Each stream() call plays the next script;
    when the scripts run out the last one repeats.
    """

    model = "claude-test"

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def stream(self, messages, system_prompt=None, tools=()):
        self.calls.append({
            'messages': list(messages),
            'system_prompt': system_prompt,
            'tools': [tool.name for tool in tools],
        })
        index = min(len(self.calls), len(self.scripts)) - 1
        for event in self.scripts[index]:
            yield event

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


class FakeSelector:
    """Offers a fixed tool list and records learning events."""

    def __init__(self, tool_names=("get_order", "cancel_order"), domains=(Domain.ORDERS,)):
        self.tool_names = list(tool_names)
        self.domains = list(domains)
        self.queries: List[str] = []
        self.record_success = AsyncMock()

    async def select(self, query, limit=None):
        self.queries.append(query)
        return SelectionResult(tools=ToolCatalog.resolve(self.tool_names), domains=self.domains)
