"""
Tool Executor: validates tool input and dispatches to the Store.

execute() never raises for problems inside a single tool call: unknown tool,
schema violation, store refusal and unexpected failures all come back as an
unsuccessful ToolResult so the conversation can carry them as an error
tool_result. Adds no state of its own; side effects are the Store's.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from apps.llm.types import ToolResultBlock

from .errors import ToolError, ToolExecutionError, ToolValidationError, UnknownTool
from .registry import ToolCatalog
from .store import Store, StoreError

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 8000


class ErrorKind:
    UNKNOWN_TOOL = "unknown_tool"
    VALIDATION = "validation"
    EXECUTION = "execution"
    INTERNAL = "internal"


@dataclass
class ToolResult:
    """
    Outcome of one tool call.

    `summary` is the text fed back to the model and stored on the audit
    record; `output` is the raw store payload on success.
    """
    tool_name: str
    success: bool
    summary: str
    output: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return not self.success

    def to_block(self, tool_use_id: str) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=tool_use_id, content=self.summary, is_error=self.is_error)

    @classmethod
    def from_error(cls, error: ToolError, kind: str) -> "ToolResult":
        return cls(tool_name=error.tool_name, success=False, summary=f"Error: {error.message}", error_kind=kind)


def summarize_output(tool_name: str, output: Dict[str, Any]) -> str:
    """
    Render a store payload as a short text summary.

    A top-level "message" (or "summary") string leads; the payload follows as
    compact JSON, truncated to keep tool results bounded.
    """
    lead = ""
    for key in ("message", "summary"):
        if isinstance(output.get(key), str):
            lead = output[key]
            break

    rest = {k: v for k, v in output.items() if k not in ("message", "summary")}
    body = json.dumps(rest, separators=(",", ":"), default=str) if rest else ""

    if lead and body:
        text = f"{lead}\n{body}"
    else:
        text = lead or body or f"{tool_name} completed."

    if len(text) > MAX_SUMMARY_CHARS:
        text = text[:MAX_SUMMARY_CHARS] + "... (truncated)"
    return text


class ToolExecutor:
    """
    Runs catalog tools against a Store.
    """

    def __init__(self, store: Store):
        self.store = store

    async def execute(self, tool_name: str, raw_input: Dict[str, Any]) -> ToolResult:
        try:
            tool = ToolCatalog.require(tool_name)
            params = tool.validate(raw_input)
        except UnknownTool as e:
            logger.warning("tool_unknown", extra={"tool_name": tool_name})
            return ToolResult.from_error(e, ErrorKind.UNKNOWN_TOOL)
        except ToolValidationError as e:
            logger.info("tool_input_invalid", extra={"tool_name": tool_name, "reason": e.message})
            return ToolResult(
                tool_name=tool_name,
                success=False,
                summary=f"Invalid input for {tool_name}: {e.message}",
                error_kind=ErrorKind.VALIDATION,
            )

        logger.info(
            "tool_execution_started",
            extra={
                'tool_name': tool_name,
                'requires_confirmation': tool.requires_confirmation,
            },
        )

        try:
            output = await self.store.call(tool_name, params.model_dump(mode="json", exclude_none=True))
        except StoreError as e:
            # User-facing store refusals are safe to expose to the model
            error = ToolExecutionError(tool_name, e.message, e.code)
            logger.warning(
                "tool_execution_rejected",
                extra={'tool_name': tool_name, 'code': e.code, 'error': e.message},
            )
            return ToolResult.from_error(error, ErrorKind.EXECUTION)
        except Exception as e:
            # System errors: don't leak internals into the conversation
            logger.exception(
                "tool_execution_failed",
                extra={'tool_name': tool_name, 'error_type': type(e).__name__},
            )
            return ToolResult(
                tool_name=tool_name,
                success=False,
                summary="Error: Action failed due to an internal error.",
                error_kind=ErrorKind.INTERNAL,
            )

        output = output if isinstance(output, dict) else {"data": output}
        logger.info("tool_execution_completed", extra={'tool_name': tool_name})
        return ToolResult(
            tool_name=tool_name,
            success=True,
            summary=summarize_output(tool_name, output),
            output=output,
        )
