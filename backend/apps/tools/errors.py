"""
Tool errors.

UnknownTool and ToolValidationError are fatal for the call and never retried.
ToolExecutionError wraps a failure reported by the Store.
"""
from typing import Optional


class ToolError(Exception):
    """Base class for tool lookup, validation and execution failures."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class UnknownTool(ToolError):
    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Unknown tool: {tool_name}")


class ToolValidationError(ToolError):
    """Input did not match the tool's schema; `message` names the violation."""


class ToolExecutionError(ToolError):
    def __init__(self, tool_name: str, message: str, code: Optional[str] = None):
        super().__init__(tool_name, message)
        self.code = code
