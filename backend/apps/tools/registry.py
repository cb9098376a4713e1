"""
Tool Catalog: immutable tool definitions keyed by name.

Definitions are registered at import time (see definitions.py) and never
mutated afterwards. The selector resolves tool names here; the executor looks
up each tool's input model and confirmation flag.

  requires_confirmation=False  read-only, executed immediately
  requires_confirmation=True   write, routed through the confirmation queue
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from apps.llm.types import ToolSpec

from .domains import Domain
from .errors import ToolValidationError, UnknownTool

logger = logging.getLogger(__name__)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "input"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


@dataclass(frozen=True)
class ToolDefinition:
    """
    Definition of a tool available to the LLM.

    Attributes:
        name: Unique tool identifier (e.g. "cancel_order")
        description: Description shown to the LLM
        domain: Retrieval domain the tool belongs to
        input_model: Pydantic model for the tool's input (source of the JSON Schema)
        requires_confirmation: True for tools that write to the store
        display_name: Short human label (e.g. "Cancel Order")
    """
    name: str
    description: str
    domain: Domain
    input_model: Type[BaseModel]
    requires_confirmation: bool = False
    display_name: str = ""
    input_schema: Dict[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name.replace("_", " ").title())
        object.__setattr__(self, "input_schema", self.input_model.model_json_schema())

    def to_spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, input_schema=self.input_schema)

    def validate(self, raw_input: Dict[str, Any]) -> BaseModel:
        """Validate raw JSON input into the typed model. Raises ToolValidationError."""
        try:
            return self.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            raise ToolValidationError(self.name, _format_validation_error(e)) from e


class ToolCatalog:
    """
    Process-wide registry of tool definitions.
    """

    _tools: Dict[str, ToolDefinition] = {}

    @classmethod
    def register(cls, tool: ToolDefinition) -> ToolDefinition:
        if tool.name in cls._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        cls._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name} ({tool.domain.value})")
        return tool

    @classmethod
    def get(cls, name: str) -> Optional[ToolDefinition]:
        return cls._tools.get(name)

    @classmethod
    def require(cls, name: str) -> ToolDefinition:
        tool = cls._tools.get(name)
        if tool is None:
            raise UnknownTool(name)
        return tool

    @classmethod
    def names(cls) -> List[str]:
        return list(cls._tools)

    @classmethod
    def in_domains(cls, domains: Iterable[Domain]) -> List[ToolDefinition]:
        wanted = set(domains)
        return [tool for tool in cls._tools.values() if tool.domain in wanted]

    @classmethod
    def resolve(cls, names: Iterable[str]) -> List[ToolDefinition]:
        """Definitions for `names` in the given order; unknown names are skipped."""
        resolved = []
        for name in names:
            tool = cls._tools.get(name)
            if tool is None:
                logger.warning("tool_name_unresolved", extra={"tool_name": name})
                continue
            resolved.append(tool)
        return resolved

    @classmethod
    def clear(cls):
        """Clear all registered tools (for testing)."""
        cls._tools.clear()
