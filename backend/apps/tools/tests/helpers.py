"""
Shared test doubles for the Store capability.
"""
from typing import Any, Dict, List, Optional, Tuple

from apps.tools.store import Store, StoreError


class FakeStore(Store):
    """
    Records every call and answers from canned responses.

    responses: tool_name -> payload dict, or a StoreError instance to raise.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    async def call(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((tool_name, params))
        response = self.responses.get(tool_name, {"message": f"{tool_name} ok"})
        if isinstance(response, Exception):
            raise response
        return response

    def calls_for(self, tool_name: str) -> List[Dict[str, Any]]:
        return [params for name, params in self.calls if name == tool_name]


class ExplodingStore(Store):
    async def call(self, tool_name, params):
        raise RuntimeError("database password is hunter2")


__all__ = ["FakeStore", "ExplodingStore", "StoreError"]
