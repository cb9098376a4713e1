"""
Store capability: the e-commerce admin API the tools act on.

The executor only depends on the Store interface. GatewayStore is the default
implementation, posting each validated call to an admin gateway over HTTP;
swap it with settings.TOOL_STORE_CLASS.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A typed failure reported by the store (not found, user error, throttled...)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class Store(ABC):

    @abstractmethod
    async def call(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Perform one tool operation.

        Args:
            tool_name: Catalog name of the tool
            params: Validated input, JSON-serializable

        Returns:
            Opaque success payload

        Raises:
            StoreError: the operation was refused or failed
        """


class GatewayStore(Store):
    """POSTs `{params}` to `<STORE_API_URL>/<tool_name>` with a bearer token."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.STORE_API_URL).rstrip("/")
        headers = {"content-type": "application/json"}
        token = token if token is not None else settings.STORE_API_TOKEN
        if token:
            headers["authorization"] = f"Bearer {token}"
        self._headers = headers
        self._timeout = timeout or settings.STORE_REQUEST_TIMEOUT
        self._transport = transport

    async def call(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{tool_name}"
        try:
            async with httpx.AsyncClient(
                headers=self._headers, timeout=self._timeout, transport=self._transport,
            ) as client:
                response = await client.post(url, json=params)
        except httpx.HTTPError as e:
            raise StoreError(f"Store unreachable: {e}", code="unavailable") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                raise StoreError(error.get("message", response.text), code=error.get("code"))
            raise StoreError(response.text or f"Store returned HTTP {response.status_code}",
                             code=str(response.status_code))

        return body if isinstance(body, dict) else {"data": body}


def get_store() -> Store:
    """Instantiate the configured Store implementation."""
    store_class = import_string(settings.TOOL_STORE_CLASS)
    return store_class()
