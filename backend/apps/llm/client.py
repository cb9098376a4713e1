"""
Messages API client over httpx.

Constructed once with its credentials and default headers; callers receive the
instance explicitly (see MessagesClient.from_settings) rather than reaching for
a module-level client.
"""
import logging
import time
from typing import AsyncIterator, Optional, Sequence

import httpx
from django.conf import settings

from .codec import decode_complete, decode_error, decode_stream, encode, DEFAULT_MAX_TOKENS
from .errors import ProtocolError
from .types import ChatResult, StreamEvent, ToolSpec, WireMessage

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_API_VERSION = "2023-06-01"


class MessagesClient:

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str = DEFAULT_API_URL,
        api_version: str = DEFAULT_API_VERSION,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.api_url = api_url
        self.max_tokens = max_tokens
        self._http = httpx.AsyncClient(
            headers={
                "x-api-key": api_key,
                "anthropic-version": api_version,
                "content-type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, **overrides) -> "MessagesClient":
        options = {
            "api_key": settings.ANTHROPIC_API_KEY,
            "model": settings.CHAT_MODEL,
            "api_url": settings.ANTHROPIC_API_URL,
            "api_version": settings.ANTHROPIC_VERSION,
            "max_tokens": settings.CHAT_MAX_TOKENS,
            "timeout": settings.LLM_REQUEST_TIMEOUT,
        }
        options.update(overrides)
        return cls(**options)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "MessagesClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def create(
        self,
        messages: Sequence[WireMessage],
        system_prompt: Optional[str] = None,
        tools: Sequence[ToolSpec] = (),
    ) -> ChatResult:
        """Single-shot call. Raises LLMError subclasses on failure."""
        request = encode(messages, system_prompt, tools, False, self.model, self.max_tokens)
        started = time.monotonic()
        try:
            response = await self._http.post(self.api_url, content=request.to_json())
        except httpx.HTTPError as e:
            raise ProtocolError(f"Request to LLM failed: {e}") from e

        logger.info(
            "llm_request_completed",
            extra={
                "model": self.model,
                "status_code": response.status_code,
                "latency_ms": int((time.monotonic() - started) * 1000),
                "streaming": False,
            },
        )
        if response.status_code >= 400:
            raise decode_error(response.status_code, response.content, response.headers)
        return decode_complete(response.content)

    async def stream(
        self,
        messages: Sequence[WireMessage],
        system_prompt: Optional[str] = None,
        tools: Sequence[ToolSpec] = (),
    ) -> AsyncIterator[StreamEvent]:
        """
        Streaming call; yields events as frames arrive.

        Each call opens one connection and is not restartable. Closing the
        generator early closes the connection.
        """
        request = encode(messages, system_prompt, tools, True, self.model, self.max_tokens)
        try:
            async with self._http.stream(
                "POST",
                self.api_url,
                content=request.to_json(),
                headers={"accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise decode_error(response.status_code, body, response.headers)

                async for event in decode_stream(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as e:
            raise ProtocolError(f"Stream from LLM failed: {e}") from e
