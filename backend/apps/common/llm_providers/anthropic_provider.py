"""
Anthropic (Claude) LLM Provider
"""
from typing import Optional
from anthropic import AsyncAnthropic

from .base import LLMProvider


class AnthropicProvider(LLMProvider):
    """Anthropic Claude implementation of LLM provider"""

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest"):
        super().__init__(api_key, model)
        self.client = AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        **kwargs
    ) -> str:
        if not messages:
            raise ValueError("At least one message is required for Anthropic API")

        response = await self.client.messages.create(
            model=self.model,
            messages=messages,
            system=system_prompt or "",
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs
        )

        # Concatenate text blocks; classifiers only ever get text back
        return "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
