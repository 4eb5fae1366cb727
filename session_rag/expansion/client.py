"""
Completion API Client Module

Async client for an OpenAI-compatible chat completions endpoint, used only
to generate query variations.
"""

import asyncio
import os
from typing import Any, Dict, Optional, Protocol

import aiohttp

from ..errors import ExpansionUnavailable


class CompletionProvider(Protocol):
    """Anything that turns a prompt into a text completion."""

    async def complete(self, prompt: str) -> str:
        ...


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates alternative phrasings for "
    "user questions to improve semantic search results."
)


class CompletionClient:
    """
    Client for chat completions from remote API.

    Supports OpenAI-compatible API format.
    """

    def __init__(
        self,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        model_name: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 150,
        temperature: float = 0.7,
        json_mode: bool = True,
        timeout: int = 30
    ):
        """
        Initialize completion client.

        Args:
            api_url: API endpoint URL
            model_name: Model name to use
            api_key: API key; defaults to $OPENAI_API_KEY
            system_prompt: System message sent with every prompt
            max_tokens: Completion length limit
            temperature: Sampling temperature
            json_mode: Ask the API for a JSON object response
            timeout: Request timeout in seconds
        """
        self.api_url = api_url
        self.model_name = model_name
        self.api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY")
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.json_mode = json_mode
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        """
        Get a completion for a prompt.

        Raises:
            ExpansionUnavailable: missing API key, transport error or an
                empty/malformed response
        """
        if not self.api_key:
            raise ExpansionUnavailable("OPENAI_API_KEY not set")

        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt}
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.api_url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    response.raise_for_status()
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExpansionUnavailable(f"Completion request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExpansionUnavailable(f"Malformed completion response: {e}") from e

        if not content:
            raise ExpansionUnavailable("No response from completion API")
        return content

    def get_info(self) -> Dict[str, Any]:
        """Get client information."""
        return {
            "api_url": self.api_url,
            "model_name": self.model_name,
            "json_mode": self.json_mode,
            "has_api_key": bool(self.api_key)
        }
