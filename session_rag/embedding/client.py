"""
Embedding API Client Module

Provides an async HTTP client for getting text embeddings from an
OpenAI-compatible API, plus the provider protocol the engine depends on.
"""

import asyncio
import os
from typing import List, Dict, Any, Optional, Protocol, Sequence

import aiohttp
from loguru import logger

from ..errors import EmbeddingProviderError


class EmbeddingProvider(Protocol):
    """Anything that turns a text into a fixed-length float vector."""

    async def embed(self, text: str) -> Sequence[float]:
        ...


class EmbeddingClient:
    """
    Client for getting embeddings from remote API.

    Supports OpenAI-compatible API format.
    """

    def __init__(
        self,
        api_url: str = "https://api.openai.com/v1/embeddings",
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        max_retries: int = 1,
        timeout: int = 60
    ):
        """
        Initialize embedding client.

        Args:
            api_url: API endpoint URL (e.g., "http://localhost:30000/v1/embeddings")
            model_name: Model name to use
            api_key: API key for authentication; defaults to $OPENAI_API_KEY
            max_retries: Maximum number of attempts per request. The engine
                never retries on its own, so this stays at 1 unless the
                endpoint is known to be flaky.
            timeout: Request timeout in seconds
        """
        self.api_url = api_url
        self.model_name = model_name
        self.api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY")
        self.max_retries = max(1, max_retries)
        self.timeout = timeout

        # Store embedding dimension (will be set after first call)
        self.embedding_dim = None

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as a list of floats

        Raises:
            EmbeddingProviderError: when every attempt fails
        """
        payload = {
            "input": text.strip(),
            "model": self.model_name
        }

        last_error: Optional[Exception] = None
        async with aiohttp.ClientSession() as session:
            for attempt in range(self.max_retries):
                try:
                    async with session.post(
                        self.api_url,
                        json=payload,
                        headers=self._headers(),
                        timeout=aiohttp.ClientTimeout(total=self.timeout)
                    ) as response:
                        response.raise_for_status()
                        data = await response.json()
                    embedding = parse_embedding_response(data)
                    break

                except (aiohttp.ClientError, asyncio.TimeoutError, EmbeddingProviderError) as e:
                    last_error = e
                    if attempt < self.max_retries - 1:
                        logger.warning(f"Retry {attempt + 1}/{self.max_retries} after error: {e}")
                        await asyncio.sleep(1)
            else:
                raise EmbeddingProviderError(
                    f"Failed to get embedding after {self.max_retries} attempts: {last_error}"
                ) from last_error

        if self.embedding_dim is None:
            self.embedding_dim = len(embedding)

        return embedding

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def get_info(self) -> Dict[str, Any]:
        """Get client information."""
        return {
            "api_url": self.api_url,
            "model_name": self.model_name,
            "embedding_dim": self.embedding_dim,
            "max_retries": self.max_retries,
            "has_api_key": bool(self.api_key)
        }


def parse_embedding_response(data: Any) -> List[float]:
    """Extract the first embedding from an OpenAI-style response body."""
    try:
        embedding = data["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as e:
        raise EmbeddingProviderError(f"Malformed embedding response: {e}") from e

    if not embedding:
        raise EmbeddingProviderError("Embedding response contained an empty vector")

    try:
        return [float(x) for x in embedding]
    except (TypeError, ValueError) as e:
        raise EmbeddingProviderError(f"Embedding is not numeric: {e}") from e
