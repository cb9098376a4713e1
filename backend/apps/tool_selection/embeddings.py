"""
Query embeddings via the OpenAI embeddings API.

Query vectors are cached in-process (LRU with TTL) since the same phrasing is
embedded both for retrieval and, after a successful tool call, for learning.
"""
import logging
import time
from collections import OrderedDict
from typing import List, Optional, Sequence, Tuple

from django.conf import settings
from openai import AsyncOpenAI

from .errors import EmbeddingError
from .models import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)

_CACHE_MAX_SIZE = 256
_CACHE_TTL_SECONDS = 300


class EmbeddingClient:
    """
    Thin wrapper over AsyncOpenAI.embeddings.

    Every returned vector is checked against the corpus dimension; a mismatch
    is an EmbeddingError rather than a silently unusable row.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self._client = client
        self.model = model or settings.TOOL_EMBEDDING_MODEL
        self.dimensions = dimensions or settings.TOOL_EMBEDDING_DIMENSIONS
        self.batch_size = batch_size or settings.TOOL_EMBEDDING_BATCH_SIZE
        if self.dimensions != EMBEDDING_DIMENSIONS:
            raise EmbeddingError(
                f"Configured dimensions {self.dimensions} do not match the corpus ({EMBEDDING_DIMENSIONS})"
            )
        self._cache: "OrderedDict[str, Tuple[List[float], float]]" = OrderedDict()

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def embed(self, text: str, use_cache: bool = True) -> List[float]:
        """
        Embed one text.

        Raises:
            EmbeddingError: provider failure or a malformed response
        """
        if use_cache:
            cached = self._get_cached(text)
            if cached is not None:
                return cached

        vectors = await self._request([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected 1 embedding, got {len(vectors)}")

        if use_cache:
            self._put_cached(text, vectors[0])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed many texts, in request chunks of `batch_size`, preserving order.
        """
        results: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = list(texts[start:start + self.batch_size])
            vectors = await self._request(chunk)
            if len(vectors) != len(chunk):
                raise EmbeddingError(f"Expected {len(chunk)} embeddings, got {len(vectors)}")
            results.extend(vectors)
        return results

    async def _request(self, inputs: List[str]) -> List[List[float]]:
        if not inputs:
            return []
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=inputs,
                dimensions=self.dimensions,
            )
        except Exception as e:
            logger.warning(
                "embedding_request_failed",
                extra={'error_type': type(e).__name__, 'count': len(inputs)},
            )
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        # The API may return items out of order; `index` ties them back to inputs
        data = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(f"Expected {self.dimensions} dimensions, got {len(vector)}")
        return vectors

    def _get_cached(self, text: str) -> Optional[List[float]]:
        entry = self._cache.get(text)
        if entry is None:
            return None
        vector, stored_at = entry
        if time.monotonic() - stored_at > _CACHE_TTL_SECONDS:
            del self._cache[text]
            return None
        self._cache.move_to_end(text)
        return vector

    def _put_cached(self, text: str, vector: List[float]) -> None:
        while len(self._cache) >= _CACHE_MAX_SIZE:
            self._cache.popitem(last=False)
        self._cache[text] = (vector, time.monotonic())

    def clear_cache(self) -> None:
        self._cache.clear()
