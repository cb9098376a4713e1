"""
Tests for the OpenAI embedding client wrapper.
"""
import asyncio
from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import AsyncMock, MagicMock

from apps.tool_selection.embeddings import EmbeddingClient
from apps.tool_selection.errors import EmbeddingError

from .helpers import vec


def _response(*vectors, order=None):
    items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    if order is not None:
        items = [items[i] for i in order]
    return SimpleNamespace(data=items)


def _client(*responses, error=None):
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=error or list(responses))
    return client


class EmbeddingClientTest(TestCase):

    def test_embed_sends_model_and_dimensions(self):
        client = _client(_response(vec(0.1, 0.2)))
        embedder = EmbeddingClient(client=client, model="text-embedding-3-small")

        vector = asyncio.run(embedder.embed("show me recent orders"))

        self.assertEqual(vector[:2], [0.1, 0.2])
        kwargs = client.embeddings.create.await_args.kwargs
        self.assertEqual(kwargs['model'], "text-embedding-3-small")
        self.assertEqual(kwargs['dimensions'], 1536)
        self.assertEqual(kwargs['input'], ["show me recent orders"])

    def test_repeat_query_is_cached(self):
        client = _client(_response(vec(1.0)))
        embedder = EmbeddingClient(client=client)

        async def run():
            first = await embedder.embed("same text")
            second = await embedder.embed("same text")
            return first, second

        first, second = asyncio.run(run())
        self.assertEqual(first, second)
        self.assertEqual(client.embeddings.create.await_count, 1)

    def test_cache_can_be_bypassed(self):
        client = _client(_response(vec(1.0)), _response(vec(0.5)))
        embedder = EmbeddingClient(client=client)

        async def run():
            await embedder.embed("same text")
            return await embedder.embed("same text", use_cache=False)

        self.assertEqual(asyncio.run(run())[0], 0.5)

    def test_wrong_dimension_is_rejected(self):
        client = _client(_response([0.1, 0.2, 0.3]))
        with self.assertRaises(EmbeddingError):
            asyncio.run(EmbeddingClient(client=client).embed("short vector"))

    def test_provider_failure_is_embedding_error(self):
        client = _client(error=RuntimeError("connection reset"))
        with self.assertRaises(EmbeddingError):
            asyncio.run(EmbeddingClient(client=client).embed("anything"))

    def test_batch_is_chunked_and_ordered(self):
        client = _client(
            _response(vec(1.0), vec(2.0), order=[1, 0]),
            _response(vec(3.0), vec(4.0)),
            _response(vec(5.0)),
        )
        embedder = EmbeddingClient(client=client, batch_size=2)

        vectors = asyncio.run(embedder.embed_batch(["a", "b", "c", "d", "e"]))

        self.assertEqual([v[0] for v in vectors], [1.0, 2.0, 3.0, 4.0, 5.0])
        self.assertEqual(client.embeddings.create.await_count, 3)

    def test_batch_count_mismatch(self):
        client = _client(_response(vec(1.0)))
        with self.assertRaises(EmbeddingError):
            asyncio.run(EmbeddingClient(client=client).embed_batch(["a", "b"]))

    def test_empty_batch_makes_no_request(self):
        client = _client()
        self.assertEqual(asyncio.run(EmbeddingClient(client=client).embed_batch([])), [])
        client.embeddings.create.assert_not_awaited()
