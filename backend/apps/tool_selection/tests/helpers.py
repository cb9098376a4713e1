"""
Test doubles for the classifier and embedding stages.
"""
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from django.utils import timezone

from apps.tool_selection.errors import EmbeddingError
from apps.tool_selection.models import EMBEDDING_DIMENSIONS, ToolExampleQuery


def vec(*head: float) -> List[float]:
    """A corpus-sized vector whose leading components are `head`."""
    return list(head) + [0.0] * (EMBEDDING_DIMENSIONS - len(head))


def make_example(tool_name: str, domain: str, query: str, embedding: Sequence[float],
                 minutes_ago: int = 0, **kwargs) -> ToolExampleQuery:
    """Create an example row with a controlled created_at (insertion order)."""
    example = ToolExampleQuery.objects.create(
        tool_name=tool_name,
        domain=domain,
        example_query=query,
        embedding=list(embedding),
        **kwargs,
    )
    created_at = timezone.now() - timedelta(minutes=minutes_ago)
    ToolExampleQuery.objects.filter(pk=example.pk).update(created_at=created_at)
    example.created_at = created_at
    return example


class FakeClassifier:
    def __init__(self, domains):
        self.domains = list(domains)
        self.queries: List[str] = []

    async def classify(self, query):
        self.queries.append(query)
        return list(self.domains)


class FakeEmbedder:
    """
    Maps known texts to vectors; anything else gets `default`.

    With fail=True every call raises EmbeddingError.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None,
                 default: Optional[List[float]] = None, fail: bool = False):
        self.vectors = vectors or {}
        self.default = default if default is not None else vec(1.0)
        self.fail = fail
        self.calls: List[str] = []
        self.batches: List[List[str]] = []

    async def embed(self, text, use_cache=True):
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        return self.vectors.get(text, self.default)

    async def embed_batch(self, texts):
        self.batches.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        return [self.vectors.get(t, self.default) for t in texts]
