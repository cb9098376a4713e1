"""
Similarity search over the example-query corpus.

Two interchangeable backends, chosen by settings.TOOL_SEARCH_BACKEND:

  pgvector  cosine distance computed in PostgreSQL
  numpy     rows loaded for the domains, cosine computed in-process

Both return one hit per tool (its best example), similarity >= threshold,
best first, ties in insertion order.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from django.conf import settings
from django.db.models import Max

from apps.common.vector_utils import annotate_cosine_distance, batch_cosine_similarity
from apps.tools.domains import Domain

from .models import ToolExampleQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolMatch:
    tool_name: str
    domain: str
    similarity: float


def _domain_values(domains: Iterable[Domain]) -> List[str]:
    return [d.value if isinstance(d, Domain) else str(d) for d in domains]


class PgVectorSearch:
    """Nearest examples by pgvector cosine distance."""

    async def search(self, embedding: Sequence[float], domains: Iterable[Domain],
                     limit: int, threshold: float) -> List[ToolMatch]:
        queryset = annotate_cosine_distance(
            ToolExampleQuery.objects.filter(domain__in=_domain_values(domains)),
            'embedding',
            embedding,
            threshold,
        ).order_by('distance', 'created_at', 'id')

        matches: Dict[str, ToolMatch] = {}
        async for row in queryset.values('tool_name', 'domain', 'distance').aiterator():
            if row['tool_name'] in matches:
                continue
            matches[row['tool_name']] = ToolMatch(
                tool_name=row['tool_name'],
                domain=row['domain'],
                similarity=1.0 - float(row['distance']),
            )
            if len(matches) >= limit:
                break
        return list(matches.values())


class NumpySearch:
    """Cosine similarity over the in-domain rows, computed with numpy."""

    async def search(self, embedding: Sequence[float], domains: Iterable[Domain],
                     limit: int, threshold: float) -> List[ToolMatch]:
        rows = [
            row async for row in ToolExampleQuery.objects
            .filter(domain__in=_domain_values(domains))
            .order_by('created_at', 'id')
            .values_list('tool_name', 'domain', 'embedding')
        ]
        if not rows:
            return []

        scores = batch_cosine_similarity(embedding, [row[2] for row in rows])

        best: Dict[str, ToolMatch] = {}
        for (tool_name, domain, _), score in zip(rows, scores):
            score = float(score)
            if score < threshold:
                continue
            current = best.get(tool_name)
            if current is None or score > current.similarity:
                best[tool_name] = ToolMatch(tool_name=tool_name, domain=domain, similarity=score)

        # dict order is first-insertion order, so sorted() keeps ties stable
        ranked = sorted(best.values(), key=lambda m: m.similarity, reverse=True)
        return ranked[:limit]


async def popular_tool_names(domains: Iterable[Domain], limit: int) -> List[str]:
    """Distinct tool names in `domains`, most used first."""
    queryset = (
        ToolExampleQuery.objects
        .filter(domain__in=_domain_values(domains))
        .values('tool_name')
        .annotate(max_usage=Max('usage_count'))
        .order_by('-max_usage', 'tool_name')
    )
    return [row['tool_name'] async for row in queryset[:limit]]


_BACKENDS = {
    'pgvector': PgVectorSearch,
    'numpy': NumpySearch,
}


def get_search_backend(name: str = None):
    name = name or settings.TOOL_SEARCH_BACKEND
    try:
        return _BACKENDS[name]()
    except KeyError:
        raise ValueError(f"Unknown tool search backend: {name}")
