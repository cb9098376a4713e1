"""
Tool Selector: picks the handful of tools offered to the model for a query.

  1. classify the query into 1-3 domains (DomainClassifier)
  2. embed the query and search example queries within those domains
  3. if nothing clears the similarity threshold, fall back to the most used
     tools in those domains, then to the catalog order for the domains

Also owns the learning write path: record_success() turns a confirmed
successful tool call into a learned example.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F

from apps.tools.domains import Domain
from apps.tools.registry import ToolCatalog, ToolDefinition

from .classifier import DomainClassifier
from .embeddings import EmbeddingClient
from .errors import EmbeddingError
from .models import ToolExampleQuery
from .search import get_search_backend, popular_tool_names

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    tools: List[ToolDefinition] = field(default_factory=list)
    domains: List[Domain] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.tools]

    def to_dict(self):
        return {
            'tools': self.tool_names,
            'domains': [d.value for d in self.domains],
            'used_fallback': self.used_fallback,
        }


@sync_to_async
def _insert_learned_example(tool_name: str, domain: str, query: str, embedding) -> bool:
    """Insert a learned row; False if the (tool, query) pair appeared concurrently."""
    try:
        with transaction.atomic():
            ToolExampleQuery.objects.create(
                tool_name=tool_name,
                domain=domain,
                example_query=query,
                embedding=embedding,
                is_learned=True,
                usage_count=1,
            )
        return True
    except IntegrityError:
        return False


async def _increment_usage(tool_name: str, query: str) -> int:
    return await ToolExampleQuery.objects.filter(
        tool_name=tool_name, example_query=query,
    ).aupdate(usage_count=F('usage_count') + 1)


class ToolSelector:
    """
    Usage:
        selector = ToolSelector()
        result = await selector.select("cancel order 1001 and refund it")
        specs = [t.to_spec() for t in result.tools]
    """

    def __init__(
        self,
        classifier: Optional[DomainClassifier] = None,
        embedder: Optional[EmbeddingClient] = None,
        search=None,
        threshold: Optional[float] = None,
    ):
        self.classifier = classifier or DomainClassifier()
        self._embedder = embedder
        self.search = search or get_search_backend()
        self.threshold = settings.TOOL_SIMILARITY_THRESHOLD if threshold is None else threshold

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = EmbeddingClient()
        return self._embedder

    async def select(self, query: str, limit: Optional[int] = None) -> SelectionResult:
        limit = limit or settings.TOOL_SELECTION_LIMIT
        domains = await self.classifier.classify(query)

        try:
            embedding = await self.embedder.embed(query)
        except EmbeddingError as e:
            logger.warning("tool_selection_embedding_failed", extra={'error': str(e)})
            return await self._fallback(domains, limit)

        matches = await self.search.search(embedding, domains, limit, self.threshold)
        tools = ToolCatalog.resolve(m.tool_name for m in matches)

        if not tools:
            return await self._fallback(domains, limit)

        logger.info(
            "tools_selected",
            extra={
                'domains': [d.value for d in domains],
                'tools': [t.name for t in tools],
                'top_similarity': round(matches[0].similarity, 4),
            },
        )
        return SelectionResult(tools=tools, domains=domains, used_fallback=False)

    async def _fallback(self, domains: List[Domain], limit: int) -> SelectionResult:
        """
        Most used tools in the domains first, then the rest of the catalog for
        those domains, so a fresh corpus still yields tools.
        """
        tools = ToolCatalog.resolve(await popular_tool_names(domains, limit))
        seen = {t.name for t in tools}
        for tool in ToolCatalog.in_domains(domains):
            if len(tools) >= limit:
                break
            if tool.name not in seen:
                tools.append(tool)
                seen.add(tool.name)

        logger.info(
            "tools_selected_fallback",
            extra={'domains': [d.value for d in domains], 'tools': [t.name for t in tools]},
        )
        return SelectionResult(tools=tools[:limit], domains=domains, used_fallback=True)

    async def record_success(self, query: str, tool_name: str,
                             domain: Union[Domain, str]) -> None:
        """
        Learn that `query` was served by `tool_name`.

        Repeat pairs bump usage_count; new pairs are embedded and stored as
        learned examples. Never raises for embedding problems: the learning
        event is dropped instead.
        """
        query = (query or "").strip()
        if not query:
            return

        domain_value = domain.value if isinstance(domain, Domain) else str(domain)
        if Domain.parse(domain_value) is None:
            logger.warning(
                "tool_learning_unknown_domain",
                extra={'tool_name': tool_name, 'domain': domain_value},
            )
            return

        if await _increment_usage(tool_name, query):
            logger.debug("tool_example_usage_incremented", extra={'tool_name': tool_name})
            return

        try:
            embedding = await self.embedder.embed(query)
        except EmbeddingError as e:
            logger.warning(
                "tool_learning_dropped",
                extra={'tool_name': tool_name, 'error': str(e)},
            )
            return

        if await _insert_learned_example(tool_name, domain_value, query, embedding):
            logger.info("tool_example_learned", extra={'tool_name': tool_name, 'domain': domain_value})
        else:
            # Lost an insert race for the same pair; count this success on the winner's row
            await _increment_usage(tool_name, query)
