"""
Domain classifier: first, cheap stage of tool selection.

A small model maps the user's query to 1-3 domains. Anything it says that
is not a known domain is discarded; an empty or failed answer falls back to
settings.TOOL_DEFAULT_DOMAINS so retrieval always has somewhere to look.
"""
import logging
from typing import List, Optional

from django.conf import settings

from apps.common.llm_providers import LLMProvider, get_llm_provider
from apps.tools.domains import DOMAIN_DESCRIPTIONS, Domain

from .errors import ClassificationError

logger = logging.getLogger(__name__)

MAX_DOMAINS = 3
CLASSIFIER_MAX_TOKENS = 100


def build_system_prompt() -> str:
    lines = [
        "You are a classifier that categorizes e-commerce admin queries into domains.",
        "",
        "Available domains:",
    ]
    for domain, description in DOMAIN_DESCRIPTIONS.items():
        lines.append(f"- {domain.value}: {description}")
    lines.extend([
        "",
        "Rules:",
        "1. Return 1-3 most relevant domains",
        '2. Return ONLY domain names, comma-separated (e.g., "orders, customers")',
        "3. Most queries need only 1-2 domains",
        "4. Choose based on what data/actions the query requires",
    ])
    return "\n".join(lines)


def build_user_message(query: str) -> str:
    return (
        "Classify this query into 1-3 relevant domains. "
        "Return ONLY the domain names, comma-separated.\n\n"
        f"Query: {query}"
    )


def parse_domains(response: str) -> List[Domain]:
    """
    Parse a comma-separated classifier answer.

    Case-insensitive, unknown names dropped, duplicates collapsed, at most
    three domains in the order given.
    """
    domains: List[Domain] = []
    for part in response.split(","):
        domain = Domain.parse(part)
        if domain is None or domain in domains:
            continue
        domains.append(domain)
        if len(domains) == MAX_DOMAINS:
            break
    return domains


def default_domains() -> List[Domain]:
    parsed = [Domain.parse(name) for name in settings.TOOL_DEFAULT_DOMAINS]
    return [d for d in parsed if d is not None] or [Domain.ORDERS, Domain.CUSTOMERS]


class DomainClassifier:
    """
    Classify a query into retrieval domains.

    Usage:
        classifier = DomainClassifier()
        domains = await classifier.classify("refund order 1001")
    """

    def __init__(self, provider: Optional[LLMProvider] = None):
        self._provider = provider

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider('classifier')
        return self._provider

    async def classify_strict(self, query: str) -> List[Domain]:
        """
        Classify without the fallback.

        Raises:
            ClassificationError: the provider call failed
        """
        try:
            response = await self.provider.generate(
                messages=[{"role": "user", "content": build_user_message(query)}],
                system_prompt=build_system_prompt(),
                max_tokens=CLASSIFIER_MAX_TOKENS,
                temperature=0.0,
            )
        except Exception as e:
            raise ClassificationError(f"Classifier call failed: {e}") from e
        return parse_domains(response or "")

    async def classify(self, query: str) -> List[Domain]:
        """Classify, falling back to the default domains on failure or an empty answer."""
        try:
            domains = await self.classify_strict(query)
        except ClassificationError as e:
            logger.warning("domain_classification_failed", extra={'error': str(e)})
            return default_domains()

        if not domains:
            logger.info("domain_classification_empty")
            return default_domains()

        logger.debug(
            "domains_classified",
            extra={'domains': [d.value for d in domains]},
        )
        return domains
