"""
Seed the example-query corpus from YAML.

File format, one entry per tool:

    get_orders:
      domain: orders
      examples:
        - "Show me recent orders"
        - "What orders came in today?"

The whole file is validated before anything is written. Examples already
present for the same (tool, query) pair are skipped, so re-running is safe.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

import yaml
from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import IntegrityError, transaction

from apps.tools.domains import Domain
from apps.tools.registry import ToolCatalog

from .embeddings import EmbeddingClient
from .errors import EmbeddingError, SeedValidationError
from .models import ToolExampleQuery

logger = logging.getLogger(__name__)

DEFAULT_SEED_FILE = Path(__file__).resolve().parent / 'data' / 'tool_examples.yaml'


@dataclass
class ToolExampleConfig:
    domain: str
    examples: List[str]


@dataclass
class SeedResult:
    inserted: int = 0
    skipped: int = 0
    tools_processed: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)


def load_config(path: Union[str, Path]) -> Dict[str, ToolExampleConfig]:
    """
    Read a seed file.

    Raises:
        SeedValidationError: the file is not a mapping of tool -> {domain, examples}
    """
    with open(path, encoding='utf-8') as fh:
        raw = yaml.safe_load(fh) or {}
    return parse_config(raw)


def parse_config(raw) -> Dict[str, ToolExampleConfig]:
    if not isinstance(raw, dict):
        raise SeedValidationError(["Seed file must be a mapping of tool name to {domain, examples}"])

    config: Dict[str, ToolExampleConfig] = {}
    problems: List[str] = []
    for tool_name, entry in raw.items():
        if not isinstance(entry, dict):
            problems.append(f"Entry for '{tool_name}' must be a mapping")
            continue
        examples = entry.get('examples') or []
        if not isinstance(examples, list) or not all(isinstance(e, str) for e in examples):
            problems.append(f"Examples for '{tool_name}' must be a list of strings")
            continue
        config[str(tool_name)] = ToolExampleConfig(
            domain=str(entry.get('domain', '')),
            examples=[e.strip() for e in examples if e.strip()],
        )

    if problems:
        raise SeedValidationError(problems)
    return config


def validate_config(config: Dict[str, ToolExampleConfig]) -> List[str]:
    """Every tool must be in the catalog and every domain must exist and match the tool's."""
    errors = []
    for tool_name, entry in config.items():
        tool = ToolCatalog.get(tool_name)
        if tool is None:
            errors.append(f"Unknown tool: {tool_name}")

        domain = Domain.parse(entry.domain)
        if domain is None:
            errors.append(f"Invalid domain '{entry.domain}' for tool '{tool_name}'")
        elif tool is not None and tool.domain != domain:
            errors.append(
                f"Domain '{entry.domain}' for tool '{tool_name}' does not match its catalog domain '{tool.domain.value}'"
            )
    return errors


@sync_to_async
def _existing_pairs(tool_names: List[str]) -> Set[Tuple[str, str]]:
    return set(
        ToolExampleQuery.objects
        .filter(tool_name__in=tool_names)
        .values_list('tool_name', 'example_query')
    )


@sync_to_async
def _delete_preseeded() -> int:
    deleted, _ = ToolExampleQuery.objects.filter(is_learned=False).delete()
    return deleted


@sync_to_async
def _insert_rows(rows: List[Tuple[str, str, str, List[float]]], result: SeedResult) -> None:
    for tool_name, domain, query, embedding in rows:
        try:
            with transaction.atomic():
                ToolExampleQuery.objects.create(
                    tool_name=tool_name,
                    domain=domain,
                    example_query=query,
                    embedding=embedding,
                    is_learned=False,
                )
        except IntegrityError as e:
            result.errors.append((tool_name, str(e)))
            logger.warning("seed_example_insert_failed", extra={'tool_name': tool_name, 'error': str(e)})
        else:
            result.inserted += 1


async def seed_from_config(
    config: Dict[str, ToolExampleConfig],
    embedder: Optional[EmbeddingClient] = None,
    clear_existing: bool = False,
    batch_size: Optional[int] = None,
    dry_run: bool = False,
) -> SeedResult:
    """
    Embed and insert every new example in `config`.

    With dry_run, nothing is embedded or written; `inserted` counts what
    would have been inserted.

    Raises:
        SeedValidationError: unknown tools or domains (checked before any write)
    """
    problems = validate_config(config)
    if problems:
        raise SeedValidationError(problems)

    batch_size = batch_size or settings.TOOL_EMBEDDING_BATCH_SIZE
    result = SeedResult(tools_processed=len(config))

    if clear_existing and not dry_run:
        deleted = await _delete_preseeded()
        logger.info("seed_cleared_preseeded", extra={'deleted': deleted})

    existing = await _existing_pairs(list(config))
    pending: List[Tuple[str, str, str]] = []
    for tool_name, entry in config.items():
        domain = Domain.parse(entry.domain).value
        for query in entry.examples:
            key = (tool_name, query)
            if key in existing:
                result.skipped += 1
                continue
            existing.add(key)
            pending.append((tool_name, domain, query))

    logger.info(
        "seed_started",
        extra={'tools': len(config), 'new_examples': len(pending), 'skipped': result.skipped, 'dry_run': dry_run},
    )

    if dry_run:
        result.inserted = len(pending)
        return result

    embedder = embedder or EmbeddingClient()
    for start in range(0, len(pending), batch_size):
        batch = pending[start:start + batch_size]
        try:
            vectors = await embedder.embed_batch([query for _, _, query in batch])
        except EmbeddingError as e:
            # Keep going; the failed examples are picked up by the next run
            logger.warning("seed_batch_failed", extra={'batch_start': start, 'error': str(e)})
            result.errors.extend((tool_name, str(e)) for tool_name, _, _ in batch)
            continue

        rows = [(t, d, q, v) for (t, d, q), v in zip(batch, vectors)]
        await _insert_rows(rows, result)

    logger.info(
        "seed_completed",
        extra={
            'inserted': result.inserted,
            'skipped': result.skipped,
            'tools': result.tools_processed,
            'errors': len(result.errors),
        },
    )
    return result


async def seed_from_file(path: Union[str, Path], **kwargs) -> SeedResult:
    return await seed_from_config(load_config(path), **kwargs)
