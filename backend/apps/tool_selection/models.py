"""
Retrieval corpus for tool selection.
"""
from django.db import models
from pgvector.django import VectorField

from apps.common.models import TimestampedModel, UUIDModel
from apps.tools.domains import Domain

# Fixed for the lifetime of a corpus; changing it means re-embedding every row
EMBEDDING_DIMENSIONS = 1536


class ToolExampleQuery(UUIDModel, TimestampedModel):
    """
    An example query known to be served by a tool.

    Pre-seeded rows have is_learned=False; rows added after a confirmed
    successful tool call have is_learned=True. Repeat successes for the same
    (tool_name, example_query) bump usage_count instead of adding a row.
    """
    tool_name = models.CharField(max_length=100, db_index=True)
    domain = models.CharField(
        max_length=32,
        choices=[(d.value, d.value) for d in Domain],
        db_index=True,
    )
    example_query = models.TextField()
    embedding = VectorField(dimensions=EMBEDDING_DIMENSIONS)
    is_learned = models.BooleanField(default=False)
    usage_count = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['tool_name', 'example_query'],
                name='unique_tool_example_query',
            ),
        ]
        indexes = [
            models.Index(fields=['domain', 'tool_name'], name='tool_example_domain_tool_idx'),
        ]

    def __str__(self):
        return f"{self.tool_name}: {self.example_query[:50]}"
