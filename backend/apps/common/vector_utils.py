"""
Vector similarity helpers: pgvector annotations for PostgreSQL and a numpy
implementation for in-process scans.

Similarity is always 1 - cosine distance.
"""
import logging
from typing import List, Sequence

import numpy as np
from pgvector.django import CosineDistance

logger = logging.getLogger(__name__)


def annotate_cosine_distance(queryset, embedding_field: str, query_vector: Sequence[float],
                             min_similarity: float):
    """
    Annotate `distance` and keep rows at or above `min_similarity`, nearest first.

    Args:
        queryset: Django queryset over a model with a VectorField
        embedding_field: Name of the VectorField
        query_vector: The query embedding
        min_similarity: Minimum similarity (cosine distance <= 1 - min_similarity)

    Returns:
        Queryset ordered by ascending distance
    """
    return (
        queryset
        .exclude(**{f'{embedding_field}__isnull': True})
        .annotate(distance=CosineDistance(embedding_field, list(query_vector)))
        .filter(distance__lte=(1 - min_similarity))
        .order_by('distance')
    )


def batch_cosine_similarity(
    query: Sequence[float],
    embeddings: List[Sequence[float]]
) -> np.ndarray:
    """
    Compute cosine similarity between one query and many embeddings.

    Args:
        query: Single query embedding vector
        embeddings: Embedding vectors to compare against (all the same length)

    Returns:
        Numpy array of similarity scores (same order as input)
    """
    if not len(embeddings):
        return np.array([])

    query_vec = np.asarray(query, dtype=np.float64)
    embed_matrix = np.asarray(embeddings, dtype=np.float64)

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return np.zeros(len(embeddings))

    embed_norms = np.linalg.norm(embed_matrix, axis=1)
    embed_norms = np.where(embed_norms == 0, 1, embed_norms)

    return np.dot(embed_matrix, query_vec) / (embed_norms * query_norm)
