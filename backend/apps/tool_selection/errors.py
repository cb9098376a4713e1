"""
Tool selection errors.

The selector degrades instead of raising on classifier/embedder failures;
these surface from the individual stages and from seeding.
"""
from typing import List


class SelectionError(Exception):
    """Base class for tool selection failures."""


class ClassificationError(SelectionError):
    """The domain classifier call failed."""


class EmbeddingError(SelectionError):
    """The embedding provider call failed or returned an unusable vector."""


class SeedValidationError(SelectionError):
    """The seed file references unknown tools or domains; nothing was written."""

    def __init__(self, problems: List[str]):
        super().__init__("; ".join(problems))
        self.problems = problems
