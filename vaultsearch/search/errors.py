"""Exceptions raised by the search pipeline.

Retrieval and enhancement failures are recovered inside the pipeline and
only logged. ``VectorDimensionMismatch`` signals a misconfigured embedding
model and always propagates to the caller.
"""

from __future__ import annotations


class SearchError(Exception):
    """A search could not be completed."""


class FilterError(SearchError):
    """Structural filters are invalid (e.g. ``date_from`` after ``date_to``)."""


class RecordNotFoundError(SearchError):
    """The requested record does not exist in the caller's scope."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class IndexingError(SearchError):
    """Record vectors could not be read or written."""


class RetrievalError(Exception):
    """A single retrieval strategy failed."""

    def __init__(self, strategy: str, message: str) -> None:
        super().__init__(f"{strategy} retrieval failed: {message}")
        self.strategy = strategy


class EnhancementError(Exception):
    """Query enhancement via the language service failed."""


class VectorDimensionMismatch(ValueError):
    """Two vectors of different dimensions were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimension mismatch: {left} != {right}")
        self.left = left
        self.right = right
