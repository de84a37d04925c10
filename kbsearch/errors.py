"""Exceptions raised by the search engine."""

from typing import Optional


class SearchEngineError(Exception):
    """Base class for all engine errors"""


class InvalidQuery(SearchEngineError):
    """Malformed query (bad filter, unknown dimension, bad sort)"""

    def __init__(self, message: str, dimension: Optional[str] = None):
        super().__init__(message)
        self.dimension = dimension


class DocumentIndexingFailure(SearchEngineError):
    """Tokenization or field extraction failed for a single document"""

    def __init__(self, doc_id: str, reason: str):
        super().__init__(f"Failed to index document {doc_id}: {reason}")
        self.doc_id = doc_id
        self.reason = reason


class IndexInconsistency(SearchEngineError):
    """A posting references a document with no forward entry"""

    def __init__(self, doc_id: str, term: Optional[str] = None):
        detail = f" (term '{term}')" if term else ""
        super().__init__(f"Posting references unknown document {doc_id}{detail}")
        self.doc_id = doc_id
        self.term = term


class ReindexCancelled(SearchEngineError):
    """Full reindex was interrupted through its cancellation token"""

    def __init__(self, processed: int):
        super().__init__(f"Reindex cancelled after {processed} documents")
        self.processed = processed
