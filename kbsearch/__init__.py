"""
kb-search: knowledge-base search and ranking engine for mixed Chinese/Latin legal content.

Main entry points:
- KnowledgeSearchEngine: index, search, suggest, recommend
- create_engine: engine configured from KB_SEARCH_* environment variables
- SearchConfig: engine options
"""

from .cancellation import CancellationToken
from .clock import ManualClock, SystemClock
from .config import SearchConfig
from .engine import KnowledgeSearchEngine, create_engine
from .errors import (
    DocumentIndexingFailure,
    IndexInconsistency,
    InvalidQuery,
    ReindexCancelled,
    SearchEngineError,
)
from .models import (
    EntityType,
    IndexOptions,
    IndexResult,
    Interaction,
    QuerySpec,
    Recommendation,
    SearchDocument,
    SearchResult,
    SearchResults,
    Suggestion,
)

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ManualClock",
    "SystemClock",
    "SearchConfig",
    "KnowledgeSearchEngine",
    "create_engine",
    "DocumentIndexingFailure",
    "IndexInconsistency",
    "InvalidQuery",
    "ReindexCancelled",
    "SearchEngineError",
    "EntityType",
    "IndexOptions",
    "IndexResult",
    "Interaction",
    "QuerySpec",
    "Recommendation",
    "SearchDocument",
    "SearchResult",
    "SearchResults",
    "Suggestion",
]
