"""
Data models shared by the engine and its callers.

All models are immutable pydantic models: a SearchDocument indexed into a
generation can never change underneath a reader, and a cached SearchResults
payload is returned to every caller exactly as it was computed.

Field names are snake_case in Python; camelCase aliases (entityId,
updatedAt, ...) are accepted on input so payloads from the content
service validate unchanged.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EntityType(str, Enum):
    ARTICLE = "article"
    DOCUMENT = "document"
    TEMPLATE = "template"
    CASE = "case"
    USER = "user"


_ENTITY_ALIASES = {"knowledge_article": "article"}

SortField = Literal["relevance", "date", "updated", "title", "views", "likes", "size"]
SuggestionType = Literal["term", "fuzzy", "title", "legal"]
InteractionKind = Literal["view", "like", "share", "download"]
RecommendationSource = Literal["content_based", "collaborative", "trending", "popular"]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_metadata_value(value: Any, path: str) -> None:
    """Metadata is a variant: str | int | float | bool | None | list | dict of the same"""
    if value is None or isinstance(value, (str, bool, int, float)):
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_metadata_value(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"metadata key at {path} must be a string, got {type(key).__name__}")
            _check_metadata_value(item, f"{path}.{key}")
        return
    raise ValueError(f"metadata value at {path} has unsupported type {type(value).__name__}")


def metadata_number(metadata: Mapping[str, Any], key: str) -> Optional[float]:
    """Numeric metadata value, or None when absent or not a number (booleans are not numbers)"""
    value = metadata.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def metadata_text(metadata: Mapping[str, Any], key: str) -> Optional[str]:
    """String metadata value, or None when absent or not a string"""
    value = metadata.get(key)
    return value if isinstance(value, str) else None


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class SearchDocument(_Model):
    """A document snapshot as delivered by the content store"""

    id: str = Field(..., min_length=1)
    entity_id: str
    entity_type: EntityType
    title: str = ""
    content: str = ""
    summary: Optional[str] = None
    tags: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    language: str = "auto"
    access_level: str = "public"
    author_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_validator("entity_type", mode="before")
    @classmethod
    def _entity_alias(cls, value):
        if isinstance(value, str):
            return _ENTITY_ALIASES.get(value, value)
        return value

    @field_validator("tags", "categories", mode="before")
    @classmethod
    def _clean_labels(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(str(v).strip() for v in value if str(v).strip())

    @field_validator("metadata")
    @classmethod
    def _check_metadata(cls, value):
        _check_metadata_value(value, "metadata")
        return value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class SortSpec(_Model):
    field: SortField = "relevance"
    order: Literal["asc", "desc"] = "desc"


class Pagination(_Model):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class SearchOptions(_Model):
    fuzzy: bool = False
    min_score: float = Field(default=0.0, ge=0.0)
    max_results: int = Field(default=1000, ge=1)


class QuerySpec(_Model):
    """
    A search request.

    filters maps a dimension (type, categories, tags, accessLevel, language,
    author, mimeType) to the accepted values, plus the range keys
    dateRange {start, end, field} and sizeRange {min, max}. Values are
    validated by the query parser.
    """

    query: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    sort: SortSpec = Field(default_factory=SortSpec)
    pagination: Pagination = Field(default_factory=Pagination)
    options: SearchOptions = Field(default_factory=SearchOptions)
    facets: Optional[List[str]] = None
    language: str = "auto"


class IndexOptions(_Model):
    generate_summary: bool = True
    summary_length: int = Field(default=200, ge=20)


class IndexResult(_Model):
    success: bool
    doc_id: str
    index_time_ms: float
    error: Optional[str] = None
    version: Optional[int] = None


class SearchResult(_Model):
    """One ranked hit with the fields needed to render it"""

    doc_id: str
    score: float
    highlights: List[str] = Field(default_factory=list)
    entity_id: str
    entity_type: EntityType
    title: str
    summary: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    access_level: str
    author_id: Optional[str] = None
    updated_at: datetime


class FacetBucket(_Model):
    value: str
    count: int


class Suggestion(_Model):
    text: str
    score: float
    type: SuggestionType


class SearchResults(_Model):
    query: str
    results: List[SearchResult]
    total: int
    page: int
    limit: int
    facets: Dict[str, List[FacetBucket]] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    took_ms: float
    generation: int


class Interaction(_Model):
    """A user action on a document, supplied by the analytics collaborator"""

    user_id: str
    doc_id: str
    kind: InteractionKind = "view"
    timestamp: datetime
    duration_seconds: Optional[float] = None

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Recommendation(_Model):
    """A recommended document, the source that produced it and why"""

    document: SearchDocument
    score: float
    reason: str
    source: RecommendationSource
