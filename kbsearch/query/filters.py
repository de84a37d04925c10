"""
Structured filter predicates.

A request's filters compile into an AndFilter of per-dimension predicates:

    {"type": ["article"], "category": "labor", "dateRange": {"start": "2024-01-01"}}
    → AndFilter(Membership(type), Membership(categories), DateRange(date))

Every predicate can report which dimensions a document fails, which is what
the facet aggregator needs: a document counts toward dimension D when it
fails no dimension, or only D itself.

A dateRange on createdAt belongs to the "date" dimension, the one the date
facet buckets. A dateRange on updatedAt is its own "updatedAt" dimension, so
it narrows every facet, the date facet included.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, FrozenSet, List, Mapping, Optional, Tuple

from ..errors import InvalidQuery
from ..models import EntityType, SearchDocument, metadata_number, metadata_text

MEMBERSHIP_DIMENSIONS = ("type", "categories", "tags", "accessLevel", "language", "author", "mimeType")
FACET_DIMENSIONS = MEMBERSHIP_DIMENSIONS + ("date",)

DIMENSION_ALIASES = {
    "entityType": "type",
    "entity_type": "type",
    "category": "categories",
    "tag": "tags",
    "access_level": "accessLevel",
    "authorId": "author",
    "author_id": "author",
    "mime_type": "mimeType",
}

DATE_RANGE_KEYS = ("dateRange", "date_range")
SIZE_RANGE_KEYS = ("sizeRange", "size_range")
DATE_FIELDS = {"createdAt": "created_at", "created_at": "created_at", "updatedAt": "updated_at", "updated_at": "updated_at"}


def canonical_dimension(name: str) -> str:
    """Resolve aliases; raises InvalidQuery for unknown dimensions"""
    dimension = DIMENSION_ALIASES.get(name, name)
    if dimension not in FACET_DIMENSIONS:
        raise InvalidQuery(f"Unknown filter dimension: {name}", dimension=name)
    return dimension


def dimension_values(doc: SearchDocument, dimension: str) -> List[str]:
    """Values a document carries for a dimension (empty if none)"""
    if dimension == "type":
        return [doc.entity_type.value]
    if dimension == "categories":
        return sorted(doc.categories)
    if dimension == "tags":
        return sorted(doc.tags)
    if dimension == "accessLevel":
        return [doc.access_level]
    if dimension == "language":
        return [doc.language]
    if dimension == "author":
        return [doc.author_id] if doc.author_id else []
    if dimension == "mimeType":
        mime = metadata_text(doc.metadata, "mimeType")
        return [mime] if mime else []
    if dimension == "date":
        return [doc.created_at.strftime("%Y-%m")]
    raise InvalidQuery(f"Unknown filter dimension: {dimension}", dimension=dimension)


class Filter:
    """Base predicate"""

    dimension: str

    def matches(self, doc: SearchDocument) -> bool:
        return not self.failing_dimensions(doc)

    def failing_dimensions(self, doc: SearchDocument) -> FrozenSet[str]:
        return frozenset() if self._accepts(doc) else frozenset([self.dimension])

    def _accepts(self, doc: SearchDocument) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class MembershipFilter(Filter):
    """Document has at least one of the values for the dimension"""

    dimension: str
    values: FrozenSet[str]

    def _accepts(self, doc: SearchDocument) -> bool:
        return any(value in self.values for value in dimension_values(doc, self.dimension))


@dataclass(frozen=True)
class DateRangeFilter(Filter):
    """start <= created_at/updated_at <= end (either bound optional)"""

    start: Optional[datetime]
    end: Optional[datetime]
    field: str = "created_at"
    dimension: str = "date"

    def _accepts(self, doc: SearchDocument) -> bool:
        value = getattr(doc, self.field)
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


@dataclass(frozen=True)
class NumericRangeFilter(Filter):
    """min <= metadata[key] <= max; documents without the value never match"""

    key: str
    minimum: Optional[float]
    maximum: Optional[float]
    dimension: str = "size"

    def _accepts(self, doc: SearchDocument) -> bool:
        value = metadata_number(doc.metadata, self.key)
        if value is None:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


@dataclass(frozen=True)
class AndFilter(Filter):
    """Conjunction of predicates; an empty AndFilter accepts everything"""

    children: Tuple[Filter, ...] = ()

    def matches(self, doc: SearchDocument) -> bool:
        return all(child.matches(doc) for child in self.children)

    def failing_dimensions(self, doc: SearchDocument) -> FrozenSet[str]:
        failing = set()
        for child in self.children:
            failing |= child.failing_dimensions(doc)
        return frozenset(failing)

    def without(self, dimension: str) -> "AndFilter":
        """The same filter with every predicate on `dimension` removed"""
        return AndFilter(tuple(c for c in self.children if c.dimension != dimension))

    @property
    def dimensions(self) -> FrozenSet[str]:
        return frozenset(child.dimension for child in self.children)

    def __bool__(self) -> bool:
        return bool(self.children)


def _as_values(dimension: str, raw: Any) -> FrozenSet[str]:
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        raw = [raw]
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise InvalidQuery(f"Filter '{dimension}' expects a value or a list of values", dimension=dimension)

    values = set()
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise InvalidQuery(f"Filter '{dimension}' has an invalid value: {item!r}", dimension=dimension)
        value = str(item).strip()
        if not value:
            continue
        if dimension == "type":
            value = value.lower()
            value = {"knowledge_article": "article"}.get(value, value)
            if value not in EntityType._value2member_map_:
                raise InvalidQuery(f"Unknown entity type: {item}", dimension=dimension)
        values.add(value)
    return frozenset(values)


def _parse_datetime(raw: Any, end_of_day: bool) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip().replace("Z", "+00:00")
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidQuery(f"Unparsable date in dateRange: {raw!r}", dimension="date")
        if len(text) == 10 and end_of_day:
            value = datetime.combine(value.date(), time.max)
    else:
        raise InvalidQuery(f"Unparsable date in dateRange: {raw!r}", dimension="date")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _date_range(raw: Any) -> DateRangeFilter:
    if not isinstance(raw, Mapping):
        raise InvalidQuery("dateRange must be an object with start/end", dimension="date")
    unknown = set(raw) - {"start", "end", "field"}
    if unknown:
        raise InvalidQuery(f"Unknown dateRange keys: {', '.join(sorted(unknown))}", dimension="date")

    field_name = DATE_FIELDS.get(raw.get("field", "createdAt"))
    if field_name is None:
        raise InvalidQuery(f"dateRange field must be createdAt or updatedAt, got {raw.get('field')!r}", dimension="date")

    start = _parse_datetime(raw.get("start"), end_of_day=False)
    end = _parse_datetime(raw.get("end"), end_of_day=True)
    if start is None and end is None:
        raise InvalidQuery("dateRange needs a start or an end", dimension="date")
    if start is not None and end is not None and start > end:
        raise InvalidQuery("dateRange start is after end", dimension="date")
    dimension = "date" if field_name == "created_at" else "updatedAt"
    return DateRangeFilter(start=start, end=end, field=field_name, dimension=dimension)


def _parse_number(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise InvalidQuery(f"Unparsable number in sizeRange: {raw!r}", dimension="size")
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise InvalidQuery(f"Unparsable number in sizeRange: {raw!r}", dimension="size")


def _size_range(raw: Any) -> NumericRangeFilter:
    if not isinstance(raw, Mapping):
        raise InvalidQuery("sizeRange must be an object with min/max", dimension="size")
    unknown = set(raw) - {"min", "max"}
    if unknown:
        raise InvalidQuery(f"Unknown sizeRange keys: {', '.join(sorted(unknown))}", dimension="size")

    minimum = _parse_number(raw.get("min"))
    maximum = _parse_number(raw.get("max"))
    if minimum is None and maximum is None:
        raise InvalidQuery("sizeRange needs a min or a max", dimension="size")
    if minimum is not None and maximum is not None and minimum > maximum:
        raise InvalidQuery("sizeRange min is greater than max", dimension="size")
    return NumericRangeFilter(key="size", minimum=minimum, maximum=maximum)


def build_filter(filters: Mapping[str, Any]) -> AndFilter:
    """
    Compile request filters into a predicate tree.

    Args:
        filters: dimension (or alias) -> value(s), plus dateRange / sizeRange

    Returns:
        AndFilter (empty when no filters are given; empty value lists are ignored)

    Raises:
        InvalidQuery: Unknown dimension, bad value type, unparsable range

    Examples:
        >>> build_filter({"category": ["labor"]}).dimensions
        frozenset({'categories'})
    """
    children: List[Filter] = []
    for key, raw in (filters or {}).items():
        if key in DATE_RANGE_KEYS:
            children.append(_date_range(raw))
        elif key in SIZE_RANGE_KEYS:
            children.append(_size_range(raw))
        else:
            dimension = canonical_dimension(key)
            if dimension == "date":
                raise InvalidQuery("Filter by date with dateRange", dimension=key)
            values = _as_values(dimension, raw)
            if values:
                children.append(MembershipFilter(dimension=dimension, values=values))
    return AndFilter(tuple(children))
