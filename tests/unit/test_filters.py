"""
Unit tests for filter compilation and evaluation.
"""

from datetime import datetime, timezone

import pytest

from kbsearch.errors import InvalidQuery
from kbsearch.query.filters import (
    AndFilter,
    DateRangeFilter,
    MembershipFilter,
    NumericRangeFilter,
    build_filter,
    canonical_dimension,
    dimension_values,
)


class TestCanonicalDimension:

    @pytest.mark.parametrize("name,expected", [
        ("category", "categories"),
        ("tag", "tags"),
        ("entityType", "type"),
        ("authorId", "author"),
        ("accessLevel", "accessLevel"),
        ("date", "date"),
    ])
    def test_aliases(self, name, expected):
        assert canonical_dimension(name) == expected

    def test_unknown(self):
        with pytest.raises(InvalidQuery) as exc_info:
            canonical_dimension("colour")
        assert exc_info.value.dimension == "colour"


class TestDimensionValues:

    def test_values(self, doc_factory):
        doc = doc_factory(
            "1", "t", days=40, tags=["b", "a"], author_id="alice",
            metadata={"mimeType": "application/pdf"},
        )
        assert dimension_values(doc, "type") == ["article"]
        assert dimension_values(doc, "tags") == ["a", "b"]
        assert dimension_values(doc, "author") == ["alice"]
        assert dimension_values(doc, "mimeType") == ["application/pdf"]
        assert dimension_values(doc, "date") == ["2025-02"]

    def test_missing_values(self, doc_factory):
        doc = doc_factory("1", "t")
        assert dimension_values(doc, "author") == []
        assert dimension_values(doc, "mimeType") == []
        assert dimension_values(doc, "categories") == []


class TestMembership:

    def test_any_value_matches(self, doc_factory):
        f = build_filter({"categories": ["labor", "tax"]})
        assert f.matches(doc_factory("1", categories=["labor"]))
        assert not f.matches(doc_factory("2", categories=["contract"]))
        assert not f.matches(doc_factory("3"))

    def test_dimensions_are_anded(self, doc_factory):
        f = build_filter({"category": "labor", "type": "template"})
        assert f.matches(doc_factory("1", categories=["labor"], entity_type="template"))
        assert not f.matches(doc_factory("2", categories=["labor"]))

    def test_type_values_normalized(self, doc_factory):
        f = build_filter({"type": ["Knowledge_Article"]})
        assert f.children == (MembershipFilter(dimension="type", values=frozenset({"article"})),)
        assert f.matches(doc_factory("1"))

    def test_empty_values_ignored(self):
        assert not build_filter({"tags": []})
        assert not build_filter({"tags": ["", "  "]})
        assert not build_filter({})

    def test_failing_dimensions(self, doc_factory):
        f = build_filter({"category": "labor", "tag": "劳动"})
        doc = doc_factory("1", categories=["labor"], tags=["模板"])
        assert f.failing_dimensions(doc) == frozenset({"tags"})
        assert f.without("tags").matches(doc)

    @pytest.mark.parametrize("filters", [
        {"type": ["memo"]},
        {"tags": [True]},
        {"tags": [{"nested": 1}]},
        {"tags": {"a": 1}},
        {"date": ["2025-01"]},
    ])
    def test_invalid(self, filters):
        with pytest.raises(InvalidQuery):
            build_filter(filters)


class TestDateRange:

    def test_inclusive_bounds(self, doc_factory):
        f = build_filter({"dateRange": {"start": "2025-01-02", "end": "2025-01-03"}})
        assert not f.matches(doc_factory("1", days=0))
        assert f.matches(doc_factory("2", days=1))
        assert f.matches(doc_factory("3", days=2))
        assert not f.matches(doc_factory("4", days=3))

    def test_date_only_end_covers_whole_day(self):
        (f,) = build_filter({"dateRange": {"end": "2025-01-03"}}).children
        assert f.end == datetime(2025, 1, 3, 23, 59, 59, 999999, tzinfo=timezone.utc)
        assert f.start is None

    def test_updated_at_field(self, doc_factory):
        f = build_filter({"dateRange": {"start": "2025-01-02T00:00:00Z", "field": "updatedAt"}})
        assert f.children[0].field == "updated_at"
        assert f.children[0].dimension == "updatedAt"
        doc = doc_factory("1", days=0, updated_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
        assert f.matches(doc)

    def test_created_at_range_is_the_date_dimension(self):
        (f,) = build_filter({"dateRange": {"start": "2025-01-02", "field": "createdAt"}}).children
        assert f.field == "created_at"
        assert f.dimension == "date"

    def test_naive_datetime_is_utc(self):
        (f,) = build_filter({"dateRange": {"start": datetime(2025, 1, 1)}}).children
        assert f.start.tzinfo == timezone.utc

    @pytest.mark.parametrize("raw", [
        "2025-01-01",
        {"start": "yesterday"},
        {"start": "2025-02-01", "end": "2025-01-01"},
        {},
        {"start": "2025-01-01", "until": "2025-02-01"},
        {"start": "2025-01-01", "field": "publishedAt"},
    ])
    def test_invalid(self, raw):
        with pytest.raises(InvalidQuery) as exc_info:
            build_filter({"dateRange": raw})
        assert exc_info.value.dimension == "date"


class TestSizeRange:

    def test_bounds(self, doc_factory):
        f = build_filter({"sizeRange": {"min": 1000, "max": "2000"}})
        assert f.children == (NumericRangeFilter(key="size", minimum=1000.0, maximum=2000.0),)
        assert f.matches(doc_factory("1", metadata={"size": 1500}))
        assert f.matches(doc_factory("2", metadata={"size": 2000}))
        assert not f.matches(doc_factory("3", metadata={"size": 500}))

    def test_missing_value_never_matches(self, doc_factory):
        f = build_filter({"sizeRange": {"min": 0}})
        assert not f.matches(doc_factory("1"))
        assert not f.matches(doc_factory("2", metadata={"size": "large"}))

    @pytest.mark.parametrize("raw", [{"min": "big"}, {"min": 5, "max": 1}, {}, {"min": True}, [1, 2]])
    def test_invalid(self, raw):
        with pytest.raises(InvalidQuery):
            build_filter({"sizeRange": raw})


class TestAndFilter:

    def test_empty_accepts_everything(self, doc_factory):
        f = AndFilter()
        assert not f
        assert f.matches(doc_factory("1"))
        assert f.dimensions == frozenset()

    def test_without(self):
        f = AndFilter((
            MembershipFilter(dimension="tags", values=frozenset({"a"})),
            DateRangeFilter(start=None, end=datetime(2025, 1, 1, tzinfo=timezone.utc)),
        ))
        assert f.dimensions == frozenset({"tags", "date"})
        assert f.without("date").dimensions == frozenset({"tags"})


class TestPredicateConstruction:
    """Predicates are plain frozen dataclasses"""

    def test_membership_positional_fields(self, doc_factory):
        f = MembershipFilter("tags", frozenset({"劳动"}))
        assert f.dimension == "tags"
        assert f.matches(doc_factory("1", tags=["劳动"]))

    def test_membership_requires_dimension(self):
        with pytest.raises(TypeError):
            MembershipFilter(values=frozenset({"a"}))

    def test_range_dimension_defaults(self):
        assert DateRangeFilter(start=None, end=None).dimension == "date"
        assert NumericRangeFilter(key="size", minimum=1.0, maximum=None).dimension == "size"
        assert AndFilter().children == ()
