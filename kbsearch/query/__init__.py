"""
Query parsing: free text to term/phrase clauses, filters to predicates.
"""

from .filters import (
    AndFilter,
    DateRangeFilter,
    FACET_DIMENSIONS,
    MembershipFilter,
    NumericRangeFilter,
    build_filter,
    canonical_dimension,
    dimension_values,
)
from .parser import DEFAULT_FACETS, PhraseClause, QueryParser, QueryPlan, TermClause

__all__ = [
    "AndFilter",
    "DateRangeFilter",
    "FACET_DIMENSIONS",
    "MembershipFilter",
    "NumericRangeFilter",
    "build_filter",
    "canonical_dimension",
    "dimension_values",
    "DEFAULT_FACETS",
    "PhraseClause",
    "QueryParser",
    "QueryPlan",
    "TermClause",
]
