"""
Facet aggregation.

Counts are taken over every text-matched candidate, before the max_results
cap and before pagination. A bucket count can therefore exceed `total`,
which counts the capped result list. For each dimension D the candidate set
is filtered by every dimension EXCEPT D, so a selected category still shows
the counts of its sibling categories:

    filters {categories: [labor]}, facet categories → {labor: 3, template: 2}

Instead of re-running the filter once per dimension, each document's
failing dimensions are computed once: it counts toward D if it fails
nothing, or fails D alone.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Sequence

from .models import FacetBucket, SearchDocument
from .query.filters import AndFilter, dimension_values

logger = logging.getLogger(__name__)


class FacetAggregator:
    """Per-dimension bucket counts with self-exclusion"""

    def __init__(self, limit: int = 50):
        self.limit = limit

    def aggregate(
        self,
        candidates: Iterable[SearchDocument],
        filter: AndFilter,
        dimensions: Sequence[str],
    ) -> Dict[str, List[FacetBucket]]:
        """
        Args:
            candidates: Documents matching the query text (unfiltered)
            filter: The request's filter
            dimensions: Canonical facet dimensions to count

        Returns:
            dimension -> buckets ordered by count desc, then value asc
        """
        if not dimensions:
            return {}

        counters = {dimension: Counter() for dimension in dimensions}
        for doc in candidates:
            failing = filter.failing_dimensions(doc)
            if len(failing) > 1:
                continue
            for dimension in dimensions:
                if failing and dimension not in failing:
                    continue
                counters[dimension].update(dimension_values(doc, dimension))

        return {dimension: self._buckets(counter) for dimension, counter in counters.items()}

    def _buckets(self, counter: Counter) -> List[FacetBucket]:
        ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
        return [FacetBucket(value=value, count=count) for value, count in ordered[:self.limit]]
