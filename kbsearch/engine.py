"""
Knowledge-base search engine facade.

One engine instance owns one index (and its cache, scheduler jobs and
recommendation profiles). Every collaborator is injected so tests build
isolated engines with a ManualClock:

    engine = KnowledgeSearchEngine(config=SearchConfig(), clock=ManualClock())
    engine.index(doc)
    results = engine.search({"query": "合同", "facets": ["categories"]})

Read path (search):
    QuerySpec → QueryParser → cache lookup → Scorer.match → min_score
    → FacetAggregator (pre-filter candidates) → filter → rank → max_results
    → page → highlights → SearchResults (cached against the generation)
"""

import logging
import time
from typing import Any, AsyncIterable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .cache import QueryCache, cache_key
from .cancellation import CancellationToken
from .clock import SystemClock
from .config import SearchConfig
from .errors import InvalidQuery
from .facets import FacetAggregator
from .index.builder import IndexBuilder, ReindexReport
from .index.generation import IndexGeneration
from .index.store import DocumentStoreAdapter
from .models import (
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
from .query.parser import QueryParser, QueryPlan
from .ranking.scorer import Scorer, extract_keywords, rank
from .recommend import InteractionLog, RecommendationEngine
from .scheduler import MaintenanceScheduler
from .suggest import SuggestionEngine
from .text.highlight import highlight
from .text.tokenizer import Tokenizer

logger = logging.getLogger(__name__)


class KnowledgeSearchEngine:
    """
    Search, autocomplete and recommendations over one in-memory index.

    Args:
        config: Engine options (default: built-in defaults)
        tokenizer: Analyzer shared by indexing and queries (default: built from config.lexicon)
        store: Document snapshot cache (default: empty adapter without loader)
        clock: Time source for cache expiry, recency decay and scheduling
        interactions: Interaction history provider for recommendations
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        tokenizer: Optional[Tokenizer] = None,
        store: Optional[DocumentStoreAdapter] = None,
        clock=None,
        interactions: Optional[InteractionLog] = None,
    ):
        self.config = config or SearchConfig()
        self.tokenizer = tokenizer or Tokenizer(self.config.lexicon)
        self.store = store if store is not None else DocumentStoreAdapter()
        self.clock = clock or SystemClock()
        self.interactions = interactions or InteractionLog()

        self.builder = IndexBuilder(self.tokenizer, self.store, batch_size=self.config.reindex_batch_size)
        self.parser = QueryParser(self.tokenizer, self.config.lexicon)
        self.scorer = Scorer(self.config, on_inconsistency=lambda problem: self.builder.schedule_repair(problem.doc_id))
        self.facets = FacetAggregator(limit=self.config.facet_limit)
        self.suggester = SuggestionEngine(self.config)
        self.recommender = RecommendationEngine(self.config, self.interactions, self.clock)
        self.cache = QueryCache(self.config.cache_capacity, self.config.cache_ttl_seconds, self.clock)

    @property
    def generation(self) -> IndexGeneration:
        """The current index generation"""
        return self.builder.current

    # ---- write path -----------------------------------------------------

    def index(self, doc: Union[SearchDocument, Mapping[str, Any]], opts: Optional[IndexOptions] = None) -> IndexResult:
        """Index or replace a document (failures are reported, not raised)"""
        return self.builder.index(doc, opts)

    def remove(self, doc_id: str) -> bool:
        return self.builder.remove(doc_id)

    async def reindex_all(
        self,
        source: Union[Iterable[Any], AsyncIterable[Any]],
        token: Optional[CancellationToken] = None,
        batch_size: Optional[int] = None,
    ) -> ReindexReport:
        """Rebuild the index from a (possibly async) document source; see IndexBuilder.reindex_all"""
        return await self.builder.reindex_all(source, token=token, batch_size=batch_size)

    # ---- read path ------------------------------------------------------

    def search(self, spec: Union[QuerySpec, Mapping[str, Any]]) -> SearchResults:
        """
        Run a search.

        Args:
            spec: QuerySpec or an equivalent mapping (camelCase keys accepted)

        Returns:
            SearchResults; identical specs against the same generation return
            the same cached payload

        Raises:
            InvalidQuery: Malformed spec, filter, facet or sort
        """
        start = time.perf_counter()
        spec = self._coerce_spec(spec)
        plan = self.parser.parse(spec)
        generation = self.builder.current

        key = cache_key(spec)
        cached = self.cache.get(key, generation.version)
        if cached is not None:
            return cached

        scores = self.scorer.match(plan, generation)
        if not plan.is_browse and plan.options.min_score > 0:
            scores = {doc_id: score for doc_id, score in scores.items() if score >= plan.options.min_score}

        candidates = [generation.documents[doc_id] for doc_id in scores]
        facets = self.facets.aggregate(candidates, plan.filter, plan.facets)

        hits = [(doc, scores[doc.id]) for doc in candidates if plan.filter.matches(doc)]
        ranked = rank(hits, plan.sort)[:plan.options.max_results]

        offset = (plan.page - 1) * plan.limit
        page = [self._result(doc, score, plan) for doc, score in ranked[offset:offset + plan.limit]]

        suggestions: List[str] = []
        if not plan.is_browse:
            suggestions = [s.text for s in self.suggester.suggest(plan.query, generation)]

        took_ms = round((time.perf_counter() - start) * 1000, 3)
        results = SearchResults(
            query=plan.query,
            results=page,
            total=len(ranked),
            page=plan.page,
            limit=plan.limit,
            facets=facets,
            suggestions=suggestions,
            took_ms=took_ms,
            generation=generation.version,
        )
        self.cache.put(key, results, generation.version)

        logger.info(
            f"Search {plan.query!r}: {results.total} results, page {plan.page}, "
            f"{took_ms:.1f}ms (generation v{generation.version})"
        )
        return results

    def _coerce_spec(self, spec: Union[QuerySpec, Mapping[str, Any]]) -> QuerySpec:
        if isinstance(spec, QuerySpec):
            return spec
        if not isinstance(spec, Mapping):
            raise InvalidQuery(f"Query must be a QuerySpec or a mapping, got {type(spec).__name__}")
        try:
            return QuerySpec.model_validate(spec)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise InvalidQuery(f"Invalid query field {location}: {first['msg']}", dimension=location) from e

    def _result(self, doc: SearchDocument, score: float, plan: QueryPlan) -> SearchResult:
        highlights: List[str] = []
        if plan.highlight_terms:
            limit = self.config.highlight_fragments
            length = self.config.highlight_fragment_length
            for text in (doc.title, doc.summary or "", doc.content):
                if len(highlights) >= limit:
                    break
                highlights.extend(highlight(text, plan.highlight_terms, limit - len(highlights), length))

        return SearchResult(
            doc_id=doc.id,
            score=round(score, 6),
            highlights=highlights,
            entity_id=doc.entity_id,
            entity_type=doc.entity_type,
            title=doc.title,
            summary=doc.summary,
            tags=sorted(doc.tags),
            categories=sorted(doc.categories),
            access_level=doc.access_level,
            author_id=doc.author_id,
            updated_at=doc.updated_at,
        )

    def suggest(self, prefix: str, limit: Optional[int] = None) -> List[Suggestion]:
        return self.suggester.suggest(prefix, self.builder.current, limit)

    def recommend(self, user_id: str, current_doc_id: Optional[str] = None, limit: int = 10) -> List[SearchDocument]:
        """Documents for the user; never includes current_doc_id"""
        return self.recommender.recommend(user_id, self.builder.current, current_doc_id, limit)

    def recommendations(self, user_id: str, current_doc_id: Optional[str] = None, limit: int = 10) -> List[Recommendation]:
        """recommend() with the score, reason and source of every document"""
        return self.recommender.recommendations(user_id, self.builder.current, current_doc_id, limit)

    def keywords(self, doc_id: str, count: int = 15) -> List[str]:
        """TF-IDF keywords of an indexed document, legal keywords boosted (empty if not indexed)"""
        return extract_keywords(self.builder.current, doc_id, self.config.lexicon.legal_keywords, count)

    def record_interaction(self, interaction: Union[Interaction, Mapping[str, Any]]) -> Interaction:
        """Add a user interaction to the history (timestamp defaults to now)"""
        if not isinstance(interaction, Interaction):
            data = dict(interaction)
            data.setdefault("timestamp", self.clock.now())
            interaction = Interaction.model_validate(data)
        self.interactions.record(interaction)
        self.recommender.invalidate(interaction.user_id)
        return interaction

    # ---- operations -----------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        generation = self.builder.current
        return {
            "generation": generation.version,
            "documents": generation.doc_count,
            "terms": len(generation.postings),
            "avg_doc_length": round(generation.avg_doc_length, 2),
            "reindexing": self.builder.reindexing,
            "pending_repairs": self.builder.pending_repairs,
            "cache": self.cache.stats,
        }

    def build_scheduler(self) -> MaintenanceScheduler:
        """Scheduler with the engine's maintenance jobs (cache purge, profile reset, repairs)"""
        scheduler = MaintenanceScheduler(self.clock)
        scheduler.add_job(
            "cache-purge",
            self.config.cache_purge_interval_seconds,
            lambda: self.cache.purge_expired(self.builder.version),
        )
        scheduler.add_job("profile-reset", self.config.profile_ttl_seconds, self.recommender.reset_profiles)
        scheduler.add_job("index-repair", self.config.repair_interval_seconds, self.builder.run_repairs)
        return scheduler


def create_engine(env_dir=None, **kwargs) -> KnowledgeSearchEngine:
    """Engine configured from KB_SEARCH_* environment variables (.env.local / .env)"""
    config = SearchConfig.from_env(env_dir)
    engine = KnowledgeSearchEngine(config=config, **kwargs)
    logger.info("Knowledge search engine created")
    return engine
