"""
Relevance scoring over an index generation.

Formula:
    score(doc) = Σ_term  tf × idf(term) × fieldBoost(term, doc) / lengthNorm(doc)

Where:
    idf(term)     = log(1 + N / (1 + df))
    tf × boost    = Σ_field occurrences_in_field × field_weight
    lengthNorm    = 1 + k × (docLength / avgDocLength - 1),  k in [0, 1)

Clauses:
    TermClause    any alternative matches; matching alternatives add up
    PhraseClause  words at adjacent positions; sum of word scores × phrase bonus
    Distinct clauses are ANDed: a document must satisfy all of them.

Ranking:
    primary sort key (relevance score by default), then updated_at desc,
    then doc_id asc so equal scores always come back in the same order.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..config import SearchConfig
from ..errors import IndexInconsistency
from ..index.generation import IndexGeneration
from ..models import SearchDocument, SortSpec, metadata_number
from ..query.parser import Clause, PhraseClause, QueryPlan, TermClause
from ..utils import edit_distance

logger = logging.getLogger(__name__)

MAX_FUZZY_EXPANSIONS = 10
LEGAL_KEYWORD_BOOST = 1.5

InconsistencyHandler = Callable[[IndexInconsistency], None]


def _sort_value(doc: SearchDocument, field: str, score: float):
    if field == "relevance":
        return score
    if field == "date":
        return doc.created_at
    if field == "updated":
        return doc.updated_at
    if field == "title":
        return doc.title.casefold()
    if field == "views":
        return metadata_number(doc.metadata, "viewCount") or 0.0
    if field == "likes":
        return metadata_number(doc.metadata, "likeCount") or 0.0
    if field == "size":
        return metadata_number(doc.metadata, "size") or 0.0
    raise ValueError(f"Unknown sort field: {field}")


def rank(hits: Iterable[Tuple[SearchDocument, float]], sort: Optional[SortSpec] = None) -> List[Tuple[SearchDocument, float]]:
    """
    Order (document, score) pairs.

    The tie breaks (updated_at desc, doc_id asc) apply whatever the primary
    field and direction are. Missing numeric metadata sorts as 0.
    """
    sort = sort or SortSpec()
    ordered = sorted(hits, key=lambda hit: hit[0].id)
    ordered.sort(key=lambda hit: hit[0].updated_at, reverse=True)
    ordered.sort(key=lambda hit: _sort_value(hit[0], sort.field, hit[1]), reverse=sort.order == "desc")
    return ordered


class Scorer:
    """
    Scores query plans against a generation.

    Args:
        config: Field weights, length damping, phrase bonus, fuzzy distance
        on_inconsistency: Called once per query for every document found in
            postings without a forward entry (the engine queues a repair)
    """

    def __init__(self, config: SearchConfig, on_inconsistency: Optional[InconsistencyHandler] = None):
        self.config = config
        self.on_inconsistency = on_inconsistency

    def length_norm(self, doc_length: int, avg_doc_length: float) -> float:
        if avg_doc_length <= 0:
            return 1.0
        return 1.0 + self.config.length_damping * (doc_length / avg_doc_length - 1.0)

    def term_score(self, generation: IndexGeneration, term: str, doc_id: str) -> float:
        """Contribution of one term to one document (0 if absent)"""
        posting = generation.postings_for(term).get(doc_id)
        forward = generation.forward.get(doc_id)
        if posting is None or forward is None:
            return 0.0
        weighted_tf = posting.weighted_frequency(self.config.field_weights)
        return weighted_tf * generation.idf(term) / self.length_norm(forward.doc_length, generation.avg_doc_length)

    def match(self, plan: QueryPlan, generation: IndexGeneration) -> Dict[str, float]:
        """
        Documents satisfying every clause, with their scores.

        A browse plan (no query text) matches every document with score 0.
        Query text that produced no clauses (only stopwords) matches nothing.
        """
        if plan.is_browse:
            return {doc_id: 0.0 for doc_id in generation.forward}
        if not plan.clauses:
            return {}

        reported: Set[str] = set()
        per_clause = []
        for clause in plan.clauses:
            scores = self._clause_scores(clause, plan, generation, reported)
            if not scores:
                return {}
            per_clause.append(scores)

        per_clause.sort(key=len)
        result = dict(per_clause[0])
        for scores in per_clause[1:]:
            result = {doc_id: total + scores[doc_id] for doc_id, total in result.items() if doc_id in scores}
            if not result:
                break
        return result

    def _clause_scores(
        self,
        clause: Clause,
        plan: QueryPlan,
        generation: IndexGeneration,
        reported: Set[str],
    ) -> Dict[str, float]:
        if isinstance(clause, PhraseClause):
            return self._phrase_scores(clause, generation, reported)

        scores: Dict[str, float] = defaultdict(float)
        for term, factor in self._expand(clause, plan, generation):
            for doc_id in self._consistent_docs(term, generation, reported):
                scores[doc_id] += factor * self.term_score(generation, term, doc_id)
        return dict(scores)

    def _expand(self, clause: TermClause, plan: QueryPlan, generation: IndexGeneration) -> List[Tuple[str, float]]:
        """Alternatives with their weight; unknown terms get fuzzy neighbours when requested"""
        expanded = [(term, 1.0) for term in clause.alternatives]
        if not plan.options.fuzzy or self.config.fuzzy_max_distance <= 0:
            return expanded

        present = {term for term, _ in expanded}
        for term in clause.alternatives:
            if generation.doc_freq(term) > 0:
                continue
            for neighbour, distance in self.fuzzy_neighbours(term, generation):
                if neighbour not in present:
                    present.add(neighbour)
                    expanded.append((neighbour, 1.0 / (1 + distance)))
        return expanded

    def fuzzy_neighbours(self, term: str, generation: IndexGeneration) -> List[Tuple[str, int]]:
        """Vocabulary terms within the configured edit distance, closest and most frequent first"""
        max_distance = self.config.fuzzy_max_distance
        if len(term) <= max_distance:
            return []

        neighbours = []
        for candidate in generation.postings:
            if abs(len(candidate) - len(term)) > max_distance:
                continue
            distance = edit_distance(term, candidate, max_distance)
            if 0 < distance <= max_distance:
                neighbours.append((candidate, distance))

        neighbours.sort(key=lambda item: (item[1], -generation.doc_freq(item[0]), item[0]))
        return neighbours[:MAX_FUZZY_EXPANSIONS]

    def _phrase_scores(self, clause: PhraseClause, generation: IndexGeneration, reported: Set[str]) -> Dict[str, float]:
        term_postings = [(generation.postings_for(term), offset) for term, offset in clause.terms]
        if any(not postings for postings, _ in term_postings):
            return {}

        smallest = min(term_postings, key=lambda item: len(item[0]))[0]
        scores = {}
        for doc_id in smallest:
            if not all(doc_id in postings for postings, _ in term_postings):
                continue
            if not self._is_consistent(doc_id, clause.terms[0][0], generation, reported):
                continue
            if not self._adjacent(doc_id, term_postings):
                continue
            total = sum(self.term_score(generation, term, doc_id) for term, _ in clause.terms)
            scores[doc_id] = total * self.config.phrase_bonus
        return scores

    @staticmethod
    def _adjacent(doc_id: str, term_postings) -> bool:
        first, first_offset = term_postings[0]
        others = [(set(postings[doc_id].positions), offset) for postings, offset in term_postings[1:]]
        for position in first[doc_id].positions:
            base = position - first_offset
            if all(base + offset in positions for positions, offset in others):
                return True
        return False

    def _consistent_docs(self, term: str, generation: IndexGeneration, reported: Set[str]) -> List[str]:
        return [
            doc_id for doc_id in generation.postings_for(term)
            if self._is_consistent(doc_id, term, generation, reported)
        ]

    def _is_consistent(self, doc_id: str, term: str, generation: IndexGeneration, reported: Set[str]) -> bool:
        if doc_id in generation.forward and doc_id in generation.documents:
            return True
        if doc_id not in reported:
            reported.add(doc_id)
            problem = IndexInconsistency(doc_id, term)
            logger.warning(f"{problem}; skipping and scheduling repair")
            if self.on_inconsistency is not None:
                self.on_inconsistency(problem)
        return False


def extract_keywords(
    generation: IndexGeneration,
    doc_id: str,
    legal_keywords: FrozenSet[str],
    count: int = 15,
) -> List[str]:
    """
    Most characteristic terms of an indexed document.

    score(term) = tf / docLength × idf(term), × LEGAL_KEYWORD_BOOST for legal
    keywords. Returns display surfaces, best first (ties by surface).
    """
    forward = generation.forward.get(doc_id)
    if forward is None or count <= 0:
        return []

    scored = []
    for term, tf in forward.normalized_vector().items():
        surface = generation.surfaces.get(term, term)
        score = tf * generation.idf(term)
        if term in legal_keywords or surface in legal_keywords:
            score *= LEGAL_KEYWORD_BOOST
        scored.append((score, surface))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [surface for _, surface in scored[:count]]
