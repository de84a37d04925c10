"""
Query parser - turns a QuerySpec into an executable QueryPlan.

Query text:
- Quoted substrings ("...", “...”, 「...」, 『...』) become PhraseClauses that
  require the words at adjacent positions.
- Everything else is tokenized like document text; tokens at the same
  position form one TermClause. Its alternatives are the token itself, the
  shorter dictionary words embedded in it, and the members of its synonym
  group. Distinct clauses are ANDed, alternatives ORed.
- An empty (or whitespace-only) query is a filter-only browse.

Filters compile to an AndFilter (see filters.py). Every validation problem
raises InvalidQuery before anything is executed.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from ..errors import InvalidQuery
from ..models import SearchOptions, SortSpec, QuerySpec
from ..text.lexicon import Lexicon
from ..text.tokenizer import Token, Tokenizer, normalize_text
from .filters import AndFilter, FACET_DIMENSIONS, build_filter, canonical_dimension

logger = logging.getLogger(__name__)

DEFAULT_FACETS = ("type", "categories", "tags", "accessLevel", "date")

_QUOTED = re.compile(r'"([^"]*)"|“([^”]*)”|「([^」]*)」|『([^』]*)』')
_STRAY_QUOTES = re.compile(r'["“”「」『』]')


@dataclass(frozen=True)
class TermClause:
    """One query word; a document matches if it contains any alternative"""

    alternatives: Tuple[str, ...]
    surface: str


@dataclass(frozen=True)
class PhraseClause:
    """
    Words that must occur at the given relative offsets.

    terms holds (term, offset) pairs; offsets keep the gaps left by dropped
    stopwords so "breach of contract" matches "breach of the contract" only
    if the positions line up exactly.
    """

    terms: Tuple[Tuple[str, int], ...]
    surface: str


Clause = Union[TermClause, PhraseClause]


@dataclass(frozen=True)
class QueryPlan:
    """Parsed, validated request"""

    query: str
    clauses: Tuple[Clause, ...]
    filter: AndFilter
    sort: SortSpec
    page: int
    limit: int
    options: SearchOptions
    facets: Tuple[str, ...]
    language: str
    highlight_terms: Tuple[str, ...] = field(default=())

    @property
    def is_browse(self) -> bool:
        """Filter-only request (no query text)"""
        return not self.query.strip()

    @property
    def terms(self) -> Tuple[str, ...]:
        """Every term the plan can match (alternatives and phrase words)"""
        seen: Dict[str, None] = {}
        for clause in self.clauses:
            if isinstance(clause, TermClause):
                for term in clause.alternatives:
                    seen.setdefault(term, None)
            else:
                for term, _ in clause.terms:
                    seen.setdefault(term, None)
        return tuple(seen)


class QueryParser:
    """
    Args:
        tokenizer: Same analyzer the index was built with
        lexicon: Word lists providing synonym groups (default: the tokenizer's)
    """

    def __init__(self, tokenizer: Tokenizer, lexicon: Optional[Lexicon] = None):
        self.tokenizer = tokenizer
        self.lexicon = lexicon or tokenizer.lexicon
        self._synonyms: Dict[str, Dict[str, Tuple[str, ...]]] = {}

    def parse(self, spec: QuerySpec) -> QueryPlan:
        """
        Build a query plan.

        Raises:
            InvalidQuery: On malformed filters, unknown dimensions or facets

        Examples:
            >>> plan = QueryParser(Tokenizer()).parse(QuerySpec(query='"breach of contract" lawyer'))
            >>> [type(c).__name__ for c in plan.clauses]
            ['PhraseClause', 'TermClause']
        """
        query = spec.query or ""
        language = spec.language or "auto"

        clauses: List[Clause] = []
        highlight_terms: List[str] = []

        remainder = []
        cursor = 0
        for match in _QUOTED.finditer(query):
            remainder.append(query[cursor:match.start()])
            cursor = match.end()
            phrase_text = next(g for g in match.groups() if g is not None)
            phrase = self._phrase(phrase_text, language)
            if phrase is not None:
                clauses.append(phrase)
                highlight_terms.append(normalize_text(phrase_text).strip())
        remainder.append(query[cursor:])
        loose_text = _STRAY_QUOTES.sub(" ", " ".join(remainder))

        for clause in self._term_clauses(loose_text, language):
            if clause not in clauses:
                clauses.append(clause)
            highlight_terms.append(clause.surface)

        plan = QueryPlan(
            query=query,
            clauses=tuple(clauses),
            filter=build_filter(spec.filters),
            sort=spec.sort,
            page=spec.pagination.page,
            limit=spec.pagination.limit,
            options=spec.options,
            facets=self._facets(spec.facets),
            language=language,
            highlight_terms=tuple(t for t in dict.fromkeys(highlight_terms) if t),
        )
        logger.debug(f"Parsed query {query!r}: {len(plan.clauses)} clauses, filters={sorted(plan.filter.dimensions)}")
        return plan

    def _term_clauses(self, text: str, language: str) -> List[TermClause]:
        synonyms = self._synonym_map(language)
        clauses = []
        for group in self._by_position(self.tokenizer.tokenize(text, field="query", language=language)):
            primary = group[0]
            alternatives = [t.term for t in group]
            for term in synonyms.get(primary.term, ()):
                if term not in alternatives:
                    alternatives.append(term)
            clauses.append(TermClause(alternatives=tuple(alternatives), surface=primary.surface))
        return clauses

    def _phrase(self, text: str, language: str) -> Optional[PhraseClause]:
        groups = self._by_position(self.tokenizer.tokenize(text, field="query", language=language))
        if not groups:
            return None
        base = groups[0][0].position
        terms = tuple((group[0].term, group[0].position - base) for group in groups)
        return PhraseClause(terms=terms, surface=normalize_text(text).strip())

    @staticmethod
    def _by_position(tokens: List[Token]) -> List[List[Token]]:
        # The segmenter emits the longest word first at each position
        groups: List[List[Token]] = []
        for token in tokens:
            if groups and groups[-1][0].position == token.position:
                groups[-1].append(token)
            else:
                groups.append([token])
        return groups

    def _synonym_map(self, language: str) -> Dict[str, Tuple[str, ...]]:
        cached = self._synonyms.get(language)
        if cached is not None:
            return cached

        mapping: Dict[str, Tuple[str, ...]] = {}
        for group in self.lexicon.synonyms:
            terms = []
            for word in group:
                word_terms = self.tokenizer.terms(word, language=language)
                if len(word_terms) == 1 and word_terms[0] not in terms:
                    terms.append(word_terms[0])
            for term in terms:
                merged = list(mapping.get(term, ()))
                merged.extend(t for t in terms if t != term and t not in merged)
                mapping[term] = tuple(merged)

        self._synonyms[language] = mapping
        return mapping

    @staticmethod
    def _facets(requested: Optional[List[str]]) -> Tuple[str, ...]:
        if requested is None:
            return DEFAULT_FACETS
        facets = []
        for name in requested:
            dimension = canonical_dimension(name)
            if dimension not in FACET_DIMENSIONS:
                raise InvalidQuery(f"Cannot facet on {name}", dimension=name)
            if dimension not in facets:
                facets.append(dimension)
        return tuple(facets)
