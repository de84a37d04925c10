"""
Autocomplete suggestions.

Sources, in priority order:
1. Document titles containing the typed text (type "title")
2. Indexed words starting with the last typed word, by document frequency
   (type "legal" for legal dictionary words, "term" otherwise)
3. If fewer than `min_prefix_matches` words matched: indexed words within
   the edit distance threshold (type "fuzzy")

Suggestions are deduplicated case-insensitively and carry a coarse score
(two decimals) that clients can sort on.
"""

import bisect
import logging
from typing import List, Optional, Tuple

from .config import SearchConfig
from .index.generation import IndexGeneration
from .models import Suggestion
from .text.tokenizer import normalize_text
from .utils import edit_distance

logger = logging.getLogger(__name__)


class SuggestionEngine:
    """Prefix, fuzzy and title completion over one index generation"""

    def __init__(self, config: SearchConfig):
        self.config = config
        self.lexicon = config.lexicon

    def suggest(self, prefix: str, generation: IndexGeneration, limit: Optional[int] = None) -> List[Suggestion]:
        """
        Args:
            prefix: Partially typed query
            generation: Index snapshot to complete against
            limit: Maximum suggestions (default: configured suggestion limit)

        Returns:
            Suggestions ordered by score (stable within equal scores)
        """
        limit = limit or self.config.suggestion_limit
        typed = normalize_text(prefix).strip()
        if not typed or limit <= 0:
            return []

        head, _, word = typed.rpartition(" ")
        head = f"{head} " if head else ""

        candidates: List[Suggestion] = []
        candidates.extend(self._titles(typed, generation))

        prefix_matches = self._prefix_terms(word, generation)
        candidates.extend(
            self._term_suggestion(head + surface, term, generation) for surface, term in prefix_matches
        )
        if len(prefix_matches) < self.config.min_prefix_matches:
            candidates.extend(
                Suggestion(text=head + surface, score=round(0.4 - 0.1 * distance, 2), type="fuzzy")
                for surface, _, distance in self._fuzzy_terms(word, generation)
            )

        seen = set()
        unique = []
        for suggestion in sorted(candidates, key=lambda s: -s.score):
            key = suggestion.text.casefold()
            if key in seen or key == typed:
                continue
            seen.add(key)
            unique.append(suggestion)
            if len(unique) >= limit:
                break

        logger.debug(f"Suggestions for {prefix!r}: {len(unique)}")
        return unique

    def _titles(self, typed: str, generation: IndexGeneration) -> List[Suggestion]:
        matches = []
        for doc in generation.documents.values():
            title = normalize_text(doc.title)
            if title.startswith(typed):
                matches.append((1.0, doc.title))
            elif typed in title:
                matches.append((0.8, doc.title))
        matches.sort(key=lambda item: (-item[0], item[1]))
        return [Suggestion(text=title, score=score, type="title") for score, title in matches]

    def _prefix_terms(self, word: str, generation: IndexGeneration) -> List[Tuple[str, str]]:
        if not word:
            return []
        vocabulary = generation.vocabulary
        start = bisect.bisect_left(vocabulary, (word, ""))
        matches = []
        for surface, term in vocabulary[start:]:
            if not surface.startswith(word):
                break
            matches.append((surface, term))
        matches.sort(key=lambda item: (-generation.doc_freq(item[1]), item[0]))
        return matches

    def _term_suggestion(self, text: str, term: str, generation: IndexGeneration) -> Suggestion:
        share = generation.doc_freq(term) / generation.doc_count if generation.doc_count else 0.0
        surface = text.rpartition(" ")[2]
        if surface in self.lexicon.dictionary or surface in self.lexicon.legal_keywords:
            return Suggestion(text=text, score=round(0.6 + 0.3 * share, 2), type="legal")
        return Suggestion(text=text, score=round(0.5 + 0.3 * share, 2), type="term")

    def _fuzzy_terms(self, word: str, generation: IndexGeneration) -> List[Tuple[str, str, int]]:
        max_distance = self.config.fuzzy_max_distance
        if len(word) <= max_distance:
            return []

        matches = []
        for surface, term in generation.vocabulary:
            if surface.startswith(word):
                continue
            distance = edit_distance(word, surface, max_distance)
            if len(surface) > len(word):
                distance = min(distance, edit_distance(word, surface[:len(word)], max_distance))
            if distance <= max_distance:
                matches.append((surface, term, distance))

        matches.sort(key=lambda item: (item[2], -generation.doc_freq(item[1]), item[0]))
        return matches[:self.config.suggestion_limit]
