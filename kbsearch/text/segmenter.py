"""
Dictionary-assisted segmentation for CJK runs.

Chinese legal text has no word delimiters, so each CJK run is split by
forward longest match against the legal dictionary:

    劳动合同纠纷 → 劳动合同 (+ embedded 合同) | 纠纷
    合同审查模板 → 合同 | 审查 查模 模板

Characters that match no dictionary word are grouped into runs and emitted
as overlapping bigrams (a lone character is emitted as itself). Bigrams are
what make unknown words searchable: the query side produces the same
bigrams for the same characters.

Dictionary words of three or more characters also emit the shorter
dictionary words they contain, at the same position, so a query for 合同
still matches a document that only mentions 劳动合同.
"""

from typing import Iterable, List, Tuple


class DictionarySegmenter:
    """Forward-longest-match segmenter with bigram fallback"""

    def __init__(self, dictionary: Iterable[str]):
        self._words = frozenset(w for w in dictionary if w)
        self._max_length = max((len(w) for w in self._words), default=1)
        self._embedded_cache = {}

    def __contains__(self, word: str) -> bool:
        return word in self._words

    def segment(self, run: str) -> List[Tuple[str, int]]:
        """
        Segment a run of CJK characters.

        Args:
            run: Contiguous CJK text (no whitespace or punctuation)

        Returns:
            (word, relative_position) pairs in order; embedded dictionary
            words share the position of the word that contains them

        Examples:
            >>> DictionarySegmenter(["合同"]).segment("合同审查")
            [('合同', 0), ('审查', 1)]
        """
        pieces: List[Tuple[str, int]] = []
        position = 0
        pending_start = None
        i = 0

        while i < len(run):
            match = self._longest_match(run, i)
            if match is None:
                if pending_start is None:
                    pending_start = i
                i += 1
                continue

            if pending_start is not None:
                position = self._emit_unmatched(run[pending_start:i], position, pieces)
                pending_start = None

            pieces.append((match, position))
            pieces.extend((word, position) for word in self._embedded(match))
            position += 1
            i += len(match)

        if pending_start is not None:
            self._emit_unmatched(run[pending_start:], position, pieces)

        return pieces

    def _longest_match(self, run: str, start: int):
        longest = min(self._max_length, len(run) - start)
        for length in range(longest, 0, -1):
            candidate = run[start:start + length]
            if candidate in self._words:
                return candidate
        return None

    def _embedded(self, word: str) -> List[str]:
        if len(word) < 3:
            return []
        cached = self._embedded_cache.get(word)
        if cached is not None:
            return cached

        found = []
        for start in range(len(word)):
            for end in range(start + 2, len(word) + 1):
                sub = word[start:end]
                if sub != word and sub in self._words and sub not in found:
                    found.append(sub)
        self._embedded_cache[word] = found
        return found

    @staticmethod
    def _emit_unmatched(chunk: str, position: int, pieces: List[Tuple[str, int]]) -> int:
        if len(chunk) == 1:
            pieces.append((chunk, position))
            return position + 1
        for j in range(len(chunk) - 1):
            pieces.append((chunk[j:j + 2], position))
            position += 1
        return position
