"""Highlight fragments for search results."""

import re
from typing import Iterable, List, Tuple

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"

_WHITESPACE = re.compile(r"\s+")


def _find_matches(text: str, needles: Iterable[str]) -> List[Tuple[int, int]]:
    matches = []
    for needle in needles:
        if not needle:
            continue
        for match in re.finditer(re.escape(needle), text, flags=re.IGNORECASE):
            matches.append((match.start(), match.end()))
    matches.sort()
    return matches


def _merge_overlapping(matches: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    if not matches:
        return []
    merged = [matches[0]]
    for start, end in matches[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def highlight(
    text: str,
    needles: Iterable[str],
    max_fragments: int = 3,
    fragment_length: int = 150,
) -> List[str]:
    """
    Build highlighted fragments around occurrences of the query words.

    Each fragment is a window of roughly fragment_length characters centered
    on a match; every match inside the window is wrapped in <mark> tags.
    Matches already shown in an earlier fragment do not open a new one.

    Args:
        text: Field text (title or content)
        needles: Surface forms of the query words (case-insensitive)
        max_fragments: Maximum number of fragments returned
        fragment_length: Approximate fragment size in characters

    Returns:
        Fragments in document order (empty if nothing matched)

    Examples:
        >>> highlight("The court ruled on the contract.", ["contract"])
        ['The court ruled on the <mark>contract</mark>.']
    """
    if not text:
        return []

    groups = _merge_overlapping(_find_matches(text, set(needles)))
    if not groups:
        return []

    half = fragment_length // 2
    fragments = []
    covered_until = -1

    for start, end in groups:
        if len(fragments) >= max_fragments:
            break
        if end <= covered_until:
            continue

        window_start = max(0, start - half)
        window_end = min(len(text), end + half)

        pieces = []
        cursor = window_start
        for m_start, m_end in groups:
            if m_start < window_start or m_end > window_end:
                continue
            pieces.append(text[cursor:m_start])
            pieces.append(MARK_OPEN + text[m_start:m_end] + MARK_CLOSE)
            cursor = m_end
        pieces.append(text[cursor:window_end])

        fragments.append(_WHITESPACE.sub(" ", "".join(pieces)).strip())
        covered_until = window_end

    return fragments
