"""Utility functions for the search engine"""

import hashlib
import json
import re
from datetime import date, datetime
from typing import Any, Optional

_SENTENCE_SPLIT = re.compile(r"[。！？.!?]")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def stable_hash(payload: Any) -> str:
    """
    Calculate SHA256 hash of a JSON-compatible payload

    Keys are sorted and sets are serialized as sorted lists, so two payloads
    that are equal as values always produce the same digest.

    Args:
        payload: dict/list/scalar structure (datetimes and sets allowed)

    Returns:
        Hexadecimal hash string (64 characters)

    Examples:
        >>> stable_hash({"b": 1, "a": {2, 1}}) == stable_hash({"a": [1, 2], "b": 1})
        True
    """
    content = json.dumps(
        payload,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=_json_default,
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def edit_distance(word1: str, word2: str, max_distance: Optional[int] = None) -> int:
    """
    Levenshtein distance between two words.

    When max_distance is given the computation stops as soon as every cell
    in a row exceeds it and returns max_distance + 1.
    """
    if len(word1) < len(word2):
        word1, word2 = word2, word1

    if max_distance is not None and len(word1) - len(word2) > max_distance:
        return max_distance + 1

    if len(word2) == 0:
        return len(word1)

    previous_row = list(range(len(word2) + 1))
    for i, c1 in enumerate(word1):
        current_row = [i + 1]
        for j, c2 in enumerate(word2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        if max_distance is not None and min(current_row) > max_distance:
            return max_distance + 1
        previous_row = current_row

    return previous_row[-1]


def summarize(content: str, max_length: int = 200) -> str:
    """
    Build a short extractive summary from the leading sentences.

    Sentences are appended while the summary stays within max_length
    (at most three). Chinese and Latin sentence terminators both split.
    """
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(content or "") if s.strip()]
    if not sentences:
        return ""

    summary = sentences[0][:max_length]
    for sentence in sentences[1:3]:
        if len(summary) + len(sentence) + 1 > max_length:
            break
        summary += "。" + sentence

    return summary + "。"
