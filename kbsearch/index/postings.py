"""Posting and forward-index entries."""

from dataclasses import dataclass
from enum import IntFlag
from typing import Mapping, Tuple


class FieldMask(IntFlag):
    """Fields a term occurred in"""

    NONE = 0
    TITLE = 1
    SUMMARY = 2
    TAGS = 4
    CATEGORIES = 8
    CONTENT = 16

    @classmethod
    def for_field(cls, name: str) -> "FieldMask":
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown indexed field: {name}")


@dataclass(frozen=True)
class Posting:
    """
    Occurrences of one term in one document.

    Attributes:
        doc_id: Document id
        term_frequency: Occurrences across all fields (always >= 1)
        field_mask: Fields the term occurred in
        positions: Sorted token positions (fields are separated by a gap)
        field_frequencies: (field, occurrences) pairs, in field order
    """

    doc_id: str
    term_frequency: int
    field_mask: FieldMask
    positions: Tuple[int, ...]
    field_frequencies: Tuple[Tuple[str, int], ...]

    def __post_init__(self):
        if self.term_frequency < 1:
            raise ValueError(f"Posting for {self.doc_id} must have term_frequency >= 1")

    def weighted_frequency(self, weights: Mapping[str, float]) -> float:
        """tf * fieldBoost: occurrences weighted by the field they occurred in"""
        return sum(count * weights.get(name, 1.0) for name, count in self.field_frequencies)


@dataclass(frozen=True)
class ForwardEntry:
    """
    Per-document term statistics.

    Attributes:
        doc_id: Document id
        doc_length: Number of indexed tokens
        field_lengths: Tokens per field
        term_vector: term -> occurrences
    """

    doc_id: str
    doc_length: int
    field_lengths: Mapping[str, int]
    term_vector: Mapping[str, int]

    def normalized_vector(self) -> dict:
        """Term frequencies divided by document length"""
        if self.doc_length == 0:
            return {}
        return {term: count / self.doc_length for term, count in self.term_vector.items()}
