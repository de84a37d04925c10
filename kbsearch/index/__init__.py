"""
Inverted/forward index with immutable, versioned generations.

Components:
- postings: Posting, ForwardEntry, FieldMask
- generation: IndexGeneration snapshots (copy on write)
- store: DocumentStoreAdapter read-through snapshot cache
- builder: IndexBuilder, the single writer publishing generations
"""

from .postings import FieldMask, ForwardEntry, Posting
from .generation import DocumentAnalysis, GenerationAccumulator, IndexGeneration
from .store import DocumentStoreAdapter, canonical_fields
from .builder import FIELD_POSITION_GAP, IndexBuilder, ReindexReport

__all__ = [
    "FieldMask",
    "ForwardEntry",
    "Posting",
    "DocumentAnalysis",
    "GenerationAccumulator",
    "IndexGeneration",
    "DocumentStoreAdapter",
    "canonical_fields",
    "FIELD_POSITION_GAP",
    "IndexBuilder",
    "ReindexReport",
]
