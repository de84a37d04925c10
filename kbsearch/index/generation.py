"""
Immutable index generations.

A generation is a complete, versioned snapshot of the inverted index
(term → doc → Posting), the forward index (doc → ForwardEntry) and the
document snapshots it was built from. Generations are never mutated once
built: applying a document change produces a NEW generation that shares
every untouched posting list with its parent (copy on write), so readers
holding the old generation keep a consistent view for as long as they
need it.
"""

import math
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from ..models import SearchDocument
from .postings import ForwardEntry, Posting

_EMPTY: Mapping = MappingProxyType({})


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class DocumentAnalysis:
    """Everything one document contributes to a generation"""

    document: SearchDocument
    postings: Mapping[str, Posting]
    forward: ForwardEntry
    surfaces: Mapping[str, str]


@dataclass(frozen=True)
class IndexGeneration:
    """
    Immutable index snapshot.

    Attributes:
        version: Monotonic generation number (0 = empty index)
        postings: term -> {doc_id -> Posting}
        forward: doc_id -> ForwardEntry
        documents: doc_id -> SearchDocument snapshot
        surfaces: term -> display form (unstemmed) used for suggestions
        total_length: Sum of all forward-entry document lengths
    """

    version: int
    postings: Mapping[str, Mapping[str, Posting]] = field(default_factory=_empty_mapping)
    forward: Mapping[str, ForwardEntry] = field(default_factory=_empty_mapping)
    documents: Mapping[str, SearchDocument] = field(default_factory=_empty_mapping)
    surfaces: Mapping[str, str] = field(default_factory=_empty_mapping)
    total_length: int = 0

    @classmethod
    def empty(cls, version: int = 0) -> "IndexGeneration":
        return cls(version=version)

    @property
    def doc_count(self) -> int:
        return len(self.forward)

    @property
    def avg_doc_length(self) -> float:
        if not self.forward:
            return 0.0
        return self.total_length / len(self.forward)

    def postings_for(self, term: str) -> Mapping[str, Posting]:
        return self.postings.get(term, _EMPTY)

    def doc_freq(self, term: str) -> int:
        return len(self.postings.get(term, _EMPTY))

    def idf(self, term: str) -> float:
        """log(1 + N / (1 + df))"""
        return math.log(1 + self.doc_count / (1 + self.doc_freq(term)))

    @cached_property
    def vocabulary(self) -> List[Tuple[str, str]]:
        """(surface, term) pairs sorted by surface, for prefix lookups"""
        return sorted((surface, term) for term, surface in self.surfaces.items())

    def with_document(self, analysis: DocumentAnalysis, version: int) -> "IndexGeneration":
        """New generation with the document's previous version replaced by `analysis`"""
        return self._edit(analysis.document.id, analysis, version, scan_postings=False)

    def without_document(self, doc_id: str, version: int, scan_postings: bool = False) -> "IndexGeneration":
        """
        New generation without the document.

        scan_postings walks every posting list instead of trusting the forward
        entry; used to clear dangling postings of a doc whose forward entry is
        missing.
        """
        return self._edit(doc_id, None, version, scan_postings=scan_postings)

    def _edit(self, doc_id: str, analysis, version: int, scan_postings: bool) -> "IndexGeneration":
        postings: Dict[str, Mapping[str, Posting]] = dict(self.postings)
        forward = dict(self.forward)
        documents = dict(self.documents)
        surfaces = dict(self.surfaces)
        total_length = self.total_length

        old = forward.pop(doc_id, None)
        documents.pop(doc_id, None)
        if old is not None:
            total_length -= old.doc_length
        stale_terms = list(postings) if scan_postings else (old.term_vector if old else ())

        for term in stale_terms:
            current = postings.get(term)
            if current is None or doc_id not in current:
                continue
            remaining = {d: p for d, p in current.items() if d != doc_id}
            if remaining:
                postings[term] = MappingProxyType(remaining)
            else:
                del postings[term]
                surfaces.pop(term, None)

        if analysis is not None:
            for term, posting in analysis.postings.items():
                updated = dict(postings.get(term, _EMPTY))
                updated[doc_id] = posting
                postings[term] = MappingProxyType(updated)
                surface = analysis.surfaces[term]
                surfaces[term] = min(surfaces.get(term, surface), surface)
            forward[doc_id] = analysis.forward
            documents[doc_id] = analysis.document
            total_length += analysis.forward.doc_length

        return IndexGeneration(
            version=version,
            postings=MappingProxyType(postings),
            forward=MappingProxyType(forward),
            documents=MappingProxyType(documents),
            surfaces=MappingProxyType(surfaces),
            total_length=total_length,
        )


class GenerationAccumulator:
    """
    Mutable staging area for building a generation from scratch.

    Used by full reindexing: documents are added in bulk without the
    per-document copying of IndexGeneration.with_document, then frozen once.
    """

    def __init__(self):
        self._postings: Dict[str, Dict[str, Posting]] = {}
        self._forward: Dict[str, ForwardEntry] = {}
        self._documents: Dict[str, SearchDocument] = {}
        self._surfaces: Dict[str, str] = {}
        self._total_length = 0

    def __len__(self) -> int:
        return len(self._forward)

    def add(self, analysis: DocumentAnalysis) -> None:
        doc_id = analysis.document.id
        if doc_id in self._forward:
            self.discard(doc_id)

        for term, posting in analysis.postings.items():
            self._postings.setdefault(term, {})[doc_id] = posting
            surface = analysis.surfaces[term]
            self._surfaces[term] = min(self._surfaces.get(term, surface), surface)
        self._forward[doc_id] = analysis.forward
        self._documents[doc_id] = analysis.document
        self._total_length += analysis.forward.doc_length

    def discard(self, doc_id: str) -> None:
        old = self._forward.pop(doc_id, None)
        self._documents.pop(doc_id, None)
        if old is None:
            return
        self._total_length -= old.doc_length
        for term in old.term_vector:
            docs = self._postings.get(term)
            if docs is None:
                continue
            docs.pop(doc_id, None)
            if not docs:
                del self._postings[term]
                self._surfaces.pop(term, None)

    def freeze(self, version: int) -> IndexGeneration:
        return IndexGeneration(
            version=version,
            postings=MappingProxyType({t: MappingProxyType(d) for t, d in self._postings.items()}),
            forward=MappingProxyType(dict(self._forward)),
            documents=MappingProxyType(dict(self._documents)),
            surfaces=MappingProxyType(dict(self._surfaces)),
            total_length=self._total_length,
        )
