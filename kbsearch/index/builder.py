"""
Index builder - turns document snapshots into published index generations.

Write path:
    SearchDocument → analyze() → DocumentAnalysis → new IndexGeneration → swap

All mutations (index, remove, the final swap of reindex_all, repairs) are
serialized through a single writer lock. Readers never take the lock: they
read `current` once and work against that immutable generation.

Positions: every field starts FIELD_POSITION_GAP positions after the last
token of the previous field, and every tag/category value VALUE_POSITION_GAP
after the previous value, so phrase adjacency never spans a field boundary.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from pydantic import ValidationError

from ..cancellation import CancellationToken
from ..config import INDEXED_FIELDS
from ..errors import DocumentIndexingFailure, SearchEngineError
from ..models import IndexOptions, IndexResult, SearchDocument
from ..text.tokenizer import Tokenizer, detect_language
from ..utils import summarize
from .generation import DocumentAnalysis, GenerationAccumulator, IndexGeneration
from .postings import FieldMask, ForwardEntry, Posting
from .store import DocumentStoreAdapter, canonical_fields

logger = logging.getLogger(__name__)

FIELD_POSITION_GAP = 100
VALUE_POSITION_GAP = 10

DocumentSource = Union[Iterable[Any], Any]


@dataclass
class ReindexReport:
    """Outcome of a full rebuild"""

    version: int
    indexed: int = 0
    failed: List[str] = field(default_factory=list)
    replayed: int = 0
    took_ms: float = 0.0


def _coerce(doc: Union[SearchDocument, Mapping[str, Any]]) -> SearchDocument:
    if isinstance(doc, SearchDocument):
        return doc
    try:
        return SearchDocument.model_validate(doc)
    except ValidationError as e:
        doc_id = doc.get("id", "<unknown>") if isinstance(doc, Mapping) else "<unknown>"
        raise DocumentIndexingFailure(str(doc_id), f"invalid document: {e.error_count()} validation errors")


async def _iterate(source: DocumentSource) -> AsyncIterator[Any]:
    if hasattr(source, "__aiter__"):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item


class IndexBuilder:
    """
    Single writer for index generations.

    Args:
        tokenizer: Analyzer used for every indexed field
        store: Snapshot cache kept in step with the index (repairs read from it)
        batch_size: Documents per batch in reindex_all
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        store: Optional[DocumentStoreAdapter] = None,
        batch_size: int = 100,
    ):
        self.tokenizer = tokenizer
        self.store = store if store is not None else DocumentStoreAdapter()
        self.batch_size = batch_size

        self._lock = threading.Lock()
        self._current = IndexGeneration.empty()
        # Writes made while reindex_all is building; replayed at swap time
        self._journal: Optional[List[Tuple[str, str, Optional[DocumentAnalysis]]]] = None

        self._repair_lock = threading.Lock()
        self._repairs: Set[str] = set()

    @property
    def current(self) -> IndexGeneration:
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    @property
    def reindexing(self) -> bool:
        return self._journal is not None

    # ---- analysis -------------------------------------------------------

    def analyze(self, doc: SearchDocument) -> DocumentAnalysis:
        """
        Tokenize every indexed field of a document.

        Raises:
            DocumentIndexingFailure: If field extraction or tokenization fails
        """
        try:
            return self._analyze(doc)
        except DocumentIndexingFailure:
            raise
        except Exception as e:
            raise DocumentIndexingFailure(doc.id, f"{type(e).__name__}: {e}") from e

    def _analyze(self, doc: SearchDocument) -> DocumentAnalysis:
        positions: Dict[str, List[int]] = {}
        field_counts: Dict[str, Dict[str, int]] = {}
        surfaces: Dict[str, str] = {}
        field_lengths: Dict[str, int] = {}

        position = 0
        for field_name, values in canonical_fields(doc):
            length = 0
            for value in values:
                tokens = self.tokenizer.tokenize(value, field=field_name, language=doc.language, start=position)
                for token in tokens:
                    positions.setdefault(token.term, []).append(token.position)
                    counts = field_counts.setdefault(token.term, {})
                    counts[field_name] = counts.get(field_name, 0) + 1
                    surfaces[token.term] = min(surfaces.get(token.term, token.surface), token.surface)
                if tokens:
                    position = tokens[-1].position + VALUE_POSITION_GAP
                length += len(tokens)
            field_lengths[field_name] = length
            position += FIELD_POSITION_GAP

        postings: Dict[str, Posting] = {}
        term_vector: Dict[str, int] = {}
        for term, term_positions in positions.items():
            counts = field_counts[term]
            mask = FieldMask.NONE
            for field_name in counts:
                mask |= FieldMask.for_field(field_name)
            postings[term] = Posting(
                doc_id=doc.id,
                term_frequency=len(term_positions),
                field_mask=mask,
                positions=tuple(sorted(term_positions)),
                field_frequencies=tuple((f, counts[f]) for f in INDEXED_FIELDS if f in counts),
            )
            term_vector[term] = len(term_positions)

        forward = ForwardEntry(
            doc_id=doc.id,
            doc_length=sum(field_lengths.values()),
            field_lengths=field_lengths,
            term_vector=term_vector,
        )
        return DocumentAnalysis(document=doc, postings=postings, forward=forward, surfaces=surfaces)

    def _prepare(self, doc: SearchDocument, opts: IndexOptions) -> DocumentAnalysis:
        """Analyze the document with its language hint resolved; a generated summary is display-only"""
        if doc.language == "auto":
            doc = doc.model_copy(update={"language": detect_language(f"{doc.title} {doc.content}")})
        analysis = self.analyze(doc)
        if opts.generate_summary and not doc.summary and doc.content:
            display = doc.model_copy(update={"summary": summarize(doc.content, opts.summary_length)})
            analysis = replace(analysis, document=display)
        return analysis

    # ---- writes ---------------------------------------------------------

    def index(self, doc: Union[SearchDocument, Mapping[str, Any]], opts: Optional[IndexOptions] = None) -> IndexResult:
        """Add or replace one document and publish a new generation"""
        opts = opts or IndexOptions()
        start = time.perf_counter()

        try:
            doc = _coerce(doc)
            analysis = self._prepare(doc, opts)
        except DocumentIndexingFailure as e:
            logger.error(f"Indexing failed for document {e.doc_id}: {e.reason}")
            return IndexResult(
                success=False,
                doc_id=e.doc_id,
                index_time_ms=(time.perf_counter() - start) * 1000,
                error=e.reason,
            )

        with self._lock:
            generation = self._current.with_document(analysis, self._current.version + 1)
            self.store.put(doc)
            self._publish(generation)
            if self._journal is not None:
                self._journal.append(("index", doc.id, analysis))

        took_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Indexed document {doc.id} in {took_ms:.1f}ms ({analysis.forward.doc_length} tokens)")
        return IndexResult(success=True, doc_id=doc.id, index_time_ms=took_ms, version=generation.version)

    def remove(self, doc_id: str) -> bool:
        """Remove a document; returns False if it was not indexed"""
        with self._lock:
            if self._journal is not None:
                self._journal.append(("remove", doc_id, None))
            self.store.evict(doc_id)

            current = self._current
            if doc_id not in current.forward and doc_id not in current.documents:
                logger.debug(f"Remove ignored, document {doc_id} is not indexed")
                return False

            self._publish(current.without_document(doc_id, current.version + 1))

        logger.info(f"Removed document {doc_id}")
        return True

    async def reindex_all(
        self,
        source: DocumentSource,
        token: Optional[CancellationToken] = None,
        batch_size: Optional[int] = None,
        opts: Optional[IndexOptions] = None,
    ) -> ReindexReport:
        """
        Rebuild the whole index from `source` and swap it in.

        The replacement generation is built and frozen without holding the
        writer lock; the event loop gets control back after every batch and
        the token is checked before each one. Documents indexed or removed
        while the rebuild runs are folded in before freezing; the few that
        race the freeze are replayed under the lock right before the swap.

        Args:
            source: Iterable or async iterable of SearchDocument (or mappings)
            token: Optional cancellation token
            batch_size: Documents per batch (default: builder batch size)
            opts: Index options applied to every document

        Returns:
            ReindexReport of the published generation

        Raises:
            ReindexCancelled: If the token fires; the current generation keeps serving
            SearchEngineError: If another rebuild is already running
        """
        batch_size = batch_size or self.batch_size
        opts = opts or IndexOptions()
        start = time.perf_counter()

        with self._lock:
            if self._journal is not None:
                raise SearchEngineError("A full reindex is already running")
            self._journal = []

        accumulator = GenerationAccumulator()
        snapshots: Dict[str, SearchDocument] = {}
        failed: List[str] = []
        processed = 0

        try:
            batch: List[Any] = []
            async for item in _iterate(source):
                batch.append(item)
                if len(batch) >= batch_size:
                    processed = await self._build_batch(batch, accumulator, snapshots, failed, opts, token, processed)
                    batch = []
            if batch:
                processed = await self._build_batch(batch, accumulator, snapshots, failed, opts, token, processed)
            if token is not None:
                token.raise_if_cancelled(processed)

            # Writes journaled so far are folded in before freezing, outside the lock
            with self._lock:
                journal, self._journal = self._journal, []
            for op, doc_id, analysis in journal:
                if op == "index":
                    accumulator.add(analysis)
                    snapshots[doc_id] = analysis.document
                else:
                    accumulator.discard(doc_id)
                    snapshots.pop(doc_id, None)
            generation = accumulator.freeze(self._current.version + 1)

            # Only writes that raced the freeze are replayed under the lock
            with self._lock:
                tail = self._journal
                version = self._current.version + 1
                for op, doc_id, analysis in tail:
                    if op == "index":
                        generation = generation.with_document(analysis, version)
                        snapshots[doc_id] = analysis.document
                    else:
                        generation = generation.without_document(doc_id, version)
                        snapshots.pop(doc_id, None)
                generation = replace(generation, version=version)
                self.store.replace_all(snapshots)
                self._publish(generation)
                self._journal = None
        finally:
            if self._journal is not None:
                with self._lock:
                    self._journal = None

        report = ReindexReport(
            version=generation.version,
            indexed=generation.doc_count,
            failed=failed,
            replayed=len(journal) + len(tail),
            took_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Reindex complete: {report.indexed} documents, {len(failed)} failed, "
            f"{report.replayed} replayed writes, {report.took_ms:.0f}ms"
        )
        return report

    async def _build_batch(self, batch, accumulator, snapshots, failed, opts, token, processed) -> int:
        if token is not None:
            token.raise_if_cancelled(processed)

        for item in batch:
            processed += 1
            try:
                doc = _coerce(item)
                analysis = self._prepare(doc, opts)
            except DocumentIndexingFailure as e:
                logger.error(f"Skipping document {e.doc_id} during reindex: {e.reason}")
                failed.append(e.doc_id)
                continue
            accumulator.add(analysis)
            snapshots[doc.id] = doc

        await asyncio.sleep(0)
        return processed

    def swap(self, generation: IndexGeneration) -> None:
        """Publish a prebuilt generation (its version must be newer)"""
        with self._lock:
            if generation.version <= self._current.version:
                raise ValueError(
                    f"Generation v{generation.version} is not newer than current v{self._current.version}"
                )
            self._publish(generation)

    def _publish(self, generation: IndexGeneration) -> None:
        # Caller holds the writer lock
        self._current = generation
        logger.debug(
            f"Published index generation v{generation.version}: "
            f"{generation.doc_count} docs, {len(generation.postings)} terms"
        )

    # ---- repair ---------------------------------------------------------

    def schedule_repair(self, doc_id: str) -> None:
        """Queue a single-document reindex (called from the read path)"""
        with self._repair_lock:
            self._repairs.add(doc_id)

    @property
    def pending_repairs(self) -> int:
        return len(self._repairs)

    def run_repairs(self) -> int:
        """
        Reindex every queued document from the store adapter.

        Dangling postings are cleared by scanning the posting lists; a doc
        the store no longer knows is simply dropped.

        Returns:
            Number of documents repaired
        """
        with self._repair_lock:
            pending = sorted(self._repairs)
            self._repairs.clear()

        for doc_id in pending:
            doc = self.store.get(doc_id)
            analysis = None
            if doc is not None:
                try:
                    analysis = self._prepare(doc, IndexOptions())
                except DocumentIndexingFailure as e:
                    logger.error(f"Repair of document {doc_id} failed, dropping it: {e.reason}")

            with self._lock:
                version = self._current.version + 1
                generation = self._current.without_document(doc_id, version, scan_postings=True)
                if analysis is not None:
                    generation = generation.with_document(analysis, version)
                self._publish(generation)
                if self._journal is not None:
                    self._journal.append(("index", doc_id, analysis) if analysis else ("remove", doc_id, None))

            logger.warning(f"Repaired index entries for document {doc_id} ({'reindexed' if analysis else 'removed'})")

        return len(pending)
