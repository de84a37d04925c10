"""
Unit tests for index generations and the index builder.

Covers postings/forward entries, copy-on-write generations, the single
writer, full reindex (cancellation, journal replay) and self-repair.
"""

import math
from dataclasses import replace
from types import MappingProxyType

import pytest

from kbsearch.cancellation import CancellationToken
from kbsearch.errors import ReindexCancelled, SearchEngineError
from kbsearch.index.builder import FIELD_POSITION_GAP, IndexBuilder
from kbsearch.index.generation import GenerationAccumulator, IndexGeneration
from kbsearch.index.postings import FieldMask
from kbsearch.index.store import DocumentStoreAdapter, canonical_fields
from kbsearch.models import IndexOptions
from kbsearch.text.tokenizer import Tokenizer
from kbsearch.utils import summarize


class ExplodingTokenizer(Tokenizer):
    """Fails on any text containing 'boom'"""

    def tokenize(self, text, field="content", language="auto", start=0):
        if "boom" in text:
            raise RuntimeError("tokenizer exploded")
        return super().tokenize(text, field=field, language=language, start=start)


@pytest.fixture
def builder(tokenizer):
    return IndexBuilder(tokenizer, DocumentStoreAdapter(), batch_size=2)


class TestAnalysis:
    """Postings and forward entries for one document"""

    def test_postings_and_field_mask(self, builder, doc_factory):
        analysis = builder.analyze(doc_factory("1", "Contract law", "contract breach"))

        posting = analysis.postings["contract"]
        assert posting.term_frequency == 2
        assert posting.field_mask == FieldMask.TITLE | FieldMask.CONTENT
        assert posting.field_frequencies == (("title", 1), ("content", 1))
        assert list(posting.positions) == sorted(posting.positions)

    def test_fields_separated_by_position_gap(self, builder, doc_factory):
        analysis = builder.analyze(doc_factory("1", "Contract law", "contract breach"))
        first, second = analysis.postings["contract"].positions
        assert second - first >= FIELD_POSITION_GAP

    def test_forward_entry(self, builder, doc_factory):
        analysis = builder.analyze(doc_factory("1", "Contract law", "contract breach", tags=["nda"]))
        forward = analysis.forward
        assert forward.doc_length == 5
        assert forward.field_lengths["title"] == 2
        assert forward.field_lengths["tags"] == 1
        assert forward.field_lengths["summary"] == 0
        assert forward.term_vector["contract"] == 2

    def test_no_posting_for_absent_terms(self, builder, doc_factory):
        analysis = builder.analyze(doc_factory("1", "Contract", "the of and"))
        assert set(analysis.postings) == {"contract"}
        assert all(p.term_frequency >= 1 for p in analysis.postings.values())

    def test_surfaces_are_unstemmed(self, builder, doc_factory):
        analysis = builder.analyze(doc_factory("1", "Contracts"))
        assert analysis.surfaces["contract"] == "contracts"

    def test_canonical_fields_sorted(self, doc_factory):
        doc = doc_factory("1", "t", tags=["b", "a"], categories=["z", "y"])
        fields = dict(canonical_fields(doc))
        assert fields["tags"] == ["a", "b"]
        assert fields["categories"] == ["y", "z"]


class TestGenerations:
    """Immutable, copy-on-write generations"""

    def test_with_document_does_not_mutate_receiver(self, builder, doc_factory):
        empty = IndexGeneration.empty()
        generation = empty.with_document(builder.analyze(doc_factory("1", "Contract")), version=1)

        assert empty.doc_count == 0
        assert "contract" not in empty.postings
        assert generation.doc_count == 1
        assert generation.version == 1

    def test_idf(self, builder, doc_factory):
        generation = IndexGeneration.empty()
        generation = generation.with_document(builder.analyze(doc_factory("1", "contract")), 1)
        generation = generation.with_document(builder.analyze(doc_factory("2", "court")), 2)

        assert generation.idf("contract") == pytest.approx(math.log(1 + 2 / 2))
        assert generation.idf("missing") == pytest.approx(math.log(1 + 2 / 1))

    def test_avg_doc_length(self, builder, doc_factory):
        generation = IndexGeneration.empty()
        generation = generation.with_document(builder.analyze(doc_factory("1", "contract court")), 1)
        generation = generation.with_document(builder.analyze(doc_factory("2", "appeal")), 2)
        assert generation.avg_doc_length == pytest.approx(1.5)

    def test_vocabulary_sorted_by_surface(self, builder, doc_factory):
        generation = IndexGeneration.empty().with_document(
            builder.analyze(doc_factory("1", "court appeal contract")), 1
        )
        surfaces = [surface for surface, _ in generation.vocabulary]
        assert surfaces == sorted(surfaces)

    def test_without_document_drops_unused_terms(self, builder, doc_factory):
        generation = IndexGeneration.empty().with_document(builder.analyze(doc_factory("1", "contract")), 1)
        generation = generation.without_document("1", 2)
        assert generation.doc_count == 0
        assert generation.postings_for("contract") == {}
        assert "contract" not in generation.surfaces
        assert generation.total_length == 0

    def test_accumulator_matches_incremental_build(self, builder, doc_factory):
        docs = [doc_factory("1", "contract law"), doc_factory("2", "contract appeal"), doc_factory("1", "court")]

        incremental = IndexGeneration.empty()
        accumulator = GenerationAccumulator()
        for version, doc in enumerate(docs, start=1):
            analysis = builder.analyze(doc)
            incremental = incremental.with_document(analysis, version)
            accumulator.add(analysis)
        bulk = accumulator.freeze(incremental.version)

        assert set(bulk.postings) == set(incremental.postings)
        assert bulk.total_length == incremental.total_length
        assert set(bulk.forward) == {"1", "2"}


class TestIndexBuilder:
    """index / remove through the writer"""

    def test_index_publishes_new_version(self, builder, doc_factory):
        before = builder.current
        result = builder.index(doc_factory("1", "Contract"))

        assert result.success
        assert result.version == before.version + 1
        assert builder.version == result.version
        assert before.doc_count == 0

    def test_update_replaces_old_terms(self, builder, doc_factory):
        builder.index(doc_factory("1", "alpha"))
        builder.index(doc_factory("1", "beta"))

        generation = builder.current
        assert generation.doc_count == 1
        assert generation.postings_for("alpha") == {}
        assert "1" in generation.postings_for("beta")

    def test_remove(self, builder, doc_factory):
        builder.index(doc_factory("1", "contract"))
        version = builder.version

        assert builder.remove("1") is True
        assert builder.version == version + 1
        assert builder.current.doc_count == 0
        assert "1" not in builder.store

        assert builder.remove("1") is False
        assert builder.version == version + 1

    def test_tokenizer_failure_reported(self, doc_factory):
        builder = IndexBuilder(ExplodingTokenizer())
        result = builder.index(doc_factory("1", "boom"))

        assert result.success is False
        assert result.doc_id == "1"
        assert "RuntimeError" in result.error
        assert builder.version == 0

    def test_invalid_mapping_reported(self, builder):
        result = builder.index({"id": "x", "title": "no timestamps"})
        assert result.success is False
        assert result.doc_id == "x"

    def test_generated_summary_is_display_only(self, builder, doc_factory):
        content = "Contract disputes are common. Courts decide them."
        builder.index(doc_factory("1", "Guide", content))

        generation = builder.current
        assert generation.documents["1"].summary == summarize(content, 200)
        assert generation.forward["1"].field_lengths["summary"] == 0

    def test_summary_generation_disabled(self, builder, doc_factory):
        builder.index(doc_factory("1", "Guide", "Contract disputes."), IndexOptions(generate_summary=False))
        assert builder.current.documents["1"].summary is None

    def test_auto_language_resolved(self, builder, doc_factory):
        builder.index(doc_factory("zh", "劳动合同纠纷"))
        builder.index(doc_factory("en", "Breach of contract"))
        builder.index(doc_factory("fr", "Contrat de travail", language="fr"))

        documents = builder.current.documents
        assert documents["zh"].language == "zh"
        assert documents["en"].language == "en"
        assert documents["fr"].language == "fr"

    def test_swap_requires_newer_version(self, builder, doc_factory):
        builder.index(doc_factory("1", "contract"))
        with pytest.raises(ValueError):
            builder.swap(IndexGeneration.empty(version=builder.version))


class TestReindexAll:
    """Background rebuild with cancellation and journal replay"""

    @pytest.mark.asyncio
    async def test_rebuild_from_sync_iterable(self, builder, doc_factory):
        builder.index(doc_factory("old", "stale"))
        report = await builder.reindex_all([doc_factory(str(i), f"contract {i}") for i in range(5)])

        generation = builder.current
        assert report.indexed == 5
        assert generation.version == report.version
        assert "old" not in generation.forward
        assert generation.doc_count == 5
        assert len(builder.store) == 5

    @pytest.mark.asyncio
    async def test_rebuild_from_async_iterable(self, builder, doc_factory):
        async def source():
            for i in range(3):
                yield doc_factory(str(i), "appeal")

        report = await builder.reindex_all(source())
        assert report.indexed == 3
        assert builder.current.doc_freq("appeal") == 3

    @pytest.mark.asyncio
    async def test_bad_documents_skipped(self, doc_factory):
        builder = IndexBuilder(ExplodingTokenizer())
        docs = [doc_factory("1", "contract"), doc_factory("bad", "boom"), doc_factory("2", "court")]

        report = await builder.reindex_all(docs)

        assert report.failed == ["bad"]
        assert set(builder.current.forward) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, builder, doc_factory):
        builder.index(doc_factory("keep", "contract"))
        before = builder.current
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ReindexCancelled):
            await builder.reindex_all([doc_factory("1", "court")], token=token)

        assert builder.current is before
        assert not builder.reindexing

    @pytest.mark.asyncio
    async def test_cancelled_between_batches(self, builder, doc_factory):
        before = builder.current
        token = CancellationToken()

        async def source():
            for i in range(10):
                if i == 4:
                    token.cancel()
                yield doc_factory(str(i), "contract")

        with pytest.raises(ReindexCancelled) as exc_info:
            await builder.reindex_all(source(), token=token, batch_size=2)

        assert exc_info.value.processed == 4
        assert builder.current is before

    @pytest.mark.asyncio
    async def test_writes_during_rebuild_are_replayed(self, builder, doc_factory):
        builder.index(doc_factory("gone", "contract"))

        async def source():
            yield doc_factory("1", "contract")
            yield doc_factory("gone", "contract")
            builder.index(doc_factory("late", "appeal"))
            builder.remove("gone")
            yield doc_factory("2", "court")

        report = await builder.reindex_all(source())

        generation = builder.current
        assert report.replayed == 2
        assert set(generation.forward) == {"1", "2", "late"}
        assert "late" in builder.store
        assert "gone" not in builder.store

    @pytest.mark.asyncio
    async def test_writer_lock_free_while_freezing(self, builder, doc_factory, monkeypatch):
        locked_during_freeze = []
        freeze = GenerationAccumulator.freeze

        def observed_freeze(accumulator, version):
            locked_during_freeze.append(builder._lock.locked())
            return freeze(accumulator, version)

        monkeypatch.setattr(GenerationAccumulator, "freeze", observed_freeze)
        report = await builder.reindex_all([doc_factory(str(i), "contract") for i in range(200)], batch_size=50)

        assert locked_during_freeze == [False]
        assert report.indexed == 200

    @pytest.mark.asyncio
    async def test_writes_racing_the_freeze_are_replayed(self, builder, doc_factory, monkeypatch):
        freeze = GenerationAccumulator.freeze

        def racing_freeze(accumulator, version):
            generation = freeze(accumulator, version)
            builder.index(doc_factory("late", "appeal"))
            builder.remove("1")
            return generation

        monkeypatch.setattr(GenerationAccumulator, "freeze", racing_freeze)
        report = await builder.reindex_all([doc_factory("1", "contract"), doc_factory("2", "court")])

        generation = builder.current
        assert set(generation.forward) == {"2", "late"}
        assert generation.doc_freq("appeal") == 1
        assert generation.doc_freq("contract") == 0
        assert generation.version == report.version
        assert report.replayed == 2
        assert report.indexed == 2
        assert {doc.id for doc in builder.store} == {"2", "late"}
        assert not builder.reindexing

    @pytest.mark.asyncio
    async def test_only_one_rebuild_at_a_time(self, builder, doc_factory):
        async def source():
            with pytest.raises(SearchEngineError):
                await builder.reindex_all([])
            yield doc_factory("1", "contract")

        report = await builder.reindex_all(source())
        assert report.indexed == 1


class TestRepair:
    """Postings that reference a document without a forward entry"""

    def _corrupt(self, builder, doc_id):
        generation = builder.current
        forward = {k: v for k, v in generation.forward.items() if k != doc_id}
        broken = replace(generation, version=generation.version + 1, forward=MappingProxyType(forward))
        builder.swap(broken)

    def test_repair_reindexes_from_store(self, builder, doc_factory):
        builder.index(doc_factory("1", "contract"))
        self._corrupt(builder, "1")
        builder.schedule_repair("1")

        assert builder.run_repairs() == 1
        assert builder.pending_repairs == 0
        assert "1" in builder.current.forward
        assert "1" in builder.current.postings_for("contract")

    def test_repair_removes_documents_missing_from_store(self, builder, doc_factory):
        builder.index(doc_factory("1", "contract"))
        self._corrupt(builder, "1")
        builder.store.evict("1")
        builder.schedule_repair("1")

        builder.run_repairs()

        assert builder.current.postings_for("contract") == {}

    def test_store_loader_used_on_miss(self, doc_factory):
        doc = doc_factory("1", "contract")
        store = DocumentStoreAdapter(loader=lambda doc_id: doc if doc_id == "1" else None)
        assert store.get("1") is doc
        assert "1" in store
        assert store.get("2") is None
