"""
Unit tests for query parsing: term clauses, phrases, synonyms and facets.
"""

import pytest

from kbsearch.errors import InvalidQuery
from kbsearch.models import QuerySpec
from kbsearch.query.parser import DEFAULT_FACETS, PhraseClause, QueryParser, TermClause
from kbsearch.text.lexicon import Lexicon
from kbsearch.text.stemmer import stem
from kbsearch.text.tokenizer import Tokenizer


@pytest.fixture
def parser(tokenizer):
    return QueryParser(tokenizer)


def parse(parser, query="", **kwargs):
    return parser.parse(QuerySpec(query=query, **kwargs))


class TestBrowse:
    """Empty query text"""

    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    def test_empty_query_is_browse(self, parser, query):
        plan = parse(parser, query)
        assert plan.is_browse
        assert plan.clauses == ()

    def test_stopword_only_query_is_not_browse(self, parser):
        plan = parse(parser, "the of and")
        assert not plan.is_browse
        assert plan.clauses == ()

    def test_defaults_copied_from_spec(self, parser):
        plan = parse(parser, "contract", pagination={"page": 3, "limit": 5})
        assert plan.page == 3
        assert plan.limit == 5
        assert plan.sort.field == "relevance"
        assert plan.facets == DEFAULT_FACETS


class TestTermClauses:
    """Unquoted words"""

    def test_each_word_is_a_clause(self, parser):
        plan = parse(parser, "Breach of Contracts")
        assert plan.clauses == (
            TermClause(alternatives=("breach",), surface="breach"),
            TermClause(alternatives=("contract",), surface="contracts"),
        )

    def test_embedded_words_are_alternatives(self, parser):
        plan = parse(parser, "劳动合同纠纷")
        assert plan.clauses == (
            TermClause(alternatives=("劳动合同", "合同"), surface="劳动合同"),
            TermClause(alternatives=("纠纷",), surface="纠纷"),
        )

    def test_synonyms_added(self, parser):
        (clause,) = parse(parser, "lawyer").clauses
        assert clause.alternatives[0] == stem("lawyer")
        assert set(clause.alternatives) == {stem("lawyer"), stem("attorney"), stem("counsel")}

    def test_custom_synonyms(self):
        lexicon = Lexicon().extend(synonyms=[["nda", "confidentiality"]])
        parser = QueryParser(Tokenizer(lexicon))
        (clause,) = parse(parser, "NDA").clauses
        assert stem("confidentiality") in clause.alternatives

    def test_duplicate_words_collapse(self, parser):
        plan = parse(parser, "contract contract")
        assert len(plan.clauses) == 1

    def test_terms_property(self, parser):
        plan = parse(parser, '"breach of contract" lawyer')
        assert plan.terms[:2] == ("breach", "contract")
        assert stem("attorney") in plan.terms


class TestPhrases:
    """Quoted substrings"""

    def test_phrase_keeps_stopword_gap(self, parser):
        (clause,) = parse(parser, '"breach of contract"').clauses
        assert isinstance(clause, PhraseClause)
        assert clause.terms == (("breach", 0), ("contract", 2))
        assert clause.surface == "breach of contract"

    def test_phrase_and_terms(self, parser):
        plan = parse(parser, '"breach of contract" lawyer')
        assert [type(c) for c in plan.clauses] == [PhraseClause, TermClause]
        assert plan.highlight_terms == ("breach of contract", "lawyer")

    @pytest.mark.parametrize("query", ["「劳动合同」", "『劳动合同』", "“劳动合同”"])
    def test_cjk_quotes(self, parser, query):
        (clause,) = parse(parser, query).clauses
        assert clause == PhraseClause(terms=(("劳动合同", 0),), surface="劳动合同")

    def test_stray_quote_ignored(self, parser):
        plan = parse(parser, 'breach "contract')
        assert [type(c) for c in plan.clauses] == [TermClause, TermClause]

    def test_empty_phrase_dropped(self, parser):
        plan = parse(parser, '"" contract')
        assert plan.clauses == (TermClause(alternatives=("contract",), surface="contract"),)


class TestFiltersAndFacets:
    """Validation happens while parsing"""

    def test_filters_compiled(self, parser):
        plan = parse(parser, "", filters={"category": ["labor"], "type": "template"})
        assert plan.filter.dimensions == frozenset({"categories", "type"})

    def test_unknown_dimension(self, parser):
        with pytest.raises(InvalidQuery) as exc_info:
            parse(parser, "contract", filters={"colour": ["red"]})
        assert exc_info.value.dimension == "colour"

    def test_facet_aliases(self, parser):
        plan = parse(parser, "", facets=["category", "categories", "entityType"])
        assert plan.facets == ("categories", "type")

    def test_no_facets(self, parser):
        assert parse(parser, "", facets=[]).facets == ()

    def test_unknown_facet(self, parser):
        with pytest.raises(InvalidQuery):
            parse(parser, "", facets=["title"])
