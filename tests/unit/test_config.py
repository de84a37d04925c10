"""Unit tests for engine configuration and lexicon loading"""

import pytest

from kbsearch.config import DEFAULT_FIELD_WEIGHTS, SearchConfig, load_environment
from kbsearch.text.lexicon import DEFAULT_LEXICON, load_lexicon


class TestLexicon:
    """Stopword / legal keyword interplay and extension"""

    def test_stopword_dropped(self):
        assert DEFAULT_LEXICON.is_dropped("the")
        assert DEFAULT_LEXICON.is_dropped("的")

    def test_legal_keyword_not_dropped(self):
        assert not DEFAULT_LEXICON.is_dropped("will")
        assert not DEFAULT_LEXICON.is_dropped("contract")

    def test_extend_returns_new_lexicon(self):
        extended = DEFAULT_LEXICON.extend(stopwords=["Herein"], legal_keywords=["仲裁庭"])
        assert extended.is_dropped("herein")
        assert "仲裁庭" in extended.dictionary
        assert not DEFAULT_LEXICON.is_dropped("herein")

    def test_load_lexicon_from_yaml(self, tmp_path):
        path = tmp_path / "lexicon.yaml"
        path.write_text(
            "stopwords: [whereas]\n"
            "dictionary: [审查模板]\n"
            "synonyms:\n"
            "  - [contract, agreement]\n",
            encoding="utf-8",
        )
        lexicon = load_lexicon(path)
        assert "whereas" in lexicon.stopwords
        assert "审查模板" in lexicon.dictionary
        assert ("contract", "agreement") in lexicon.synonyms

    def test_load_lexicon_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "lexicon.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_lexicon(path)

    def test_load_lexicon_rejects_non_list_values(self, tmp_path):
        path = tmp_path / "lexicon.yaml"
        path.write_text("stopwords: whereas\n", encoding="utf-8")
        with pytest.raises(ValueError, match="stopwords"):
            load_lexicon(path)


class TestSearchConfig:
    """Validation of recognized options"""

    def test_defaults(self):
        config = SearchConfig()
        assert config.field_weights == DEFAULT_FIELD_WEIGHTS
        assert config.fuzzy_max_distance == 2
        assert config.cache_capacity == 512
        assert 0 <= config.length_damping < 1

    def test_title_must_be_strictly_greatest(self):
        weights = dict(DEFAULT_FIELD_WEIGHTS, summary=3.0)
        with pytest.raises(ValueError, match="title"):
            SearchConfig(field_weights=weights)

    def test_missing_field_weight(self):
        with pytest.raises(ValueError, match="content"):
            SearchConfig(field_weights={"title": 3.0, "summary": 2.0, "tags": 1.5, "categories": 1.5})

    @pytest.mark.parametrize("damping", [-0.1, 1.0, 1.5])
    def test_length_damping_range(self, damping):
        with pytest.raises(ValueError, match="length_damping"):
            SearchConfig(length_damping=damping)

    def test_phrase_bonus_must_exceed_one(self):
        with pytest.raises(ValueError, match="phrase_bonus"):
            SearchConfig(phrase_bonus=1.0)


class TestConfigFromEnvironment:
    """KB_SEARCH_* variables and .env files"""

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KB_SEARCH_BOOST_TITLE", "5")
        monkeypatch.setenv("KB_SEARCH_LENGTH_DAMPING", "0.5")
        monkeypatch.setenv("KB_SEARCH_CACHE_CAPACITY", "16")
        config = SearchConfig.from_env(tmp_path)
        assert config.field_weights["title"] == 5.0
        assert config.length_damping == 0.5
        assert config.cache_capacity == 16

    def test_env_word_lists(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KB_SEARCH_STOPWORDS", "whereas, herein")
        monkeypatch.setenv("KB_SEARCH_LEGAL_KEYWORDS", "tort")
        config = SearchConfig.from_env(tmp_path)
        assert config.lexicon.is_dropped("whereas")
        assert config.lexicon.is_dropped("herein")
        assert "tort" in config.lexicon.legal_keywords

    def test_unparsable_value(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KB_SEARCH_LENGTH_DAMPING", "strong")
        with pytest.raises(ValueError, match="KB_SEARCH_LENGTH_DAMPING"):
            SearchConfig.from_env(tmp_path)

    def test_lexicon_file(self, monkeypatch, tmp_path):
        path = tmp_path / "words.yaml"
        path.write_text("legal_keywords: [仲裁庭]\n", encoding="utf-8")
        monkeypatch.setenv("KB_SEARCH_LEXICON_FILE", str(path))
        config = SearchConfig.from_env(tmp_path)
        assert "仲裁庭" in config.lexicon.dictionary

    def test_env_local_takes_priority(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("KB_SEARCH_FACET_LIMIT=7\n")
        (tmp_path / ".env.local").write_text("KB_SEARCH_FACET_LIMIT=9\n")
        monkeypatch.setenv("KB_SEARCH_FACET_LIMIT", "1")

        assert load_environment(tmp_path) == tmp_path / ".env.local"
        assert SearchConfig.from_env(tmp_path).facet_limit == 9

    def test_no_env_file(self, tmp_path):
        assert load_environment(tmp_path) is None
