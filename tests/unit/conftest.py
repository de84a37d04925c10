"""Unit test fixtures - isolated engines on a manual clock"""

import os
from datetime import datetime, timedelta, timezone

import pytest

from kbsearch.clock import ManualClock
from kbsearch.config import SearchConfig
from kbsearch.engine import KnowledgeSearchEngine
from kbsearch.models import SearchDocument
from kbsearch.text.tokenizer import Tokenizer

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)

# Keep KB_SEARCH_* settings of the developer machine out of unit tests
_ENV_PREFIX = "KB_SEARCH_"


@pytest.fixture(autouse=True)
def clean_search_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)


def make_doc(doc_id: str, title: str = "", content: str = "", days: int = 0, **fields) -> SearchDocument:
    """
    Build a SearchDocument with sensible defaults.

    `days` offsets both timestamps from BASE_TIME (larger = more recent).
    """
    moment = BASE_TIME + timedelta(days=days)
    data = {
        "id": doc_id,
        "entity_id": f"entity-{doc_id}",
        "entity_type": "article",
        "title": title,
        "content": content,
        "created_at": moment,
        "updated_at": moment,
    }
    data.update(fields)
    return SearchDocument(**data)


@pytest.fixture
def doc_factory():
    return make_doc


@pytest.fixture
def clock():
    return ManualClock(BASE_TIME + timedelta(days=60))


@pytest.fixture
def config():
    return SearchConfig()


@pytest.fixture
def tokenizer(config):
    return Tokenizer(config.lexicon)


@pytest.fixture
def engine(config, clock):
    return KnowledgeSearchEngine(config=config, clock=clock)


@pytest.fixture
def legal_corpus():
    """Small mixed-language corpus used across engine tests"""
    return [
        make_doc(
            "1", "劳动合同纠纷", "用人单位解除劳动合同应当支付经济补偿。",
            days=1, categories=["labor"], tags=["劳动"], metadata={"viewCount": 10, "size": 1200},
        ),
        make_doc(
            "2", "合同审查模板", "合同审查要点与模板。",
            days=2, entity_type="template", categories=["template"], tags=["模板"],
            metadata={"viewCount": 3, "size": 800},
        ),
        make_doc(
            "3", "Breach of contract remedies", "Damages for breach of contract and specific performance.",
            days=3, categories=["contract"], tags=["remedies"], language="en",
            metadata={"viewCount": 25, "likeCount": 4, "size": 3000, "mimeType": "text/html"},
        ),
        make_doc(
            "4", "Hiring a litigation lawyer", "How to choose an attorney for commercial litigation.",
            days=4, categories=["litigation"], tags=["lawyer"], language="en", author_id="alice",
            metadata={"viewCount": 7, "size": 500, "mimeType": "application/pdf"},
        ),
        make_doc(
            "5", "Labor arbitration guide", "Labor disputes go to arbitration before the court.",
            days=5, entity_type="document", categories=["labor"], tags=["arbitration"], language="en",
            access_level="internal", metadata={"viewCount": 1, "size": 2000},
        ),
    ]


@pytest.fixture
def indexed_engine(engine, legal_corpus):
    for doc in legal_corpus:
        result = engine.index(doc)
        assert result.success, result.error
    return engine
