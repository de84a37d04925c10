#!/usr/bin/env python3
"""
Index a JSONL corpus and run a query against it.

Each line of the corpus is one document in the content-service format
(camelCase or snake_case keys):

    {"id": "1", "entityId": "a-1", "entityType": "article", "title": "劳动合同纠纷",
     "categories": ["labor"], "createdAt": "2025-01-01T00:00:00Z", "updatedAt": "2025-01-01T00:00:00Z"}

Usage:
    python scripts/search_corpus.py corpus.jsonl "合同"
    python scripts/search_corpus.py corpus.jsonl "breach of contract" --category labor --facet categories
    python scripts/search_corpus.py corpus.jsonl "contr" --suggest
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path for kbsearch imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from kbsearch import InvalidQuery, create_engine  # noqa: E402
from kbsearch.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger("search_corpus")


def read_corpus(path: Path):
    """Yield one mapping per non-empty JSONL line"""
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.error(f"{path}:{line_number}: invalid JSON ({e.msg}), skipped")


def build_spec(args) -> dict:
    filters = {}
    if args.type:
        filters["type"] = args.type
    if args.category:
        filters["categories"] = args.category
    if args.tag:
        filters["tags"] = args.tag
    spec = {
        "query": args.query,
        "filters": filters,
        "pagination": {"page": args.page, "limit": args.limit},
        "options": {"fuzzy": args.fuzzy},
    }
    if args.facet:
        spec["facets"] = args.facet
    return spec


def main() -> int:
    parser = argparse.ArgumentParser(description="Index a JSONL corpus and search it")
    parser.add_argument("corpus", type=Path, help="JSONL file, one document per line")
    parser.add_argument("query", help="Query text (quote phrases with \"...\")")
    parser.add_argument("--type", action="append", help="Entity type filter (repeatable)")
    parser.add_argument("--category", action="append", help="Category filter (repeatable)")
    parser.add_argument("--tag", action="append", help="Tag filter (repeatable)")
    parser.add_argument("--facet", action="append", help="Facet dimension to count (repeatable)")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--fuzzy", action="store_true", help="Expand unknown words by edit distance")
    parser.add_argument("--suggest", action="store_true", help="Print autocomplete suggestions instead")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug output on the console")
    args = parser.parse_args()

    setup_logging(log_file=None, console_level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.corpus.exists():
        logger.error(f"Corpus not found: {args.corpus}")
        return 1

    engine = create_engine(env_dir=project_root)
    report = asyncio.run(engine.reindex_all(read_corpus(args.corpus)))
    print(f"Indexed {report.indexed} documents ({len(report.failed)} failed) in {report.took_ms:.0f}ms")

    if args.suggest:
        for suggestion in engine.suggest(args.query):
            print(f"  [{suggestion.type:5}] {suggestion.score:.2f}  {suggestion.text}")
        return 0

    try:
        results = engine.search(build_spec(args))
    except InvalidQuery as e:
        logger.error(f"Invalid query: {e}")
        return 2

    print(f"\n{results.total} results for {results.query!r} ({results.took_ms:.1f}ms)\n")
    for rank, hit in enumerate(results.results, start=(results.page - 1) * results.limit + 1):
        print(f"{rank:3}. {hit.title}  [{hit.doc_id}, score={hit.score:.3f}]")
        for fragment in hit.highlights:
            print(f"       {fragment}")

    for dimension, buckets in results.facets.items():
        if buckets:
            print(f"\n{dimension}: " + ", ".join(f"{b.value} ({b.count})" for b in buckets))
    if results.suggestions:
        print(f"\nDid you mean: {', '.join(results.suggestions)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
