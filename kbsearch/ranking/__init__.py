"""
TF-IDF relevance scoring with field boosts, phrase bonus and deterministic ranking.
"""

from .scorer import Scorer, extract_keywords, rank

__all__ = ["Scorer", "extract_keywords", "rank"]
