"""
Engine configuration.

All options have defaults suitable for a single-node deployment; any of them
can be overridden through KB_SEARCH_* environment variables (loaded from
.env.local first, then .env, then the process environment):

    KB_SEARCH_BOOST_TITLE / _SUMMARY / _TAGS / _CATEGORIES / _CONTENT
    KB_SEARCH_LENGTH_DAMPING         length normalization constant k in [0, 1)
    KB_SEARCH_PHRASE_BONUS           multiplier for matched phrases (> 1)
    KB_SEARCH_FUZZY_MAX_DISTANCE     edit distance for fuzzy matching
    KB_SEARCH_CACHE_CAPACITY         query cache entries
    KB_SEARCH_CACHE_TTL_SECONDS      query cache entry lifetime
    KB_SEARCH_TRENDING_WINDOW_DAYS   interaction window for trending recommendations
    KB_SEARCH_STOPWORDS              extra stopwords (comma separated)
    KB_SEARCH_LEGAL_KEYWORDS         extra legal keywords (comma separated)
    KB_SEARCH_LEXICON_FILE           YAML file extending the word lists
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import load_dotenv

from .text.lexicon import DEFAULT_LEXICON, Lexicon, load_lexicon

logger = logging.getLogger(__name__)

INDEXED_FIELDS = ("title", "summary", "tags", "categories", "content")

DEFAULT_FIELD_WEIGHTS = {
    "title": 3.0,
    "summary": 2.0,
    "tags": 1.5,
    "categories": 1.5,
    "content": 1.0,
}


@dataclass
class SearchConfig:
    """Recognized engine options"""

    field_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))
    length_damping: float = 0.3
    phrase_bonus: float = 1.5

    fuzzy_max_distance: int = 2
    min_prefix_matches: int = 3
    suggestion_limit: int = 10

    cache_capacity: int = 512
    cache_ttl_seconds: float = 300.0

    facet_limit: int = 50
    highlight_fragments: int = 3
    highlight_fragment_length: int = 150

    reindex_batch_size: int = 100

    recommendation_half_life_days: float = 14.0
    recommendation_history_limit: int = 50
    profile_ttl_seconds: float = 3600.0
    trending_window_days: float = 7.0
    similar_users_limit: int = 5
    min_user_similarity: float = 0.1

    cache_purge_interval_seconds: float = 60.0
    repair_interval_seconds: float = 5.0

    lexicon: Lexicon = DEFAULT_LEXICON

    def __post_init__(self):
        missing = [f for f in INDEXED_FIELDS if f not in self.field_weights]
        if missing:
            raise ValueError(f"field_weights missing fields: {', '.join(missing)}")

        title_weight = self.field_weights["title"]
        others = [w for f, w in self.field_weights.items() if f != "title"]
        if any(w <= 0 for w in self.field_weights.values()):
            raise ValueError("field weights must be positive")
        if any(title_weight <= w for w in others):
            raise ValueError("title weight must be strictly greater than every other field weight")

        if not 0.0 <= self.length_damping < 1.0:
            raise ValueError(f"length_damping must be in [0, 1), got {self.length_damping}")
        if self.phrase_bonus <= 1.0:
            raise ValueError(f"phrase_bonus must be > 1, got {self.phrase_bonus}")
        if self.fuzzy_max_distance < 0:
            raise ValueError("fuzzy_max_distance must be >= 0")
        if self.cache_capacity < 1:
            raise ValueError("cache_capacity must be >= 1")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be > 0")
        if self.reindex_batch_size < 1:
            raise ValueError("reindex_batch_size must be >= 1")
        if self.recommendation_half_life_days <= 0:
            raise ValueError("recommendation_half_life_days must be > 0")
        if self.trending_window_days <= 0:
            raise ValueError("trending_window_days must be > 0")

    @classmethod
    def from_env(cls, env_dir: Optional[Union[str, Path]] = None) -> "SearchConfig":
        """
        Build a config from the environment.

        Args:
            env_dir: Directory holding .env.local / .env (default: current directory)

        Raises:
            ValueError: On unparsable or out-of-range values
        """
        load_environment(env_dir)

        weights = dict(DEFAULT_FIELD_WEIGHTS)
        for field_name in INDEXED_FIELDS:
            weights[field_name] = _env_float(f"KB_SEARCH_BOOST_{field_name.upper()}", weights[field_name])

        lexicon = DEFAULT_LEXICON
        lexicon_file = os.getenv("KB_SEARCH_LEXICON_FILE")
        if lexicon_file:
            lexicon = load_lexicon(lexicon_file, base=lexicon)
        extra_stopwords = _env_list("KB_SEARCH_STOPWORDS")
        extra_legal = _env_list("KB_SEARCH_LEGAL_KEYWORDS")
        if extra_stopwords or extra_legal:
            lexicon = lexicon.extend(stopwords=extra_stopwords, legal_keywords=extra_legal)

        defaults = cls()
        config = cls(
            field_weights=weights,
            length_damping=_env_float("KB_SEARCH_LENGTH_DAMPING", defaults.length_damping),
            phrase_bonus=_env_float("KB_SEARCH_PHRASE_BONUS", defaults.phrase_bonus),
            fuzzy_max_distance=_env_int("KB_SEARCH_FUZZY_MAX_DISTANCE", defaults.fuzzy_max_distance),
            min_prefix_matches=_env_int("KB_SEARCH_MIN_PREFIX_MATCHES", defaults.min_prefix_matches),
            suggestion_limit=_env_int("KB_SEARCH_SUGGESTION_LIMIT", defaults.suggestion_limit),
            cache_capacity=_env_int("KB_SEARCH_CACHE_CAPACITY", defaults.cache_capacity),
            cache_ttl_seconds=_env_float("KB_SEARCH_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
            facet_limit=_env_int("KB_SEARCH_FACET_LIMIT", defaults.facet_limit),
            reindex_batch_size=_env_int("KB_SEARCH_REINDEX_BATCH_SIZE", defaults.reindex_batch_size),
            recommendation_half_life_days=_env_float(
                "KB_SEARCH_RECOMMENDATION_HALF_LIFE_DAYS", defaults.recommendation_half_life_days
            ),
            trending_window_days=_env_float("KB_SEARCH_TRENDING_WINDOW_DAYS", defaults.trending_window_days),
            lexicon=lexicon,
        )
        logger.info(
            f"Search config loaded: weights={config.field_weights}, k={config.length_damping}, "
            f"cache={config.cache_capacity}x{config.cache_ttl_seconds}s, fuzzy<={config.fuzzy_max_distance}"
        )
        return config


def load_environment(env_dir: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Load .env.local (highest priority) or .env; returns the file used, if any"""
    base = Path(env_dir) if env_dir else Path.cwd()
    env_local = base / ".env.local"
    env_file = base / ".env"

    if env_local.exists():
        logger.info(f"Loading environment from: {env_local}")
        load_dotenv(env_local, override=True)
        return env_local
    if env_file.exists():
        logger.info(f"Loading environment from: {env_file}")
        load_dotenv(env_file, override=True)
        return env_file
    logger.debug("No .env.local or .env file found - using system environment variables only")
    return None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]
