"""
Text analysis for mixed Chinese/Latin legal content.

Components:
- lexicon: stopwords, legal keyword allowlist, segmentation dictionary, synonyms
- segmenter: dictionary longest-match CJK segmentation with bigram fallback
- stemmer: Snowball stemming for Latin-script tokens
- tokenizer: the full normalization pipeline producing positioned tokens
- highlight: <mark>-highlighted result fragments
"""

from .lexicon import DEFAULT_LEXICON, Lexicon, load_lexicon
from .segmenter import DictionarySegmenter
from .stemmer import stem
from .tokenizer import Token, Tokenizer, detect_language, normalize_text, tokenize
from .highlight import highlight

__all__ = [
    "DEFAULT_LEXICON",
    "Lexicon",
    "load_lexicon",
    "DictionarySegmenter",
    "stem",
    "Token",
    "Tokenizer",
    "detect_language",
    "normalize_text",
    "tokenize",
    "highlight",
]
