"""
Snowball stemmers (via NLTK) for Latin-script tokens.

Snowball is the improved Porter2 family used by Elasticsearch, Solr and
Lucene. The language hint of a document selects the stemmer; hints that
name no Latin-script language (zh, mixed, auto, ...) use English, which is
the language of Latin fragments inside Chinese legal text in practice.

Examples:
- "contracts" → "contract"
- "litigation" → "litig"
- "running" → "run"
"""

from functools import lru_cache

from nltk.stem.snowball import SnowballStemmer

_LANGUAGE_NAMES = {
    'en': 'english',
    'fr': 'french',
    'de': 'german',
    'es': 'spanish',
    'it': 'italian',
    'pt': 'portuguese',
    'nl': 'dutch',
    'ru': 'russian',
}

_stemmers = {}


def _stemmer_for(language: str) -> SnowballStemmer:
    name = _LANGUAGE_NAMES.get((language or '').lower().split('-')[0], 'english')
    stemmer = _stemmers.get(name)
    if stemmer is None:
        stemmer = _stemmers.setdefault(name, SnowballStemmer(name))
    return stemmer


@lru_cache(maxsize=65536)
def stem(word: str, language: str = 'en') -> str:
    """
    Stem a single word using the Snowball algorithm.

    Args:
        word: Lowercase Latin-script word
        language: Language hint (ISO code); unknown hints fall back to English

    Returns:
        Stemmed word

    Examples:
        >>> stem("contracts")
        'contract'
        >>> stem("searching")
        'search'
    """
    return _stemmer_for(language).stem(word)
