"""
Tokenizer for mixed Chinese/Latin legal text.

Tokenization pipeline:
1. Unicode NFKC normalization (full-width letters and digits → ASCII)
2. Lowercase conversion
3. Split into CJK runs and Latin words (intra-word hyphens/apostrophes kept)
4. CJK runs: dictionary longest match, bigram fallback (see segmenter)
5. Filter pure numbers
6. Filter stopwords, except legal keywords
7. Stem Latin tokens (Snowball, language from the hint)

Every step is deterministic: the same text and language hint always yield
the same token sequence. Dropped stopwords still consume a position so
phrase adjacency is identical on the index and query side.
"""

import re
import unicodedata
from typing import List, NamedTuple, Optional

from .lexicon import DEFAULT_LEXICON, Lexicon
from .segmenter import DictionarySegmenter
from .stemmer import stem

_CJK = "\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff"
_LATIN = "0-9a-z\u00df-\u024f"

TOKEN_PATTERN = re.compile(
    rf"(?P<cjk>[{_CJK}]+)|(?P<latin>[{_LATIN}]+(?:['\-][{_LATIN}]+)*)"
)
_NUMBER_PATTERN = re.compile(r"^[0-9'\-]+$")
_CJK_CHAR = re.compile(rf"[{_CJK}]")
_LATIN_WORD = re.compile(r"[a-zA-Z]+")


class Token(NamedTuple):
    """A normalized term at a position inside a field"""
    term: str
    position: int
    field: str
    surface: str


def normalize_text(text: str) -> str:
    """NFKC + lowercase + typographic apostrophes folded to ASCII"""
    text = unicodedata.normalize("NFKC", text or "")
    return text.lower().replace("’", "'").replace("‘", "'")


def detect_language(text: str) -> str:
    """
    Classify text as 'zh', 'en' or 'mixed'.

    More than 30% CJK characters → zh; more than half Latin letters → en.
    """
    if not text:
        return "mixed"
    cjk_ratio = len(_CJK_CHAR.findall(text)) / len(text)
    latin_ratio = sum(len(w) for w in _LATIN_WORD.findall(text)) / len(text)
    if cjk_ratio > 0.3:
        return "zh"
    if latin_ratio > 0.5:
        return "en"
    return "mixed"


class Tokenizer:
    """Turns raw field text into an ordered stream of Tokens"""

    def __init__(self, lexicon: Lexicon = DEFAULT_LEXICON):
        self.lexicon = lexicon
        # Multi-character stopwords are segmented as words so they can be dropped whole
        segment_words = set(lexicon.dictionary)
        segment_words.update(w for w in lexicon.stopwords if len(w) > 1 and not w.isascii())
        self.segmenter = DictionarySegmenter(segment_words)

    def tokenize(
        self,
        text: str,
        field: str = "content",
        language: str = "auto",
        start: int = 0,
    ) -> List[Token]:
        """
        Tokenize one field of text.

        Args:
            text: Raw text
            field: Field name recorded on each token
            language: Language hint (selects the Latin stemmer)
            start: Position of the first token

        Returns:
            Tokens ordered by position (tokens embedded in a longer CJK
            word share its position)

        Examples:
            >>> [t.term for t in Tokenizer().tokenize("Breach of Contracts")]
            ['breach', 'contract']

            >>> [t.term for t in Tokenizer().tokenize("劳动合同纠纷")]
            ['劳动合同', '合同', '纠纷']
        """
        tokens: List[Token] = []
        position = start

        for match in TOKEN_PATTERN.finditer(normalize_text(text)):
            if match.group("cjk"):
                pieces = self.segmenter.segment(match.group("cjk"))
                last_relative = -1
                for word, relative in pieces:
                    if not self.lexicon.is_dropped(word):
                        tokens.append(Token(word, position + relative, field, word))
                    last_relative = max(last_relative, relative)
                position += last_relative + 1
                continue

            word = match.group("latin")
            if _NUMBER_PATTERN.match(word):
                position += 1
                continue
            if not self.lexicon.is_dropped(word):
                tokens.append(Token(stem(word, language), position, field, word))
            position += 1

        return tokens

    def terms(self, text: str, language: str = "auto") -> List[str]:
        """Term strings only (convenience for queries and tests)"""
        return [token.term for token in self.tokenize(text, language=language)]


_default_tokenizer: Optional[Tokenizer] = None


def tokenize(text: str, language: str = "auto") -> List[str]:
    """
    Tokenize text with the built-in lexicon.

    Examples:
        >>> tokenize("Kubernetes-based litigation strategies")
        ['kubernetes-bas', 'litig', 'strategi']

        >>> tokenize("   ")
        []
    """
    global _default_tokenizer
    if _default_tokenizer is None:
        _default_tokenizer = Tokenizer()
    return _default_tokenizer.terms(text, language=language)
