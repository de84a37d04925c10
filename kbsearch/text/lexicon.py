"""
Word lists used by the analyzer.

- STOPWORDS: English + Chinese function words dropped from the token stream
- LEGAL_KEYWORDS: legal terms that are never dropped, even if a stopword
- LEGAL_DICTIONARY: Chinese segmentation dictionary (legal vocabulary)
- SYNONYM_GROUPS: query-time synonym expansion

A deployment can extend every list from a YAML file:

    stopwords: [...]
    legal_keywords: [...]
    dictionary: [...]
    synonyms:
      - [lawyer, attorney, counsel]
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

STOPWORDS = frozenset([
    # English
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'been', 'being', 'but', 'by',
    'did', 'do', 'does', 'for', 'had', 'has', 'have', 'if', 'in', 'into', 'is',
    'it', 'no', 'not', 'of', 'on', 'or', 'such', 'that', 'the', 'their',
    'then', 'there', 'these', 'they', 'this', 'to', 'was', 'were', 'will',
    'with',
    # Chinese
    '的', '了', '在', '是', '我', '有', '和', '就', '不', '人', '都', '一', '个',
    '上', '也', '很', '到', '说', '要', '去', '你', '会', '着', '没有', '看',
    '好', '自己', '这', '那', '他', '她', '它', '们', '些', '什么', '怎么',
    '为什么', '哪里', '谁', '多少', '几',
])

LEGAL_KEYWORDS = frozenset([
    # Chinese
    '合同', '协议', '诉讼', '起诉', '判决', '裁定', '证据', '当事人', '律师', '法庭',
    '法院', '法律', '法规', '条例', '司法解释', '案例', '判例', '原告', '被告',
    '第三人', '代理人', '管辖权', '时效', '执行', '上诉', '再审', '仲裁', '调解',
    '和解', '赔偿', '违约', '侵权', '犯罪', '刑罚', '有期徒刑', '罚金', '没收财产',
    '缓刑', '假释', '减刑', '保释',
    # English
    'contract', 'agreement', 'lawsuit', 'litigation', 'judgment', 'ruling',
    'evidence', 'party', 'lawyer', 'attorney', 'court', 'tribunal', 'law',
    'regulation', 'case', 'precedent', 'plaintiff', 'defendant',
    'jurisdiction', 'statute', 'appeal', 'arbitration', 'mediation',
    # Stopwords that are also legal terms (testamentary will)
    'will',
])

LEGAL_DICTIONARY = frozenset([
    term for term in LEGAL_KEYWORDS if not term.isascii()
] + [
    '劳动合同', '劳动争议', '劳动仲裁', '人民法院', '最高人民法院', '检察院',
    '民事诉讼', '刑事诉讼', '行政诉讼', '知识产权', '商标', '专利', '著作权',
    '公司法', '合同法', '民法典', '刑法', '婚姻', '继承', '抚养', '离婚',
    '债权', '债务', '担保', '抵押', '质押', '租赁', '买卖', '借款', '利息',
    '违约金', '损害赔偿', '举证', '质证', '送达', '立案', '开庭', '审理',
    '一审', '二审', '终审', '判决书', '裁定书', '调解书', '起诉状', '答辩状',
    '律师函', '法律援助', '法律意见书', '尽职调查', '合规', '保密协议',
    '竞业限制', '经济补偿', '工伤', '社会保险',
])

SYNONYM_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ('lawyer', 'attorney', 'counsel'),
    ('lawsuit', 'litigation'),
    ('judgment', 'ruling'),
)


@dataclass(frozen=True)
class Lexicon:
    """Immutable bundle of the analyzer word lists"""
    stopwords: FrozenSet[str] = STOPWORDS
    legal_keywords: FrozenSet[str] = LEGAL_KEYWORDS
    dictionary: FrozenSet[str] = LEGAL_DICTIONARY
    synonyms: Tuple[Tuple[str, ...], ...] = SYNONYM_GROUPS

    def is_dropped(self, token: str) -> bool:
        """Stopwords are dropped unless they are also legal keywords"""
        return token in self.stopwords and token not in self.legal_keywords

    def extend(
        self,
        stopwords: Iterable[str] = (),
        legal_keywords: Iterable[str] = (),
        dictionary: Iterable[str] = (),
        synonyms: Iterable[Iterable[str]] = (),
    ) -> "Lexicon":
        extra_legal = frozenset(w.lower() for w in legal_keywords)
        return Lexicon(
            stopwords=self.stopwords | frozenset(w.lower() for w in stopwords),
            legal_keywords=self.legal_keywords | extra_legal,
            dictionary=(
                self.dictionary
                | frozenset(dictionary)
                | frozenset(w for w in extra_legal if not w.isascii())
            ),
            synonyms=self.synonyms + tuple(
                tuple(w.lower() for w in group) for group in synonyms
            ),
        )


DEFAULT_LEXICON = Lexicon()


def load_lexicon(path: Union[str, Path], base: Lexicon = DEFAULT_LEXICON) -> Lexicon:
    """
    Extend a lexicon with the word lists from a YAML file.

    Args:
        path: YAML file with any of the keys stopwords, legal_keywords,
            dictionary, synonyms
        base: Lexicon to extend (built-in lists by default)

    Returns:
        New Lexicon (base is unchanged)

    Raises:
        ValueError: If the file is not a mapping of lists
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Lexicon file {path} must contain a mapping, got {type(data).__name__}")

    for key in ("stopwords", "legal_keywords", "dictionary", "synonyms"):
        if key in data and not isinstance(data[key], list):
            raise ValueError(f"Lexicon key '{key}' in {path} must be a list")

    lexicon = base.extend(
        stopwords=data.get("stopwords", []),
        legal_keywords=data.get("legal_keywords", []),
        dictionary=data.get("dictionary", []),
        synonyms=data.get("synonyms", []),
    )
    logger.info(
        f"Loaded lexicon from {path}: {len(lexicon.stopwords)} stopwords, "
        f"{len(lexicon.legal_keywords)} legal keywords, {len(lexicon.dictionary)} dictionary terms"
    )
    return lexicon
