"""Keyword extraction from note titles (Japanese and English)."""

import re
from collections import Counter

# Brackets, quotes and punctuation, both full- and half-width
_PUNCTUATION = re.compile(r"[（）()【】「」『』\[\]<>《》〈〉\"'“”‘’・、。，．！？!?：；:;&@#$%^*+=|~`]")
_DIGITS = re.compile(r"[0-9０-９]+")
# Katakana runs or kanji runs
_JAPANESE_WORD = re.compile(r"[ァ-ヶー]+|[一-龠々]+")
_ENGLISH_WORD = re.compile(r"[a-zA-Z]{2,}")

MIN_LENGTH = 2
MAX_LENGTH = 20

STOP_WORDS = frozenset([
    # Japanese
    "の", "に", "は", "を", "た", "が", "で", "て", "と", "し", "れ", "さ",
    "ある", "いる", "も", "する", "から", "な", "こと", "として", "い", "や",
    "れる", "など", "なっ", "ない", "この", "ため", "その", "あっ", "よう",
    "また", "もの", "という", "あり", "まで", "られ", "なる", "へ", "か",
    "だ", "これ", "によって", "により", "おり", "より", "による", "ず", "なり",
    "について", "できる", "ます", "です", "ました", "でき", "った", "ている",
    "での", "における", "こちら", "それ", "何", "どう", "どの", "どれ",
    "ところ", "とき", "ところが", "しかし", "だが", "ので",
    "に対して", "の中で", "たち",
    "用", "版", "向け", "ログ", "日", "月", "年", "投稿", "下書き", "まとめ",
    # English
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need", "dare",
    "ought", "used", "to", "of", "in", "for", "on", "with", "at", "by",
    "from", "as", "into", "through", "during", "before", "after", "above",
    "below", "between", "under", "again", "further", "then", "once",
    "and", "but", "or", "nor", "so", "yet", "both", "either", "neither",
    "not", "only", "own", "same", "than", "too", "very", "just",
    "todo", "slack",
])


def tokenize_title(title: str) -> list[str]:
    """Candidate keywords of one title, stop words and out-of-range lengths removed."""
    cleaned = _DIGITS.sub(" ", _PUNCTUATION.sub(" ", title))

    japanese = [w for w in _JAPANESE_WORD.findall(cleaned) if len(w) >= MIN_LENGTH]
    english = [w.lower() for w in _ENGLISH_WORD.findall(cleaned)]

    return [
        t for t in japanese + english
        if t not in STOP_WORDS and MIN_LENGTH <= len(t) <= MAX_LENGTH
    ]


def extract_keywords(titles: list[str], max_keywords: int = 5) -> list[str]:
    """Most frequent tokens across ``titles``; ties keep first-seen order."""
    counts = Counter()
    for title in titles:
        counts.update(tokenize_title(title or ""))

    # Counter keeps insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [word for word, _ in ranked[:max_keywords]]
