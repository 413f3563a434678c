"""Keyword frequency analysis for extracted articles.

Text is lower-cased, stripped of accents (NFD decomposition minus combining
marks) and punctuation, then tokenised on whitespace.  Short tokens, digits
and stop words are ignored; the most frequent remaining words are returned,
ties broken by first occurrence.
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter

#: Tokens shorter than this are ignored.
MIN_WORD_LENGTH = 4

#: Spanish and English function words, already accent-stripped.
STOP_WORDS: frozenset[str] = frozenset(
    {
        # Spanish
        "para", "como", "esta", "este", "esto", "estos", "estas", "pero",
        "sobre", "entre", "desde", "hasta", "donde", "cuando", "porque",
        "tambien", "puede", "pueden", "tiene", "tienen", "hace", "hacer",
        "sido", "sera", "seran", "solo", "todo", "todos", "toda", "todas",
        "otro", "otros", "otra", "otras", "mismo", "misma", "durante",
        "segun", "mientras", "cual", "cuales", "quien", "quienes", "muy",
        "mas", "menos", "bien", "ante", "bajo", "contra", "tras", "hacia",
        "aunque", "sino", "nada", "algo", "cada", "ella", "ellos", "ellas",
        "nosotros", "usted", "ustedes", "suyo", "suya", "sus", "han", "habia",
        "fueron", "fue", "eran", "estan", "estaba", "estado", "ademas",
        "despues", "antes", "ahora", "aqui", "alli", "asi", "dijo", "dice",
        "dicho", "mucho", "muchos", "mucha", "muchas", "poco", "pocos",
        "siempre", "nunca", "ningun", "ninguna", "donde", "dentro", "fuera",
        "luego", "incluso", "parte", "tener", "estar", "haber", "manera",
        # English
        "that", "this", "with", "from", "have", "were", "been", "their",
        "there", "what", "when", "which", "will", "would", "about", "into",
        "than", "then", "them", "they", "your", "more", "also", "over",
        "such", "only", "some", "other", "after", "before",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]|_")


def normalize_text(text: str) -> str:
    """Lower-case ``text`` and strip accents and punctuation."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD_RE.sub(" ", without_marks)


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Return the ``limit`` most frequent meaningful words in ``text``.

    Args:
        text: Source text, typically title plus body.
        limit: Maximum number of keywords.

    Returns:
        Keywords ordered by descending frequency.
    """
    counts: Counter[str] = Counter(
        word
        for word in normalize_text(text).split()
        if len(word) >= MIN_WORD_LENGTH and not word.isdigit() and word not in STOP_WORDS
    )
    return [word for word, _ in counts.most_common(limit)]
