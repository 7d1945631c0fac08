"""Search text normalization: width folding, kana folding, relevance scoring.

All functions are pure. Kana folding shifts code points by a fixed offset
over the hiragana block (U+3041–U+3096) and the katakana block
(U+30A1–U+30F6); characters outside the source block pass through.
"""

from __future__ import annotations

import re

# Full-width Latin letters/digits sit at a fixed distance from ASCII.
_FULLWIDTH_OFFSET = 0xFEE0
_FULLWIDTH_ALNUM = re.compile(r"[Ａ-Ｚａ-ｚ０-９]")
_WHITESPACE_RUN = re.compile(r"\s+")

_KANA_OFFSET = 0x60
_HIRAGANA = re.compile("[ぁ-ゖ]")
_KATAKANA = re.compile("[ァ-ヶ]")

EXACT_SCORE = 100
CONTAINS_SCORE = 80
TOKEN_SCORE_BUDGET = 50
TOKEN_SCORE_CAP = 70


def normalize_search_query(query: str) -> str:
    """Fold full-width alphanumerics and spaces to half-width, collapse whitespace.

    Examples:
        >>> normalize_search_query("ｔｅｓｔ　１２３")
        'test 123'
        >>> normalize_search_query("  a \\t b  ")
        'a b'
    """
    normalized = _FULLWIDTH_ALNUM.sub(lambda m: chr(ord(m.group()) - _FULLWIDTH_OFFSET), query)
    normalized = normalized.replace("　", " ")
    normalized = _WHITESPACE_RUN.sub(" ", normalized)
    return normalized.strip()


def hiragana_to_katakana(text: str) -> str:
    """Shift hiragana to katakana.

    Examples:
        >>> hiragana_to_katakana("さとう")
        'サトウ'
    """
    return _HIRAGANA.sub(lambda m: chr(ord(m.group()) + _KANA_OFFSET), text)


def katakana_to_hiragana(text: str) -> str:
    """Shift katakana to hiragana.

    Examples:
        >>> katakana_to_hiragana("サトウ")
        'さとう'
    """
    return _KATAKANA.sub(lambda m: chr(ord(m.group()) - _KANA_OFFSET), text)


def generate_search_patterns(query: str) -> list[str]:
    """Return the de-duplicated variants {normalized, hiragana, katakana}.

    The normalized form always comes first; the folded forms follow only
    when they differ from it.
    """
    normalized = normalize_search_query(query)
    patterns = [normalized]
    for variant in (katakana_to_hiragana(normalized), hiragana_to_katakana(normalized)):
        if variant not in patterns:
            patterns.append(variant)
    return patterns


def calculate_search_score(text: str, query: str) -> float:
    """Relevance of *text* for *query* in [0, 100].

    100 for an exact match after normalization, 80 for containment,
    otherwise ``50 / token_count`` per query token found inside any text
    token, capped at 70. Empty input scores 0.
    """
    if not text or not query:
        return 0

    normalized_text = normalize_search_query(text.lower())
    normalized_query = normalize_search_query(query.lower())

    if normalized_text == normalized_query:
        return EXACT_SCORE
    if normalized_query in normalized_text:
        return CONTAINS_SCORE

    query_words = normalized_query.split(" ")
    text_words = normalized_text.split(" ")

    score = 0.0
    for query_word in query_words:
        if any(query_word in text_word for text_word in text_words):
            score += TOKEN_SCORE_BUDGET / len(query_words)

    return min(score, TOKEN_SCORE_CAP)


def best_search_score(text: str | None, query: str) -> float:
    """Highest :func:`calculate_search_score` over every kana variant of *query*."""
    if not text:
        return 0
    return max(calculate_search_score(text, p) for p in generate_search_patterns(query))
