from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING, Iterable

from nltk.stem import PorterStemmer
from rapidfuzz.distance import Levenshtein

if TYPE_CHECKING:
    from data_designer_essay_scorer.lexicon import Lexicon

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

_NON_WORD_RE = re.compile(r"[^\w\s]+")
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+[\"'”’)\]]*(?:\s+|$)")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

# Inflections accepted after a marker phrase so "principle" also hits "principles".
_MARKER_SUFFIX = r"(?:s|es|d|ed|ing|ly|ion|ions|ation|al)?"

_STEMMER = PorterStemmer()


def normalize(text: str | None) -> str:
    """Lower-case, replace punctuation with spaces and collapse whitespace."""
    if not text:
        return ""
    lowered = _NON_WORD_RE.sub(" ", text.lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def tokenize(text: str | None) -> list[str]:
    return normalize(text).split()


def content_tokens(text: str | None, lexicon: Lexicon) -> list[str]:
    return [t for t in tokenize(text) if len(t) > 2 and t.isalpha() and t not in lexicon.stopwords]


def split_sentences(text: str | None) -> list[str]:
    if not text:
        return []
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def split_paragraphs(text: str | None) -> list[str]:
    if not text:
        return []
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


# ---------------------------------------------------------------------------
# Morphology
# ---------------------------------------------------------------------------


@lru_cache(maxsize=50_000)
def stem(word: str) -> str:
    return _STEMMER.stem(word.lower())


def affix_variants(word: str, lexicon: Lexicon) -> set[str]:
    """Return the word plus the forms left after stripping a known prefix or suffix."""
    variants = {word}
    for suffix in lexicon.suffixes:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            variants.add(word[: -len(suffix)])
    for prefix in lexicon.prefixes:
        if word.startswith(prefix) and len(word) - len(prefix) >= 3:
            variants.add(word[len(prefix) :])
    return variants


def word_similarity(a: str, b: str) -> float:
    """Edit-distance similarity in [0, 1], relative to the longer word."""
    return Levenshtein.normalized_similarity(a, b)


# ---------------------------------------------------------------------------
# Marker phrases
# ---------------------------------------------------------------------------


@lru_cache(maxsize=4096)
def marker_pattern(phrase: str) -> re.Pattern[str]:
    words = normalize(phrase).split()
    body = r"\s+".join(re.escape(w) for w in words)
    return re.compile(r"(?<!\w)" + body + _MARKER_SUFFIX + r"(?!\w)")


def count_markers(normalized_text: str, phrases: Iterable[str]) -> int:
    """Number of distinct phrases present in already-normalized text."""
    if not normalized_text:
        return 0
    return sum(1 for p in dict.fromkeys(phrases) if marker_pattern(p).search(normalized_text))


def count_occurrences(normalized_text: str, phrases: Iterable[str]) -> int:
    if not normalized_text:
        return 0
    return sum(len(marker_pattern(p).findall(normalized_text)) for p in dict.fromkeys(phrases))


def relative_presence(student_count: int, reference_count: int) -> float:
    """How much of the reference's use of a marker family the student matches.

    A family the reference never uses is not expected from the student either.
    """
    if reference_count <= 0:
        return 1.0
    return min(1.0, student_count / reference_count)
