from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from data_designer_essay_scorer.similarity import ConceptTerm, TextView, advanced_similarity
from data_designer_essay_scorer.text import (
    affix_variants,
    count_markers,
    count_occurrences,
    normalize,
    split_sentences,
    stem,
)

if TYPE_CHECKING:
    from data_designer_essay_scorer.core import Hyperparameters
    from data_designer_essay_scorer.lexicon import Lexicon

# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_LONG_ALPHA_RUN_RE = re.compile(r"[a-z]{25,}")
_LETTER_DIGIT_RE = re.compile(r"[a-z]{4,}[0-9]{4,}|[0-9]{4,}[a-z]{4,}")
_REPEATED_CHAR_RUN_RE = re.compile(r"(.)\1{6,}")
_TRIPLE_CHAR_RE = re.compile(r"(.)\1{2,}")
_ALPHA_RUN_20_RE = re.compile(r"[a-zA-Z]{20,}")
_CONSONANT_RUN_RE = re.compile(r"[bcdfghjklmnpqrstvwxz]{5,}")
_VOWELS = frozenset("aeiou")


@lru_cache(maxsize=16)
def _keyboard_re(rows: tuple[str, ...], run: int) -> re.Pattern[str] | None:
    windows = {row[i : i + run] for row in rows for i in range(len(row) - run + 1)}
    if not windows:
        return None
    return re.compile("|".join(sorted(windows, key=lambda w: (-len(w), w))))


@dataclass(frozen=True)
class GateReport:
    gibberish: float
    off_topic: float
    sophistication: float
    length_factor: float


# ---------------------------------------------------------------------------
# Gibberish
# ---------------------------------------------------------------------------


def sophistication(normalized_text: str, lexicon: Lexicon, hp: Hyperparameters) -> float:
    """Density of explanatory connectives, in [0, 1]."""
    hits = count_markers(normalized_text, lexicon.marker_list("sophistication"))
    return min(1.0, hits / hp.sophistication_markers_for_full)


def is_valid_word(word: str, lexicon: Lexicon) -> bool:
    if word in lexicon.common_words:
        return True
    if len(word) < 3 or not word.isalpha():
        return False
    most_common = Counter(word).most_common(1)[0][1]
    if most_common > len(word) * 0.6:
        return False
    vowel_ratio = sum(1 for c in word if c in _VOWELS) / len(word)
    if vowel_ratio < 0.1 or vowel_ratio > 0.8:
        return False
    if _TRIPLE_CHAR_RE.search(word) or _CONSONANT_RUN_RE.search(word):
        return False
    return True


def _pattern_signal(lowered: str, lexicon: Lexicon, hp: Hyperparameters) -> float:
    matches = (
        len(_LONG_ALPHA_RUN_RE.findall(lowered))
        + len(_LETTER_DIGIT_RE.findall(lowered))
        + len(_REPEATED_CHAR_RUN_RE.findall(lowered))
    )
    keyboard = _keyboard_re(lexicon.keyboard_rows, hp.keyboard_run_length)
    if keyboard is not None:
        matches += len(keyboard.findall(lowered))
    return matches * hp.gibberish_pattern_step


def _invalid_word_ratio(words: list[str], lexicon: Lexicon) -> float:
    alphabetic = [w for w in words if not w.isdigit()]
    if not alphabetic:
        return 0.0
    return sum(1 for w in alphabetic if not is_valid_word(w, lexicon)) / len(alphabetic)


def _repetition_signal(lowered: str, words: list[str]) -> float:
    score = 0.2 * len(_TRIPLE_CHAR_RE.findall(lowered))
    trigrams = Counter(tuple(words[i : i + 3]) for i in range(len(words) - 2))
    score += 0.3 * sum(1 for count in trigrams.values() if count > 1)
    return min(1.0, score)


def _structure_signal(text: str) -> float:
    score = 0.0
    if len(split_sentences(text)) < 2:
        score += 0.3
    if sum(1 for c in text if c.isspace()) / len(text) < 0.1:
        score += 0.4
    score += 0.2 * len(_ALPHA_RUN_20_RE.findall(text))
    return min(1.0, score)


def detect_gibberish(text: str, lexicon: Lexicon, hp: Hyperparameters) -> float:
    """Estimate how much of ``text`` is noise: 0 is coherent prose, 1 is pure noise.

    Four signals (regex patterns, invalid words, repetition, structure) are summed and
    then damped by text length and connective sophistication, so long well-formed
    answers are not punished for the occasional odd token.
    """
    if not text or len(text.strip()) < hp.gibberish_min_chars:
        return hp.gibberish_short_text_score
    lowered = text.lower()
    normalized = normalize(text)
    words = normalized.split()

    base = (
        _pattern_signal(lowered, lexicon, hp)
        + _invalid_word_ratio(words, lexicon) * hp.gibberish_invalid_weight
        + _repetition_signal(lowered, words) * hp.gibberish_repetition_weight
        + _structure_signal(text) * hp.gibberish_structure_weight
    )
    length_factor = min(1.0, len(text) / hp.gibberish_length_basis)
    damped = base * (1 - length_factor * hp.gibberish_length_damping) * (
        1 - sophistication(normalized, lexicon, hp) * hp.gibberish_sophistication_damping
    )
    return max(0.0, min(1.0, damped))


# ---------------------------------------------------------------------------
# Off-topic
# ---------------------------------------------------------------------------


def domain_terms(view: TextView, lexicon: Lexicon) -> set[str]:
    """Stems of the longer content words plus their affix variants and related concepts."""
    terms: set[str] = set()
    for token in view.content:
        if len(token) <= 3:
            continue
        key = stem(token)
        terms.add(key)
        terms.update(stem(v) for v in affix_variants(token, lexicon))
        terms.update(lexicon.related_stems.get(key, ()))
    return terms


def concept_alignment(reference_concepts: dict[str, ConceptTerm], student: TextView) -> float:
    total = sum(c.weight for c in reference_concepts.values())
    if total <= 0:
        return 0.0
    earned = 0.0
    for key, concept in reference_concepts.items():
        if key in student.stem_set or concept.term in student.token_set:
            earned += concept.weight
        elif concept.variants & (student.stem_set | student.token_set):
            earned += concept.weight * 0.7
    return earned / total


def topic_coherence(reference: TextView, student: TextView, lexicon: Lexicon, hp: Hyperparameters) -> float:
    topics = [key for key, _ in Counter(reference.stems).most_common(hp.topic_word_count)]
    if not topics:
        return 0.0
    present = sum(1 for key in topics if key in student.stem_set) / len(topics)
    has_transition = 1.0 if count_markers(student.normalized, lexicon.marker_list("transition")) else 0.0
    return 0.8 * present + 0.2 * has_transition


def unrelated_content(student: TextView, lexicon: Lexicon) -> float:
    total = sum(
        category.weight * count_occurrences(student.normalized, category.patterns) for category in lexicon.unrelated
    )
    return min(1.0, total / 10)


def detect_off_topic(
    reference: TextView,
    student: TextView,
    reference_concepts: dict[str, ConceptTerm],
    lexicon: Lexicon,
    hp: Hyperparameters,
) -> float:
    """Topical-mismatch penalty in ``[0, hp.off_topic_cap]``.

    Accrues from shortfalls in similarity, concept alignment and topic coherence plus
    known unrelated-content phrases, and is relieved by shared domain vocabulary.
    """
    similarity = advanced_similarity(reference, student, hp)
    alignment = concept_alignment(reference_concepts, student)
    coherence = topic_coherence(reference, student, lexicon, hp)

    penalty = 0.0
    if similarity < hp.off_topic_similarity_floor:
        penalty += (hp.off_topic_similarity_floor - similarity) * hp.off_topic_similarity_gain
    if alignment < hp.off_topic_alignment_floor:
        penalty += (hp.off_topic_alignment_floor - alignment) * hp.off_topic_alignment_gain
    if coherence < hp.off_topic_coherence_floor:
        penalty += (hp.off_topic_coherence_floor - coherence) * hp.off_topic_coherence_gain
    penalty += unrelated_content(student, lexicon) * hp.off_topic_unrelated_weight

    student_terms = domain_terms(student, lexicon)
    if student_terms:
        overlap = len(student_terms & domain_terms(reference, lexicon)) / len(student_terms)
        if overlap > hp.off_topic_overlap_threshold:
            penalty -= hp.off_topic_overlap_relief
    relevance = 0.4 * alignment + 0.4 * similarity + 0.2 * coherence
    if relevance > hp.off_topic_relevance_threshold:
        penalty -= hp.off_topic_relevance_relief
    return max(0.0, min(hp.off_topic_cap, penalty))


def run_gates(
    reference: TextView,
    student: TextView,
    reference_concepts: dict[str, ConceptTerm],
    lexicon: Lexicon,
    hp: Hyperparameters,
) -> GateReport:
    return GateReport(
        gibberish=detect_gibberish(student.raw, lexicon, hp),
        off_topic=detect_off_topic(reference, student, reference_concepts, lexicon, hp),
        sophistication=sophistication(student.normalized, lexicon, hp),
        length_factor=min(1.0, len(student.raw) / hp.gibberish_length_basis),
    )
