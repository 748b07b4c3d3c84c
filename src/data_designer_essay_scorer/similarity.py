from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Sequence

from sklearn.feature_extraction.text import CountVectorizer
from sklearn.metrics.pairwise import cosine_similarity as _pairwise_cosine

from data_designer_essay_scorer.text import (
    affix_variants,
    content_tokens,
    count_markers,
    marker_pattern,
    normalize,
    split_sentences,
    stem,
    tokenize,
    word_similarity,
)

if TYPE_CHECKING:
    from data_designer_essay_scorer.core import Hyperparameters
    from data_designer_essay_scorer.lexicon import Lexicon

MATCH_TYPES = ("exact", "stem", "synonym", "fuzzy")

# ---------------------------------------------------------------------------
# Per-text view
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextView:
    """Tokens, stems and sentences of one answer, computed once per scoring call."""

    raw: str
    normalized: str
    tokens: tuple[str, ...]
    content: tuple[str, ...]
    stems: tuple[str, ...]
    sentences: tuple[str, ...]
    sentence_stems: tuple[frozenset[str], ...]
    token_set: frozenset[str] = field(init=False)
    stem_set: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "token_set", frozenset(self.tokens))
        object.__setattr__(self, "stem_set", frozenset(self.stems))

    @classmethod
    def build(cls, text: str, lexicon: Lexicon) -> TextView:
        content = content_tokens(text, lexicon)
        sentences = split_sentences(text)
        return cls(
            raw=text,
            normalized=normalize(text),
            tokens=tuple(tokenize(text)),
            content=tuple(content),
            stems=tuple(stem(t) for t in content),
            sentences=tuple(sentences),
            sentence_stems=tuple(frozenset(stem(t) for t in content_tokens(s, lexicon)) for s in sentences),
        )

    @property
    def word_count(self) -> int:
        return len(self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.tokens


# ---------------------------------------------------------------------------
# Concept extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConceptTerm:
    term: str
    weight: float
    variants: frozenset[str]

    @property
    def is_phrase(self) -> bool:
        return " " in self.term


def _phrase_terms(lexicon: Lexicon) -> tuple[str, ...]:
    phrases = [t for t in lexicon.technical_terms if " " in t]
    phrases.extend(t for t in lexicon.modern_terms if " " in t)
    for profile in lexicon.domains.values():
        phrases.extend(t for t in profile.concepts if " " in t)
    return tuple(dict.fromkeys(phrases))


def extract_concepts(text: str, lexicon: Lexicon) -> dict[str, ConceptTerm]:
    """Weighted concept terms keyed by stem (multi-word terms keyed by the phrase itself).

    Weight is ``1 + ln(frequency)`` times the mean sentence-position weight, boosted
    for technical terms, domain terms and sentences carrying context cues.
    """
    sentences = split_sentences(text) or ([text] if text and text.strip() else [])
    n = len(sentences)
    if n == 0:
        return {}

    context_lists = [lexicon.marker_list(name) for name in ("context_important", "context_define", "context_example")]
    phrases = _phrase_terms(lexicon)

    surface: dict[str, str] = {}
    counts: Counter[str] = Counter()
    position_sums: dict[str, float] = {}
    context_flags: dict[str, set[int]] = {}

    for i, sentence in enumerate(sentences):
        position = 1.0 - (i / n) * 0.5
        normalized = normalize(sentence)
        cues = {idx for idx, markers in enumerate(context_lists) if count_markers(normalized, markers)}
        keys = [(stem(t), t) for t in content_tokens(sentence, lexicon)]
        keys.extend((p, p) for p in phrases if marker_pattern(p).search(normalized))
        for key, token in keys:
            surface.setdefault(key, token)
            counts[key] += 1
            position_sums[key] = position_sums.get(key, 0.0) + position
            context_flags.setdefault(key, set()).update(cues)

    concepts: dict[str, ConceptTerm] = {}
    for key, term in surface.items():
        count = counts[key]
        weight = (1.0 + math.log(count)) * (position_sums[key] / count)
        if " " in term or key in lexicon.technical_stems or term in lexicon.technical_terms:
            weight *= 1.5
        if key in lexicon.domain_stems or term in lexicon.domain_terms:
            weight *= 1.3
        weight *= 1.2 ** len(context_flags[key])
        variants = {key, *affix_variants(term, lexicon)}
        variants.update(lexicon.synonym_stems.get(key, ()))
        variants.update(lexicon.related_stems.get(key, ()))
        concepts[key] = ConceptTerm(term=term, weight=weight, variants=frozenset(variants))
    return concepts


# ---------------------------------------------------------------------------
# Matching cascade
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConceptMatch:
    coverage: float
    factors: dict[str, float]
    counts: dict[str, int]


@lru_cache(maxsize=100_000)
def _fuzzy_similarity(a: str, b: str) -> float:
    return word_similarity(a, b)


def _fuzzy_candidates(student: TextView) -> tuple[str, ...]:
    return tuple(sorted({t for t in student.content if len(t) >= 4}))


def match_factor(
    key: str,
    concept: ConceptTerm,
    student: TextView,
    lexicon: Lexicon,
    hp: Hyperparameters,
    candidates: tuple[str, ...] = (),
) -> tuple[str | None, float]:
    """Walk the exact -> stem -> synonym -> fuzzy cascade for one reference concept."""
    if concept.is_phrase:
        if marker_pattern(concept.term).search(student.normalized):
            return "exact", hp.match_exact
        if all(stem(w) in student.stem_set for w in concept.term.split()):
            return "stem", hp.match_stem
        return None, 0.0
    if concept.term in student.token_set:
        return "exact", hp.match_exact
    if key in student.stem_set:
        return "stem", hp.match_stem
    if lexicon.synonym_stems.get(key, frozenset()) & student.stem_set:
        return "synonym", hp.match_synonym
    term = concept.term
    if len(term) >= hp.fuzzy_min_length:
        for candidate in candidates:
            longer = max(len(term), len(candidate))
            if abs(len(term) - len(candidate)) / longer >= 1.0 - hp.fuzzy_threshold:
                continue
            if _fuzzy_similarity(term, candidate) > hp.fuzzy_threshold:
                return "fuzzy", hp.match_fuzzy
    return None, 0.0


def match_concepts(
    reference: dict[str, ConceptTerm], student: TextView, lexicon: Lexicon, hp: Hyperparameters
) -> ConceptMatch:
    counts = {t: 0 for t in MATCH_TYPES}
    factors: dict[str, float] = {}
    candidates = _fuzzy_candidates(student)
    total = 0.0
    earned = 0.0
    for key, concept in reference.items():
        kind, factor = match_factor(key, concept, student, lexicon, hp, candidates)
        if kind is not None:
            counts[kind] += 1
        factors[key] = factor
        total += concept.weight
        earned += concept.weight * factor
    coverage = earned / total if total > 0 else 0.0
    return ConceptMatch(coverage=coverage, factors=factors, counts=counts)


# ---------------------------------------------------------------------------
# Vector similarity
# ---------------------------------------------------------------------------


def _as_is(doc: Sequence[str]) -> Sequence[str]:
    return doc


def cosine_similarity(a: Sequence[str], b: Sequence[str]) -> float:
    """Cosine of the term-count vectors of two pre-tokenized documents."""
    if not a or not b:
        return 0.0
    counts = CountVectorizer(analyzer=_as_is).fit_transform([list(a), list(b)])
    return float(_pairwise_cosine(counts[0], counts[1])[0, 0])


def jaccard_similarity(a: set[str] | frozenset[str], b: set[str] | frozenset[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def sentence_recall(reference: TextView, student: TextView) -> tuple[float, ...]:
    """Share of each reference sentence's content stems that the student used anywhere."""
    recalls = []
    for sentence_stems in reference.sentence_stems:
        if sentence_stems:
            recalls.append(len(sentence_stems & student.stem_set) / len(sentence_stems))
    return tuple(recalls)


@dataclass(frozen=True)
class SimilarityProfile:
    """Read-only comparison of a student answer against the reference, shared by every layer."""

    coverage: float
    cosine: float
    jaccard: float
    blended: float
    technical_coverage: float
    sentence_recall: tuple[float, ...]
    match: ConceptMatch

    @property
    def grounding(self) -> float:
        return math.sqrt(self.coverage)

    @property
    def mean_recall(self) -> float:
        if not self.sentence_recall:
            return 0.0
        return sum(self.sentence_recall) / len(self.sentence_recall)


def _technical_coverage(reference: dict[str, ConceptTerm], match: ConceptMatch, lexicon: Lexicon) -> float:
    total = 0.0
    earned = 0.0
    for key, concept in reference.items():
        if concept.is_phrase or key in lexicon.technical_stems or key in lexicon.domain_stems:
            total += concept.weight
            earned += concept.weight * match.factors.get(key, 0.0)
    return earned / total if total > 0 else 0.0


def compare(
    reference: TextView,
    student: TextView,
    reference_concepts: dict[str, ConceptTerm],
    lexicon: Lexicon,
    hp: Hyperparameters,
) -> SimilarityProfile:
    match = match_concepts(reference_concepts, student, lexicon, hp)
    cosine = cosine_similarity(reference.stems, student.stems)
    jaccard = jaccard_similarity(reference.stem_set, student.stem_set)
    blended = hp.blend_jaccard * jaccard + hp.blend_cosine * cosine + hp.blend_overlap * match.coverage
    return SimilarityProfile(
        coverage=match.coverage,
        cosine=cosine,
        jaccard=jaccard,
        blended=blended,
        technical_coverage=_technical_coverage(reference_concepts, match, lexicon),
        sentence_recall=sentence_recall(reference, student),
        match=match,
    )


def advanced_similarity(reference: TextView, student: TextView, hp: Hyperparameters) -> float:
    """Jaccard/cosine/stem-overlap blend used by the off-topic gate."""
    cosine = cosine_similarity(reference.stems, student.stems)
    jaccard = jaccard_similarity(reference.stem_set, student.stem_set)
    overlap = len(reference.stem_set & student.stem_set) / len(reference.stem_set) if reference.stem_set else 0.0
    return hp.blend_jaccard * jaccard + hp.blend_cosine * cosine + hp.blend_overlap * overlap
