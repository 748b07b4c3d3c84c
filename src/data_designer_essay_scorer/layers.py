from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from data_designer_essay_scorer.errors import AnalyzerFailure
from data_designer_essay_scorer.lexicon import DomainProfile, Lexicon
from data_designer_essay_scorer.similarity import ConceptTerm, SimilarityProfile, TextView
from data_designer_essay_scorer.text import (
    count_markers,
    count_occurrences,
    normalize,
    relative_presence,
    split_paragraphs,
)

if TYPE_CHECKING:
    from data_designer_essay_scorer.core import Hyperparameters, QuestionMetadata

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LayerScore:
    score: float
    max_score: float
    metrics: dict[str, float] = field(default_factory=dict)
    feedback: str = ""

    def __post_init__(self) -> None:
        if not (0.0 <= self.score <= self.max_score):
            raise ValueError(f"Layer score {self.score} outside [0, {self.max_score}]")

    @classmethod
    def zero(cls, max_score: float) -> LayerScore:
        return cls(score=0.0, max_score=max_score)

    @property
    def fraction(self) -> float:
        return self.score / self.max_score if self.max_score > 0 else 0.0

    def to_payload(self) -> dict[str, float]:
        return {
            "score": round(self.score, 2),
            "maxScore": round(self.max_score, 2),
            **{k: round(v, 3) for k, v in self.metrics.items()},
        }


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a layer may read. Built once per request and never mutated."""

    reference: TextView
    student: TextView
    reference_concepts: dict[str, ConceptTerm]
    profile: SimilarityProfile
    domain: DomainProfile
    lexicon: Lexicon
    hp: Hyperparameters
    question: QuestionMetadata | None = None

    def markers(self, name: str) -> tuple[int, int]:
        """Distinct marker hits of one family as ``(student, reference)``."""
        phrases = self.lexicon.marker_list(name)
        return count_markers(self.student.normalized, phrases), count_markers(self.reference.normalized, phrases)

    def relative(self, name: str) -> float:
        return relative_presence(*self.markers(name))

    def grounded(self, intrinsic: float) -> float:
        """Scale a style score by how much of the reference the answer actually covers."""
        floor = self.hp.style_floor
        return self.profile.grounding * (floor + (1.0 - floor) * intrinsic)


_LayerFn = Callable[[AnalysisContext], "tuple[float, dict[str, float]]"]


@dataclass(frozen=True)
class LayerScorer:
    name: str
    fn: _LayerFn

    def score(self, ctx: AnalysisContext, max_score: float) -> LayerScore:
        if ctx.student.is_empty or max_score <= 0:
            return LayerScore.zero(max_score)
        fraction, metrics = self.fn(ctx)
        if not math.isfinite(fraction) or any(not math.isfinite(v) for v in metrics.values()):
            raise AnalyzerFailure(self.name, "produced a non-finite value")
        fraction = max(0.0, min(1.0, fraction))
        return LayerScore(score=fraction * max_score, max_score=max_score, metrics=metrics)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SENTENCE_START_RE = re.compile(r"^[\"'(\[]*[A-Z0-9]")
_DOUBLED_WORD_RE = re.compile(r"\b(\w+)\s+\1\b", re.IGNORECASE)
_LOWER_I_RE = re.compile(r"(?:^|\s)i(?:\s|$|')")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+[,.;:!?]")
_DOUBLE_PUNCT_RE = re.compile(r"[,;:]{2,}|\.{2}(?!\.)")
_TERMINAL_PUNCT_RE = re.compile(r"[.!?][\"'”’)\]]*\s*$")


def _weighted(parts: dict[str, float], weights: dict[str, float]) -> float:
    return sum(parts[k] * w for k, w in weights.items())


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _capped_ratio(student: float, reference: float) -> float:
    if reference <= 0:
        return 1.0
    return min(1.0, student / reference)


def _graduated(count: int, levels: tuple[tuple[int, float], ...]) -> float:
    for minimum, value in levels:
        if count >= minimum:
            return value
    return 0.0


def detect_domain(text: str, lexicon: Lexicon, question: QuestionMetadata | None = None) -> DomainProfile:
    """Pick the domain whose trigger words appear most often; ties go to the earlier domain."""
    normalized = normalize(" ".join(filter(None, [text, question.text if question else None])))
    best_name, best_hits = lexicon.default_domain, 0
    for name, profile in lexicon.domains.items():
        hits = count_occurrences(normalized, profile.triggers)
        if hits > best_hits:
            best_name, best_hits = name, hits
    return lexicon.domains[best_name]


def technical_stem_count(view: TextView, lexicon: Lexicon) -> int:
    return len(view.stem_set & lexicon.technical_stems)


def advanced_word_ratio(view: TextView, hp: Hyperparameters) -> float:
    return _ratio(sum(1 for t in view.tokens if len(t) >= hp.advanced_word_length), view.word_count)


def sentence_continuity(view: TextView, lexicon: Lexicon) -> float:
    """Share of consecutive sentence pairs linked by a shared concept or a transition marker."""
    if len(view.sentences) < 2:
        return 0.0
    transitions = lexicon.marker_list("transition")
    linked = 0
    for i in range(1, len(view.sentences)):
        shared = view.sentence_stems[i - 1] & view.sentence_stems[i]
        if shared or count_markers(normalize(view.sentences[i]), transitions):
            linked += 1
    return linked / (len(view.sentences) - 1)


def grammar_errors(view: TextView) -> int:
    errors = sum(1 for s in view.sentences if not _SENTENCE_START_RE.match(s))
    errors += len(_DOUBLED_WORD_RE.findall(view.raw))
    errors += len(_LOWER_I_RE.findall(view.raw))
    errors += len(_SPACE_BEFORE_PUNCT_RE.findall(view.raw))
    errors += len(_DOUBLE_PUNCT_RE.findall(view.raw))
    if view.raw.strip() and not _TERMINAL_PUNCT_RE.search(view.raw):
        errors += 1
    return errors


def wrong_domain_hits(ctx: AnalysisContext) -> int:
    hits = 0
    for name in ctx.domain.contrasts:
        profile = ctx.lexicon.domains.get(name)
        if profile is None:
            continue
        foreign = [t for t in profile.concepts if t not in ctx.domain.concepts]
        foreign = [t for t in foreign if not count_markers(ctx.reference.normalized, [t])]
        hits += count_markers(ctx.student.normalized, foreign)
    return hits


# ---------------------------------------------------------------------------
# Content / semantic / quality layers
# ---------------------------------------------------------------------------

_CONTENT_WEIGHTS = {
    "keyConceptCoverage": 0.30,
    "factualAccuracy": 0.20,
    "completeness": 0.15,
    "relevance": 0.15,
    "analyticalDepth": 0.05,
    "breadth": 0.10,
    "precision": 0.03,
    "currency": 0.02,
}


def content_accuracy(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    hp = ctx.hp
    profile = ctx.profile

    wrong = wrong_domain_hits(ctx)
    factual = max(0.0, profile.technical_coverage - min(hp.wrong_domain_cap, wrong * hp.wrong_domain_step))

    ranked = sorted(ctx.reference_concepts.items(), key=lambda kv: (-kv[1].weight, kv[0]))[: hp.checklist_size]
    checklist = _ratio(sum(1 for key, _ in ranked if profile.match.factors.get(key, 0.0) >= hp.match_fuzzy), len(ranked))
    length_ratio = min(1.0, _ratio(ctx.student.word_count, ctx.reference.word_count))
    completeness = 0.7 * checklist + 0.3 * length_ratio

    causal = count_markers(ctx.student.normalized, ctx.lexicon.marker_list("causal"))
    recalls = profile.sentence_recall
    breadth = _ratio(sum(1 for r in recalls if r >= hp.breadth_recall_threshold), len(recalls))
    precision = _capped_ratio(technical_stem_count(ctx.student, ctx.lexicon), technical_stem_count(ctx.reference, ctx.lexicon))
    currency = count_markers(ctx.student.normalized, ctx.lexicon.modern_terms)

    metrics = {
        "keyConceptCoverage": profile.grounding,
        "factualAccuracy": factual,
        "completeness": completeness,
        "relevance": profile.mean_recall,
        "analyticalDepth": min(1.0, causal / hp.causal_markers_for_full),
        "breadth": breadth,
        "precision": precision,
        "currency": min(1.0, currency / hp.modern_terms_for_full),
    }
    score = _weighted(metrics, _CONTENT_WEIGHTS)
    metrics["wrongDomainTerms"] = float(wrong)
    metrics["exactMatches"] = float(profile.match.counts["exact"])
    metrics["stemMatches"] = float(profile.match.counts["stem"])
    metrics["synonymMatches"] = float(profile.match.counts["synonym"])
    metrics["fuzzyMatches"] = float(profile.match.counts["fuzzy"])
    return score, metrics


_SEMANTIC_WEIGHTS = {
    "conceptAlignment": 0.35,
    "semanticDepth": 0.25,
    "meaningPreservation": 0.20,
    "contextualUnderstanding": 0.15,
    "semanticCoherence": 0.05,
}
_DEPTH_WEIGHTS = {"nuance": 0.30, "implication": 0.25, "relationship": 0.20, "abstraction": 0.15, "precision": 0.10}


def semantic_understanding(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    profile = ctx.profile
    depth_parts = {name: ctx.relative(name) for name in _DEPTH_WEIGHTS}
    on_topic = _ratio(len(ctx.student.stem_set & ctx.reference.stem_set), len(ctx.student.stem_set))
    development = math.sqrt(min(1.0, _ratio(ctx.student.word_count, ctx.reference.word_count)))
    continuity = _capped_ratio(
        sentence_continuity(ctx.student, ctx.lexicon), sentence_continuity(ctx.reference, ctx.lexicon)
    )

    metrics = {
        "conceptAlignment": 0.6 * profile.grounding + 0.4 * profile.cosine,
        "semanticDepth": profile.grounding * _weighted(depth_parts, _DEPTH_WEIGHTS),
        "meaningPreservation": profile.blended,
        "contextualUnderstanding": on_topic * development,
        "semanticCoherence": continuity,
    }
    score = _weighted(metrics, _SEMANTIC_WEIGHTS)
    metrics.update({f"depth{k[0].upper()}{k[1:]}": v for k, v in depth_parts.items()})
    return score, metrics


_QUALITY_WEIGHTS = {
    "sophistication": 0.30,
    "comprehensiveness": 0.25,
    "insightDepth": 0.20,
    "argumentation": 0.15,
    "innovation": 0.10,
}


def quality_differentiation(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    hp = ctx.hp
    recalls = ctx.profile.sentence_recall
    breadth = _ratio(sum(1 for r in recalls if r >= hp.breadth_recall_threshold), len(recalls))
    structure = min(1.0, _ratio(len(ctx.student.sentences), len(ctx.reference.sentences)))
    metrics = {
        "sophistication": _capped_ratio(advanced_word_ratio(ctx.student, hp), advanced_word_ratio(ctx.reference, hp)),
        "comprehensiveness": 0.6 * breadth + 0.4 * structure,
        "insightDepth": ctx.relative("insight"),
        "argumentation": ctx.relative("argumentation"),
        "innovation": ctx.relative("innovation"),
    }
    intrinsic = _weighted(metrics, _QUALITY_WEIGHTS)
    metrics["intrinsic"] = intrinsic
    return ctx.grounded(intrinsic), metrics


# ---------------------------------------------------------------------------
# Style / reasoning layers
# ---------------------------------------------------------------------------

_WRITING_WEIGHTS = {
    "grammar": 0.25,
    "vocabulary": 0.20,
    "sentenceStructure": 0.15,
    "paragraphOrganization": 0.15,
    "academicStyle": 0.10,
    "clarity": 0.08,
    "concision": 0.05,
    "flow": 0.02,
}


def _sentence_structure(view: TextView, hp: Hyperparameters) -> float:
    if not view.sentences:
        return 0.0
    average = view.word_count / len(view.sentences)
    if average < hp.ideal_sentence_words_min:
        return average / hp.ideal_sentence_words_min
    if average > hp.ideal_sentence_words_max:
        return max(0.0, 1.0 - (average - hp.ideal_sentence_words_max) / hp.ideal_sentence_words_max)
    return 1.0


def _sentence_word_counts(view: TextView) -> list[int]:
    return [len(normalize(s).split()) for s in view.sentences]


def writing_quality(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    hp = ctx.hp
    student = ctx.student
    errors = grammar_errors(student)
    sentence_total = max(1, len(student.sentences))
    ttr = _ratio(len(student.token_set), student.word_count)
    paragraphs = split_paragraphs(student.raw)
    lengths = _sentence_word_counts(student)
    clear = sum(1 for n in lengths if hp.clear_sentence_words_min <= n <= hp.clear_sentence_words_max)
    fillers = count_occurrences(student.normalized, ctx.lexicon.marker_list("filler"))

    metrics = {
        "grammar": max(0.0, 1.0 - errors / sentence_total),
        "vocabulary": min(1.0, 0.7 * ttr + 0.3 * min(1.0, advanced_word_ratio(student, hp) / hp.advanced_word_ratio_target)),
        "sentenceStructure": _sentence_structure(student, hp),
        "paragraphOrganization": 1.0 if len(paragraphs) > 1 else min(1.0, len(student.sentences) / 3),
        "academicStyle": ctx.relative("academic"),
        "clarity": _ratio(clear, len(lengths)),
        "concision": max(0.0, 1.0 - 10 * _ratio(fillers, student.word_count)),
        "flow": ctx.relative("transition"),
    }
    general = _weighted(metrics, _WRITING_WEIGHTS)
    style = relative_presence(
        count_markers(student.normalized, ctx.domain.style), count_markers(ctx.reference.normalized, ctx.domain.style)
    )
    intrinsic = 0.7 * general + 0.3 * style
    metrics.update({"styleSpecific": style, "grammarErrors": float(errors), "intrinsic": intrinsic})
    return ctx.grounded(intrinsic), metrics


_CRITICAL_WEIGHTS = {
    "analyticalDepth": 0.25,
    "logicalReasoning": 0.20,
    "evidenceEvaluation": 0.15,
    "counterArgument": 0.15,
    "synthesis": 0.10,
    "evaluation": 0.08,
    "creativity": 0.05,
    "metacognition": 0.02,
}
_CRITICAL_MARKERS = {
    "analyticalDepth": "analytical",
    "logicalReasoning": "logical",
    "evidenceEvaluation": "evidence",
    "counterArgument": "counter",
    "synthesis": "synthesis",
    "evaluation": "evaluation",
    "creativity": "creativity",
    "metacognition": "metacognition",
}


def critical_thinking(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    metrics = {metric: ctx.relative(family) for metric, family in _CRITICAL_MARKERS.items()}
    intrinsic = _weighted(metrics, _CRITICAL_WEIGHTS)
    metrics["intrinsic"] = intrinsic
    return ctx.grounded(intrinsic), metrics


_DOMAIN_LEVELS = ((4, 1.0), (3, 0.75), (2, 0.5), (1, 0.25))


def technical_precision(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    student, reference = ctx.student, ctx.reference
    concept_hits = count_markers(student.normalized, ctx.domain.concepts)
    metrics = {
        "domainKnowledge": _graduated(concept_hits, _DOMAIN_LEVELS),
        "terminologyAccuracy": _capped_ratio(
            technical_stem_count(student, ctx.lexicon), technical_stem_count(reference, ctx.lexicon)
        ),
        "methodology": relative_presence(
            count_markers(student.normalized, ctx.domain.methodology),
            count_markers(reference.normalized, ctx.domain.methodology),
        ),
    }
    intrinsic = 0.3 * metrics["domainKnowledge"] + 0.7 * (0.5 * metrics["terminologyAccuracy"] + 0.5 * metrics["methodology"])
    metrics.update({"domainConceptMatches": float(concept_hits), "intrinsic": intrinsic})
    return ctx.grounded(intrinsic), metrics


def cognitive_complexity(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    metrics = {
        "abstractThinking": ctx.relative("abstraction"),
        "analyticalThinking": ctx.relative("analytical"),
        "synthesis": ctx.relative("synthesis"),
        "evaluation": ctx.relative("evaluation"),
    }
    intrinsic = sum(metrics.values()) / len(metrics)
    metrics["intrinsic"] = intrinsic
    return ctx.grounded(intrinsic), metrics


_FRAMEWORK_LEVELS = ((3, 1.0), (2, 0.67), (1, 0.33))


def conceptual_depth(ctx: AnalysisContext) -> tuple[float, dict[str, float]]:
    student_hits, reference_hits = ctx.markers("framework")
    metrics = {
        "conceptualUnderstanding": ctx.profile.grounding,
        "interconnectedness": ctx.relative("relationship"),
        "theoreticalFramework": _capped_ratio(
            _graduated(student_hits, _FRAMEWORK_LEVELS), _graduated(reference_hits, _FRAMEWORK_LEVELS)
        ),
    }
    intrinsic = (
        0.4 * metrics["conceptualUnderstanding"]
        + 0.3 * metrics["interconnectedness"]
        + 0.3 * metrics["theoreticalFramework"]
    )
    metrics["intrinsic"] = intrinsic
    return ctx.grounded(intrinsic), metrics


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_registry(scorers: list[LayerScorer]) -> dict[str, LayerScorer]:
    registry: dict[str, LayerScorer] = {}
    for scorer in scorers:
        if scorer.name in registry:
            raise ValueError(f"Duplicate layer name {scorer.name!r}")
        registry[scorer.name] = scorer
    return registry


LAYER_REGISTRY: dict[str, LayerScorer] = build_registry([
    LayerScorer("contentAccuracy", content_accuracy),
    LayerScorer("semanticUnderstanding", semantic_understanding),
    LayerScorer("qualityDifferentiation", quality_differentiation),
    LayerScorer("writingQuality", writing_quality),
    LayerScorer("criticalThinking", critical_thinking),
    LayerScorer("technicalPrecision", technical_precision),
    LayerScorer("cognitiveComplexity", cognitive_complexity),
    LayerScorer("conceptualDepth", conceptual_depth),
])
