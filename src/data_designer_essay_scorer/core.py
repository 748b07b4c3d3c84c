# Automated essay scorer: compares a free-text answer with a reference answer through
# eight weighted analysis layers, two anti-gaming gates (gibberish and off-topic) and a
# capped bonus/penalty stage, then maps the result to a grade, band and feedback.

from __future__ import annotations

import logging
import math
import numbers
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from data_designer_essay_scorer.aggregate import Aggregate, aggregate
from data_designer_essay_scorer.errors import AnalyzerFailure, InvalidInput, ScoringFailure
from data_designer_essay_scorer.gates import GateReport, run_gates
from data_designer_essay_scorer.grading import (
    assessment_for,
    band_for,
    build_feedback,
    grade_for,
    ielts_metrics,
    layer_feedback,
    toefl_metrics,
)
from data_designer_essay_scorer.layers import LAYER_REGISTRY, AnalysisContext, LayerScore, LayerScorer, detect_domain
from data_designer_essay_scorer.lexicon import Lexicon, load_lexicon
from data_designer_essay_scorer.similarity import TextView, compare, extract_concepts

# ---------------------------------------------------------------------------
# Hyperparameters
# ---------------------------------------------------------------------------

DEFAULT_LAYER_WEIGHTS: dict[str, float] = {
    "contentAccuracy": 0.20,
    "semanticUnderstanding": 0.20,
    "qualityDifferentiation": 0.20,
    "writingQuality": 0.15,
    "criticalThinking": 0.10,
    "technicalPrecision": 0.08,
    "cognitiveComplexity": 0.05,
    "conceptualDepth": 0.02,
}


@dataclass(frozen=True)
class Hyperparameters:
    """Tunable weights, thresholds, factors and caps used by the scorer."""

    layer_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_LAYER_WEIGHTS))

    max_answer_chars: int = 5000
    pass_ratio: float = 0.6
    feedback_threshold: float = 0.6
    off_topic_feedback_threshold: float = 0.3

    match_exact: float = 1.0
    match_stem: float = 0.9
    match_synonym: float = 0.85
    match_fuzzy: float = 0.7
    fuzzy_threshold: float = 0.7
    fuzzy_min_length: int = 4
    blend_jaccard: float = 0.3
    blend_cosine: float = 0.4
    blend_overlap: float = 0.3

    checklist_size: int = 10
    breadth_recall_threshold: float = 0.3
    causal_markers_for_full: int = 3
    modern_terms_for_full: int = 2
    wrong_domain_step: float = 0.1
    wrong_domain_cap: float = 0.3
    style_floor: float = 0.6
    advanced_word_length: int = 8
    advanced_word_ratio_target: float = 0.2
    ideal_sentence_words_min: int = 10
    ideal_sentence_words_max: int = 25
    clear_sentence_words_min: int = 5
    clear_sentence_words_max: int = 35
    topic_word_count: int = 10

    gibberish_min_chars: int = 10
    gibberish_short_text_score: float = 0.5
    gibberish_pattern_step: float = 0.05
    gibberish_invalid_weight: float = 0.3
    gibberish_repetition_weight: float = 0.5
    gibberish_structure_weight: float = 0.5
    gibberish_length_basis: float = 1000.0
    gibberish_length_damping: float = 0.7
    gibberish_sophistication_damping: float = 0.7
    sophistication_markers_for_full: int = 4
    keyboard_run_length: int = 8
    gibberish_threshold: float = 0.5
    gibberish_factor: float = 0.3
    gibberish_deduction_length_damping: float = 0.5
    gibberish_deduction_sophistication_damping: float = 0.5

    off_topic_similarity_floor: float = 0.15
    off_topic_similarity_gain: float = 2.0
    off_topic_alignment_floor: float = 0.2
    off_topic_alignment_gain: float = 1.5
    off_topic_coherence_floor: float = 0.25
    off_topic_coherence_gain: float = 1.2
    off_topic_unrelated_weight: float = 0.2
    off_topic_overlap_threshold: float = 0.3
    off_topic_overlap_relief: float = 0.2
    off_topic_relevance_threshold: float = 0.7
    off_topic_relevance_relief: float = 0.15
    off_topic_cap: float = 0.85
    off_topic_factor: float = 0.5

    multiplier_gain: float = 0.2
    multiplier_min: float = 0.5
    multiplier_max: float = 2.0
    exceptional_bonus_gain: float = 0.1
    exceptional_bonus_cap: float = 0.8
    creative_example_bonus: float = 0.02
    practical_example_bonus: float = 0.015
    academic_connective_bonus: float = 0.01
    long_answer_bonus: float = 0.03
    long_answer_chars: int = 300
    example_bonus_cap: float = 0.2
    grammar_error_penalty: float = 0.005
    repetition_penalty: float = 0.03
    short_answer_chars: int = 100
    short_answer_penalty: float = 0.03
    penalty_cap: float = 0.3

    def __post_init__(self) -> None:
        if any(w < 0 for w in self.layer_weights.values()):
            raise ValueError("Layer weights must be non-negative")
        total = sum(self.layer_weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"Layer weights must sum to 1.0, got {total:.4f}")
        if self.multiplier_min > self.multiplier_max:
            raise ValueError("multiplier_min must not exceed multiplier_max")
        for name in ("exceptional_bonus_cap", "example_bonus_cap", "penalty_cap", "off_topic_cap", "pass_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


DEFAULT_HYPERPARAMETERS = Hyperparameters()


# ---------------------------------------------------------------------------
# Request / result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuestionMetadata:
    id: str | None = None
    text: str | None = None
    type: str | None = None
    difficulty: str | None = None

    @classmethod
    def from_value(cls, value: QuestionMetadata | Mapping[str, Any] | None) -> QuestionMetadata | None:
        if value is None or isinstance(value, QuestionMetadata):
            return value
        if not isinstance(value, Mapping):
            raise InvalidInput(f"question metadata must be a mapping, got {type(value).__name__}")

        def _opt(key: str) -> str | None:
            raw = value.get(key)
            return None if raw is None else str(raw)

        return cls(id=_opt("id"), text=_opt("text"), type=_opt("type"), difficulty=_opt("difficulty"))


def _validate_max_marks(max_marks: object) -> float:
    if max_marks is None:
        raise InvalidInput("max_marks is required")
    if isinstance(max_marks, bool) or not isinstance(max_marks, numbers.Real):
        raise InvalidInput(f"max_marks must be a number, got {type(max_marks).__name__}")
    value = float(max_marks)
    if not math.isfinite(value) or value <= 0:
        raise InvalidInput(f"max_marks must be a positive finite number, got {max_marks!r}")
    return value


def _validate_answer(name: str, value: object) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class ScoringRequest:
    student_answer: str
    reference_answer: str
    max_marks: float
    question: QuestionMetadata | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "student_answer", _validate_answer("student_answer", self.student_answer))
        object.__setattr__(self, "reference_answer", _validate_answer("reference_answer", self.reference_answer))
        object.__setattr__(self, "max_marks", _validate_max_marks(self.max_marks))
        object.__setattr__(self, "question", QuestionMetadata.from_value(self.question))


@dataclass(frozen=True)
class ScoringResult:
    total_score: int
    max_marks: float
    percentage: int
    is_passed: bool
    grade: str
    band: str
    assessment: str
    detailed_breakdown: dict[str, LayerScore]
    intelligence_multiplier: float
    exceptional_bonus: float
    bonus_points: float
    penalties: float
    gibberish_penalty: float
    off_topic_penalty: float
    ielts_metrics: dict[str, float]
    toefl_metrics: dict[str, float]
    feedback: str

    def to_payload(self) -> dict[str, object]:
        breakdown: dict[str, object] = {name: layer.to_payload() for name, layer in self.detailed_breakdown.items()}
        breakdown.update({
            "intelligenceMultiplier": round(self.intelligence_multiplier, 3),
            "exceptionalBonus": round(self.exceptional_bonus, 2),
            "bonusPoints": round(self.bonus_points, 2),
            "penalties": round(self.penalties, 2),
            "gibberishPenalty": round(self.gibberish_penalty, 3),
            "offTopicPenalty": round(self.off_topic_penalty, 3),
        })
        max_marks: float | int = int(self.max_marks) if float(self.max_marks).is_integer() else self.max_marks
        return {
            "totalScore": self.total_score,
            "maxMarks": max_marks,
            "percentage": self.percentage,
            "isPassed": self.is_passed,
            "grade": self.grade,
            "band": self.band,
            "assessment": self.assessment,
            "detailedBreakdown": breakdown,
            "ieltsMetrics": {k: round(v, 1) for k, v in self.ielts_metrics.items()},
            "toeflMetrics": {k: round(v, 1) for k, v in self.toefl_metrics.items()},
            "feedback": self.feedback,
        }


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class EssayScorer:
    """Scores answers against a reference. Stateless between calls and safe to share across threads.

    Args:
        hyperparameters: Optional tuning overrides. Uses defaults if omitted.
        lexicon: Word tables. Loads the packaged lexicon if omitted.
        logger: Logger used for observability only.
        max_workers: Run the gates and layers on a thread pool of this size. ``None`` or 1
            runs them sequentially; both paths produce identical results.
    """

    def __init__(
        self,
        hyperparameters: Hyperparameters | None = None,
        lexicon: Lexicon | None = None,
        logger: logging.Logger | None = None,
        max_workers: int | None = None,
        layers: Mapping[str, LayerScorer] | None = None,
    ) -> None:
        self.hp = hyperparameters or DEFAULT_HYPERPARAMETERS
        self.lexicon = lexicon or load_lexicon()
        self.logger = logger or logging.getLogger(__name__)
        self.max_workers = max_workers
        self.layers = dict(layers or LAYER_REGISTRY)
        missing = set(self.layers) ^ set(self.hp.layer_weights)
        if missing:
            raise ValueError(f"Layer weights and registered layers differ: {sorted(missing)}")

    def score(self, request: ScoringRequest) -> ScoringResult:
        question_id = request.question.id if request.question else None
        self.logger.info(f"Scoring answer for question {question_id!r} (max_marks={request.max_marks:g})")
        try:
            result = self._score(request)
        except Exception as exc:
            self.logger.exception(f"Could not score answer for question {question_id!r}")
            raise ScoringFailure("could not score this answer") from exc
        self.logger.info(
            f"Scored question {question_id!r}: {result.total_score}/{request.max_marks:g} "
            f"({result.percentage}%, {result.grade})"
        )
        return result

    def _build_context(self, request: ScoringRequest) -> AnalysisContext:
        hp = self.hp
        student_text = request.student_answer[: hp.max_answer_chars]
        reference_text = request.reference_answer[: hp.max_answer_chars]
        student = TextView.build(student_text, self.lexicon)
        reference = TextView.build(reference_text, self.lexicon)
        reference_concepts = extract_concepts(reference_text, self.lexicon)
        return AnalysisContext(
            reference=reference,
            student=student,
            reference_concepts=reference_concepts,
            profile=compare(reference, student, reference_concepts, self.lexicon, hp),
            domain=detect_domain(reference_text, self.lexicon, request.question),
            lexicon=self.lexicon,
            hp=hp,
            question=request.question,
        )

    def _run_layer(self, name: str, ctx: AnalysisContext, max_score: float) -> LayerScore:
        try:
            layer = self.layers[name].score(ctx, max_score)
        except AnalyzerFailure as exc:
            self.logger.warning(f"{exc}; scoring layer as 0")
            layer = LayerScore.zero(max_score)
        except Exception as exc:
            self.logger.exception(f"Layer {name!r} raised {type(exc).__name__}; scoring layer as 0")
            layer = LayerScore.zero(max_score)
        self.logger.debug(f"   {name}: {layer.score:.3f}/{layer.max_score:.3f}")
        return replace(layer, feedback=layer_feedback(name, layer, self.hp))

    def _fan_out(self, ctx: AnalysisContext, max_marks: float) -> tuple[dict[str, LayerScore], GateReport]:
        weights = self.hp.layer_weights
        names = list(self.layers)
        gate_args = (ctx.reference, ctx.student, ctx.reference_concepts, self.lexicon, self.hp)
        if not self.max_workers or self.max_workers <= 1:
            breakdown = {name: self._run_layer(name, ctx, weights[name] * max_marks) for name in names}
            return breakdown, run_gates(*gate_args)
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            gate_future = pool.submit(run_gates, *gate_args)
            futures = {name: pool.submit(self._run_layer, name, ctx, weights[name] * max_marks) for name in names}
            breakdown = {name: futures[name].result() for name in names}
            return breakdown, gate_future.result()

    def _score(self, request: ScoringRequest) -> ScoringResult:
        hp = self.hp
        max_marks = request.max_marks
        ctx = self._build_context(request)
        breakdown, gates = self._fan_out(ctx, max_marks)
        totals: Aggregate = aggregate(breakdown, gates, ctx, max_marks, hp)
        if not math.isfinite(totals.final):
            raise ValueError(f"aggregated score is not finite: {totals.final}")

        exact_percentage = max(0.0, min(100.0, totals.total_score / max_marks * 100))
        percentage = round(exact_percentage)
        return ScoringResult(
            total_score=totals.total_score,
            max_marks=max_marks,
            percentage=percentage,
            is_passed=totals.total_score >= hp.pass_ratio * max_marks,
            grade=grade_for(percentage),
            band=band_for(percentage),
            assessment=assessment_for(percentage),
            detailed_breakdown=breakdown,
            intelligence_multiplier=totals.intelligence_multiplier,
            exceptional_bonus=totals.exceptional_bonus,
            bonus_points=totals.bonus_points,
            penalties=totals.penalties,
            gibberish_penalty=gates.gibberish,
            off_topic_penalty=gates.off_topic,
            ielts_metrics=ielts_metrics(exact_percentage),
            toefl_metrics=toefl_metrics(exact_percentage),
            feedback=build_feedback(percentage, breakdown, gates, hp),
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_answer(
    student_answer: str,
    reference_answer: str,
    max_marks: float,
    question: QuestionMetadata | Mapping[str, Any] | None = None,
    *,
    hyperparameters: Hyperparameters | None = None,
    lexicon: Lexicon | None = None,
    logger: logging.Logger | None = None,
) -> ScoringResult:
    """Score one student answer against a reference answer.

    Args:
        student_answer: The submitted free-text answer.
        reference_answer: The model answer to compare against.
        max_marks: Maximum marks for the question. Must be a positive number.
        question: Optional metadata (``id``, ``text``, ``type``, ``difficulty``).
        hyperparameters: Optional tuning overrides.
        lexicon: Optional alternate word tables.
        logger: Optional logger for observability.

    Returns:
        An immutable ScoringResult. Call ``to_payload()`` for the JSON shape.

    Raises:
        InvalidInput: If ``max_marks`` is missing, non-positive or not finite, or an
            answer is not a string.
        ScoringFailure: If the pipeline itself fails; the root cause is chained.
    """
    request = ScoringRequest(
        student_answer=student_answer,
        reference_answer=reference_answer,
        max_marks=max_marks,
        question=question,
    )
    return EssayScorer(hyperparameters=hyperparameters, lexicon=lexicon, logger=logger).score(request)
