from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from data_designer_essay_scorer.gates import GateReport
from data_designer_essay_scorer.layers import AnalysisContext, LayerScore, grammar_errors
from data_designer_essay_scorer.text import count_markers

if TYPE_CHECKING:
    from data_designer_essay_scorer.core import Hyperparameters

# Coefficients of the eight secondary signals feeding the intelligence multiplier.
_MULTIPLIER_SIGNALS = {
    "conceptual": 0.20,
    "analytical": 0.15,
    "linguistic": 0.10,
    "critical": 0.15,
    "innovation": 0.10,
    "contextual": 0.10,
    "synthesis": 0.10,
    "metacognitive": 0.10,
}
_EXCEPTIONAL_SIGNALS = {"conceptual": 2.0, "analytical": 2.0, "writing": 1.5, "innovation": 1.5, "integration": 1.0}


@dataclass(frozen=True)
class Aggregate:
    base: float
    intelligence_multiplier: float
    exceptional_bonus: float
    bonus_points: float
    penalties: float
    gibberish_deduction: float
    off_topic_deduction: float
    final: float
    total_score: int


def _metric(breakdown: dict[str, LayerScore], layer: str, metric: str) -> float:
    score = breakdown.get(layer)
    if score is None:
        return 0.0
    return score.metrics.get(metric, 0.0)


def secondary_signals(breakdown: dict[str, LayerScore]) -> dict[str, float]:
    return {
        "conceptual": _metric(breakdown, "conceptualDepth", "intrinsic"),
        "analytical": _metric(breakdown, "criticalThinking", "analyticalDepth"),
        "linguistic": _metric(breakdown, "writingQuality", "vocabulary"),
        "critical": _metric(breakdown, "criticalThinking", "intrinsic"),
        "innovation": _metric(breakdown, "qualityDifferentiation", "innovation"),
        "contextual": _metric(breakdown, "semanticUnderstanding", "contextualUnderstanding"),
        "synthesis": _metric(breakdown, "criticalThinking", "synthesis"),
        "metacognitive": _metric(breakdown, "criticalThinking", "metacognition"),
        "writing": _metric(breakdown, "writingQuality", "intrinsic"),
        "integration": _metric(breakdown, "criticalThinking", "synthesis"),
    }


def intelligence_multiplier(signals: dict[str, float], grounding: float, hp: Hyperparameters) -> float:
    strength = sum(signals[k] * w for k, w in _MULTIPLIER_SIGNALS.items())
    raw = 1.0 + hp.multiplier_gain * grounding * strength
    return max(hp.multiplier_min, min(hp.multiplier_max, raw))


def exceptional_bonus(signals: dict[str, float], grounding: float, max_marks: float, hp: Hyperparameters) -> float:
    strength = sum(signals[k] * w for k, w in _EXCEPTIONAL_SIGNALS.items()) / sum(_EXCEPTIONAL_SIGNALS.values())
    bonus = max_marks * hp.exceptional_bonus_gain * grounding**2 * strength
    return min(hp.exceptional_bonus_cap * max_marks, bonus)


def example_bonus(ctx: AnalysisContext, max_marks: float, hp: Hyperparameters) -> float:
    student = ctx.student
    creative = count_markers(student.normalized, ctx.lexicon.marker_list("creative_examples"))
    practical = count_markers(student.normalized, ctx.lexicon.marker_list("practical_examples"))
    connectives = count_markers(student.normalized, ctx.lexicon.marker_list("academic_connectives"))
    raw = (
        creative * hp.creative_example_bonus
        + practical * hp.practical_example_bonus
        + connectives * hp.academic_connective_bonus
        + (hp.long_answer_bonus if len(student.raw) > hp.long_answer_chars else 0.0)
    )
    return min(hp.example_bonus_cap * max_marks, max_marks * ctx.profile.grounding * raw)


def repeated_trigrams(ctx: AnalysisContext) -> int:
    tokens = ctx.student.tokens
    trigrams = Counter(tuple(tokens[i : i + 3]) for i in range(len(tokens) - 2))
    return sum(1 for count in trigrams.values() if count > 1)


def penalties(ctx: AnalysisContext, max_marks: float, hp: Hyperparameters) -> float:
    raw = grammar_errors(ctx.student) * hp.grammar_error_penalty + repeated_trigrams(ctx) * hp.repetition_penalty
    if 0 < len(ctx.student.raw.strip()) < hp.short_answer_chars:
        raw += hp.short_answer_penalty
    return min(hp.penalty_cap * max_marks, max_marks * raw)


def damped_gibberish(gates: GateReport, hp: Hyperparameters) -> float:
    if gates.gibberish <= hp.gibberish_threshold:
        return 0.0
    return (
        gates.gibberish
        * (1 - gates.length_factor * hp.gibberish_deduction_length_damping)
        * (1 - gates.sophistication * hp.gibberish_deduction_sophistication_damping)
    )


def aggregate(
    breakdown: dict[str, LayerScore],
    gates: GateReport,
    ctx: AnalysisContext,
    max_marks: float,
    hp: Hyperparameters,
) -> Aggregate:
    """Combine layer scores into the final mark.

    Order: weighted sum, intelligence multiplier, exceptional-answer bonus,
    example bonus, penalties, gibberish deduction, off-topic deduction, clamp.
    Each adjustment stage has its own cap.
    """
    grounding = ctx.profile.grounding
    signals = secondary_signals(breakdown)

    base = sum(layer.score for layer in breakdown.values())
    multiplier = intelligence_multiplier(signals, grounding, hp)
    exceptional = exceptional_bonus(signals, grounding, max_marks, hp)
    bonus = example_bonus(ctx, max_marks, hp)
    penalty = penalties(ctx, max_marks, hp)

    total = base * multiplier + exceptional + bonus - penalty
    gibberish_deduction = max(total, 0.0) * damped_gibberish(gates, hp) * hp.gibberish_factor
    total -= gibberish_deduction
    off_topic_deduction = max(total, 0.0) * gates.off_topic * hp.off_topic_factor
    total -= off_topic_deduction

    final = max(0.0, min(max_marks, total))
    total_score = max(0, min(math.floor(max_marks), round(final)))
    return Aggregate(
        base=base,
        intelligence_multiplier=multiplier,
        exceptional_bonus=exceptional,
        bonus_points=bonus,
        penalties=penalty,
        gibberish_deduction=gibberish_deduction,
        off_topic_deduction=off_topic_deduction,
        final=final,
        total_score=int(total_score),
    )
