from __future__ import annotations

from typing import TYPE_CHECKING

from data_designer_essay_scorer.gates import GateReport
from data_designer_essay_scorer.layers import LayerScore

if TYPE_CHECKING:
    from data_designer_essay_scorer.core import Hyperparameters

# ---------------------------------------------------------------------------
# Step tables (inclusive lower bound on percentage)
# ---------------------------------------------------------------------------

GRADE_TABLE: tuple[tuple[int, str], ...] = (
    (95, "A+ (Exceptional)"),
    (90, "A (Outstanding)"),
    (85, "A- (Excellent)"),
    (80, "B+ (Very Good)"),
    (75, "B (Good)"),
    (70, "B- (Above Average)"),
    (65, "C+ (Average)"),
    (60, "C (Satisfactory)"),
    (55, "C- (Below Average)"),
    (50, "D+ (Poor)"),
    (45, "D (Very Poor)"),
    (40, "D- (Minimal)"),
)
FAIL_GRADE = "F (Fail)"

BAND_TABLE: tuple[tuple[int, str], ...] = (
    (95, "9.0 (Expert User)"),
    (90, "8.5 (Very Good User)"),
    (85, "8.0 (Very Good User)"),
    (80, "7.5 (Good User)"),
    (75, "7.0 (Good User)"),
    (70, "6.5 (Competent User)"),
    (65, "6.0 (Competent User)"),
    (60, "5.5 (Modest User)"),
    (55, "5.0 (Modest User)"),
    (50, "4.5 (Limited User)"),
    (45, "4.0 (Limited User)"),
    (40, "3.5 (Extremely Limited User)"),
    (35, "3.0 (Extremely Limited User)"),
    (30, "2.5 (Intermittent User)"),
    (25, "2.0 (Intermittent User)"),
    (20, "1.5 (Non User)"),
    (15, "1.0 (Non User)"),
)
NO_ATTEMPT_BAND = "0.0 (Did Not Attempt)"

ASSESSMENT_TABLE: tuple[tuple[int, str], ...] = (
    (90, "Expert Level Answer"),
    (80, "Excellent Answer"),
    (70, "Very Good Answer"),
    (60, "Good Answer"),
    (50, "Satisfactory Answer"),
    (40, "Basic Answer"),
    (30, "Poor Answer"),
    (20, "Very Poor Answer"),
)
INADEQUATE_ASSESSMENT = "Inadequate Answer"


def _lookup(percentage: float, table: tuple[tuple[int, str], ...], fallback: str) -> str:
    for threshold, label in table:
        if percentage >= threshold:
            return label
    return fallback


def grade_for(percentage: float) -> str:
    return _lookup(percentage, GRADE_TABLE, FAIL_GRADE)


def band_for(percentage: float) -> str:
    return _lookup(percentage, BAND_TABLE, NO_ATTEMPT_BAND)


def assessment_for(percentage: float) -> str:
    return _lookup(percentage, ASSESSMENT_TABLE, INADEQUATE_ASSESSMENT)


# ---------------------------------------------------------------------------
# Standardized-test criteria
# ---------------------------------------------------------------------------

IELTS_CRITERIA = (
    "taskResponse",
    "coherenceCohesion",
    "lexicalResource",
    "grammaticalRange",
    "academicStyle",
    "argumentStrength",
    "evidenceUsage",
    "conclusionQuality",
)
TOEFL_SECTIONS = ("integratedSkills", "independentWriting", "languageUse")


def ielts_metrics(percentage: float) -> dict[str, float]:
    """IELTS-style band (1 to 9) for each criterion, read off the overall percentage."""
    band = min(9.0, max(1.0, percentage / 10))
    return {name: band for name in IELTS_CRITERIA}


def toefl_metrics(percentage: float) -> dict[str, float]:
    """TOEFL-style section scores: 0 to 30 per section, 0 to 10 for topic development."""
    metrics = {name: min(30.0, max(0.0, percentage * 0.3)) for name in TOEFL_SECTIONS}
    metrics["topicDevelopment"] = min(10.0, max(0.0, percentage * 0.1))
    return metrics


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

_OPENINGS: tuple[tuple[int, str], ...] = (
    (90, "Outstanding answer that demonstrates a thorough understanding of the topic."),
    (80, "Excellent answer with strong understanding and clear explanation."),
    (70, "Very good answer that covers most of the key concepts."),
    (60, "Good answer, though some key concepts need more development."),
    (50, "Satisfactory answer that covers the basics but lacks depth."),
    (40, "Basic answer with significant gaps in understanding."),
)
_FALLBACK_OPENING = "The answer does not adequately address the question."

LAYER_ADVICE = {
    "contentAccuracy": "Ensure your answer comprehensively addresses all aspects of the question with accurate information.",
    "semanticUnderstanding": "Demonstrate deeper understanding of the concepts and their relationships.",
    "qualityDifferentiation": "Develop your answer with more insight and better-supported arguments.",
    "writingQuality": "Improve the clarity and structure of your writing.",
    "criticalThinking": "Enhance your critical thinking with deeper analysis and evaluation.",
    "technicalPrecision": "Use more precise technical terminology and concepts.",
    "cognitiveComplexity": "Connect and evaluate ideas instead of only listing them.",
    "conceptualDepth": "Explain the underlying principles and how the concepts relate to each other.",
}
_GIBBERISH_ADVICE = "Parts of the answer do not read as meaningful text."
_OFF_TOPIC_ADVICE = "The answer drifts away from the topic of the question."


def layer_feedback(name: str, layer: LayerScore, hp: Hyperparameters) -> str:
    if layer.max_score <= 0:
        return ""
    if layer.fraction >= hp.feedback_threshold:
        return ""
    return LAYER_ADVICE.get(name, f"Improve the {name} of your answer.")


def build_feedback(percentage: float, breakdown: dict[str, LayerScore], gates: GateReport, hp: Hyperparameters) -> str:
    sentences = [_lookup(percentage, _OPENINGS, _FALLBACK_OPENING)]
    sentences.extend(layer.feedback for layer in breakdown.values() if layer.feedback)
    if gates.gibberish > hp.gibberish_threshold:
        sentences.append(_GIBBERISH_ADVICE)
    if gates.off_topic >= hp.off_topic_feedback_threshold:
        sentences.append(_OFF_TOPIC_ADVICE)
    return " ".join(sentences)
