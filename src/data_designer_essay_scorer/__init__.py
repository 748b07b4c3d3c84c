# SPDX-License-Identifier: Apache-2.0
"""Essay scorer for free-text answers, with a NeMo Data Designer plugin.

Scores a student answer against a reference answer through eight weighted
analysis layers, gibberish and off-topic gates, and capped bonuses and
penalties. Deterministic, rule-based, no LLM calls.

Usage::

    from data_designer_essay_scorer import score_answer

    result = score_answer(student_text, reference_text, max_marks=10)
    result.to_payload()

    from data_designer_essay_scorer import EssayScoreColumnConfig

    builder.add_column(EssayScoreColumnConfig(
        name="essay_score",
        student_answer_column="answer",
        reference_answer_column="model_answer",
        max_marks=10,
    ))
"""

from data_designer_essay_scorer.config import EssayScoreColumnConfig
from data_designer_essay_scorer.core import (
    EssayScorer,
    Hyperparameters,
    QuestionMetadata,
    ScoringRequest,
    ScoringResult,
    score_answer,
)
from data_designer_essay_scorer.errors import AnalyzerFailure, EssayScoringError, InvalidInput, ScoringFailure

__all__ = [
    "AnalyzerFailure",
    "EssayScoreColumnConfig",
    "EssayScorer",
    "EssayScoringError",
    "Hyperparameters",
    "InvalidInput",
    "QuestionMetadata",
    "ScoringFailure",
    "ScoringRequest",
    "ScoringResult",
    "score_answer",
]
