from __future__ import annotations

from typing import Literal

from pydantic import Field

from data_designer.config.column_configs import SingleColumnConfig


class EssayScoreColumnConfig(SingleColumnConfig):
    """Score free-text answers against reference answers.

    Each row's student answer is compared with its reference answer across eight
    weighted analysis layers, checked for gibberish and off-topic content, and
    mapped to a mark, grade and band.

    Attributes:
        student_answer_column: Column holding the answer to score.
        reference_answer_column: Column holding the model answer.
        max_marks: Maximum marks per question when ``max_marks_column`` is not set.
        max_marks_column: Optional column with a per-row maximum mark.
        question_column: Optional column with the question text, used for domain detection.
        include_breakdown: Include the per-layer breakdown in output.
        include_feedback: Include the feedback paragraph in output.
        max_workers: Thread pool size for the analysis layers. ``None`` runs them sequentially.
    """

    student_answer_column: str
    reference_answer_column: str
    max_marks: float = Field(default=10, gt=0, description="Maximum marks per question")
    max_marks_column: str | None = Field(default=None, description="Column with a per-row maximum mark")
    question_column: str | None = Field(default=None, description="Column with the question text")
    include_breakdown: bool = Field(default=False, description="Include the per-layer breakdown in output")
    include_feedback: bool = Field(default=True, description="Include feedback text in output")
    max_workers: int | None = Field(default=None, ge=1, description="Thread pool size for the analysis layers")
    column_type: Literal["essay-score"] = "essay-score"

    @staticmethod
    def get_column_emoji() -> str:
        return "\U0001f4dd"

    @property
    def required_columns(self) -> list[str]:
        columns = [self.student_answer_column, self.reference_answer_column]
        columns.extend(c for c in (self.max_marks_column, self.question_column) if c)
        return columns

    @property
    def side_effect_columns(self) -> list[str]:
        return []
