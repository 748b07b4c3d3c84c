from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from data_designer.engine.column_generators.generators.base import ColumnGeneratorFullColumn

from data_designer_essay_scorer.config import EssayScoreColumnConfig
from data_designer_essay_scorer.core import EssayScorer, QuestionMetadata, ScoringRequest
from data_designer_essay_scorer.errors import EssayScoringError

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)


def _cell(value: Any) -> Any:
    # Missing cells arrive as None or NaN.
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return value


class EssayScoreColumnGenerator(ColumnGeneratorFullColumn[EssayScoreColumnConfig]):
    """Column generator that marks each row's answer against its reference answer."""

    def generate(self, data: pd.DataFrame) -> pd.DataFrame:
        config = self.config
        logger.info(f"\U0001f4dd Scoring column {config.name!r} as essay answers")
        logger.info(f"   answers: {config.student_answer_column!r} vs {config.reference_answer_column!r}")
        logger.info(f"   max_marks: {config.max_marks_column or config.max_marks}")

        scorer = EssayScorer(logger=logger, max_workers=config.max_workers)
        results = []
        for index, row in data[config.required_columns].iterrows():
            max_marks = _cell(row[config.max_marks_column]) if config.max_marks_column else config.max_marks
            question_text = _cell(row[config.question_column]) if config.question_column else None
            student = _cell(row[config.student_answer_column])
            reference = _cell(row[config.reference_answer_column])
            try:
                request = ScoringRequest(
                    student_answer="" if student is None else str(student),
                    reference_answer="" if reference is None else str(reference),
                    max_marks=max_marks,
                    question=QuestionMetadata(id=str(index), text=question_text) if question_text else None,
                )
                result = scorer.score(request)
            except EssayScoringError as exc:
                logger.warning(f"   row {index!r} not scored: {exc}")
                results.append({"total_score": None, "is_passed": False, "error": str(exc)})
                continue

            output: dict = {
                "total_score": result.total_score,
                "percentage": result.percentage,
                "is_passed": result.is_passed,
                "grade": result.grade,
                "band": result.band,
            }
            if config.include_feedback:
                output["feedback"] = result.feedback
            if config.include_breakdown:
                output["breakdown"] = result.to_payload()["detailedBreakdown"]
            results.append(output)

        data = data.copy()
        data[config.name] = results
        return data
