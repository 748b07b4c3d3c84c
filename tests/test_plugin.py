import logging
from unittest.mock import MagicMock

import pytest

pytest.importorskip("data_designer")

import pandas as pd  # noqa: E402
from pydantic import ValidationError  # noqa: E402
from samples import FOUR_PRINCIPLES_ANSWER, NEAR_VERBATIM_ANSWER, OOP_REFERENCE  # noqa: E402

from data_designer_essay_scorer.config import EssayScoreColumnConfig  # noqa: E402
from data_designer_essay_scorer.generator import EssayScoreColumnGenerator  # noqa: E402


class TestEssayScoreColumnConfig:
    def test_defaults(self):
        config = EssayScoreColumnConfig(
            name="essay_score", student_answer_column="answer", reference_answer_column="model_answer"
        )
        assert config.column_type == "essay-score"
        assert config.max_marks == 10
        assert config.include_feedback
        assert not config.include_breakdown
        assert config.required_columns == ["answer", "model_answer"]
        assert config.side_effect_columns == []

    def test_optional_columns_are_required(self):
        config = EssayScoreColumnConfig(
            name="essay_score",
            student_answer_column="answer",
            reference_answer_column="model_answer",
            max_marks_column="marks",
            question_column="question",
        )
        assert config.required_columns == ["answer", "model_answer", "marks", "question"]

    def test_max_marks_must_be_positive(self):
        with pytest.raises(ValidationError):
            EssayScoreColumnConfig(
                name="essay_score", student_answer_column="answer", reference_answer_column="model_answer", max_marks=0
            )


def _generator(**overrides):
    fields = {"name": "essay_score", "student_answer_column": "answer", "reference_answer_column": "model_answer"}
    fields.update(overrides)
    return EssayScoreColumnGenerator(config=EssayScoreColumnConfig(**fields), resource_provider=MagicMock())


class TestEssayScoreColumnGenerator:
    def test_rows_are_scored_per_row(self):
        data = pd.DataFrame(
            {
                "answer": [FOUR_PRINCIPLES_ANSWER, None, FOUR_PRINCIPLES_ANSWER, FOUR_PRINCIPLES_ANSWER],
                "model_answer": [OOP_REFERENCE] * 4,
                "marks": [10, 10, None, -5],
                "question": ["What is OOP?", None, None, None],
            }
        )
        generator = _generator(max_marks_column="marks", question_column="question", include_breakdown=True)
        scored = generator.generate(data)

        assert "essay_score" not in data.columns
        first, empty, missing_marks, negative_marks = scored["essay_score"]
        assert 0 <= first["total_score"] <= 10
        assert first["grade"]
        assert first["feedback"]
        assert "contentAccuracy" in first["breakdown"]
        assert empty["total_score"] == 0
        assert not empty["is_passed"]
        assert missing_marks["total_score"] is None
        assert "max_marks is required" in missing_marks["error"]
        assert "positive finite" in negative_marks["error"]

    def test_config_max_marks_and_output_toggles(self):
        data = pd.DataFrame({"answer": [NEAR_VERBATIM_ANSWER], "model_answer": [OOP_REFERENCE]})
        scored = _generator(max_marks=20, include_feedback=False).generate(data)
        output = scored["essay_score"].iloc[0]
        assert 0 <= output["total_score"] <= 20
        assert "feedback" not in output
        assert "breakdown" not in output
        assert "error" not in output

    def test_unscored_rows_are_logged(self, caplog):
        data = pd.DataFrame({"answer": ["text"], "model_answer": [OOP_REFERENCE], "marks": [float("nan")]})
        with caplog.at_level(logging.WARNING, logger="data_designer_essay_scorer.generator"):
            scored = _generator(max_marks_column="marks").generate(data)
        assert scored["essay_score"].iloc[0]["error"] == "max_marks is required"
        assert "not scored" in caplog.text
