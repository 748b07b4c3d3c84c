from __future__ import annotations

import pytest
from samples import OOP_REFERENCE

from data_designer_essay_scorer.core import DEFAULT_HYPERPARAMETERS, Hyperparameters
from data_designer_essay_scorer.layers import AnalysisContext, detect_domain
from data_designer_essay_scorer.lexicon import Lexicon, load_lexicon
from data_designer_essay_scorer.similarity import TextView, compare, extract_concepts


@pytest.fixture(scope="session")
def lexicon() -> Lexicon:
    return load_lexicon()


@pytest.fixture(scope="session")
def hp() -> Hyperparameters:
    return DEFAULT_HYPERPARAMETERS


@pytest.fixture
def make_context(lexicon, hp):
    def _make(student: str, reference: str = OOP_REFERENCE) -> AnalysisContext:
        student_view = TextView.build(student, lexicon)
        reference_view = TextView.build(reference, lexicon)
        concepts = extract_concepts(reference, lexicon)
        return AnalysisContext(
            reference=reference_view,
            student=student_view,
            reference_concepts=concepts,
            profile=compare(reference_view, student_view, concepts, lexicon, hp),
            domain=detect_domain(reference, lexicon),
            lexicon=lexicon,
            hp=hp,
        )

    return _make
