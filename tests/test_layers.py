import math

import pytest
from samples import FOUR_PRINCIPLES_ANSWER, OOP_REFERENCE

from data_designer_essay_scorer.errors import AnalyzerFailure
from data_designer_essay_scorer.layers import (
    LAYER_REGISTRY,
    LayerScore,
    LayerScorer,
    build_registry,
    detect_domain,
    grammar_errors,
)
from data_designer_essay_scorer.similarity import TextView
from data_designer_essay_scorer.text import split_sentences

STYLE_LAYERS = [
    "qualityDifferentiation",
    "writingQuality",
    "criticalThinking",
    "technicalPrecision",
    "cognitiveComplexity",
    "conceptualDepth",
]
BASE_ANSWER = "Object-oriented programming organizes software around objects."


class TestLayerScore:
    def test_range_is_enforced(self):
        with pytest.raises(ValueError):
            LayerScore(score=2.5, max_score=2.0)
        with pytest.raises(ValueError):
            LayerScore(score=-0.1, max_score=2.0)

    def test_zero_and_fraction(self):
        assert LayerScore.zero(2.0).fraction == 0.0
        assert LayerScore(score=1.0, max_score=2.0).fraction == 0.5
        assert LayerScore.zero(0.0).fraction == 0.0

    def test_payload(self):
        payload = LayerScore(score=1.23456, max_score=2.0, metrics={"grammar": 0.98765}).to_payload()
        assert payload == {"score": 1.23, "maxScore": 2.0, "grammar": 0.988}


class TestRegistry:
    def test_registry_order(self):
        assert list(LAYER_REGISTRY) == [
            "contentAccuracy",
            "semanticUnderstanding",
            "qualityDifferentiation",
            "writingQuality",
            "criticalThinking",
            "technicalPrecision",
            "cognitiveComplexity",
            "conceptualDepth",
        ]

    def test_duplicate_names_rejected(self):
        scorer = LayerScorer("contentAccuracy", lambda ctx: (1.0, {}))
        with pytest.raises(ValueError, match="Duplicate"):
            build_registry([scorer, scorer])

    def test_non_finite_layer_raises(self, make_context):
        scorer = LayerScorer("broken", lambda ctx: (math.nan, {}))
        with pytest.raises(AnalyzerFailure) as info:
            scorer.score(make_context(FOUR_PRINCIPLES_ANSWER), 1.0)
        assert info.value.layer == "broken"

    def test_fraction_is_clamped(self, make_context):
        scorer = LayerScorer("eager", lambda ctx: (1.7, {}))
        assert scorer.score(make_context(FOUR_PRINCIPLES_ANSWER), 2.0).score == 2.0


class TestLayers:
    @pytest.mark.parametrize("name", list(LAYER_REGISTRY))
    def test_empty_answer_scores_zero(self, make_context, name):
        layer = LAYER_REGISTRY[name].score(make_context(""), 2.0)
        assert layer.score == 0.0

    @pytest.mark.parametrize("name", list(LAYER_REGISTRY))
    def test_scores_within_range(self, make_context, name):
        layer = LAYER_REGISTRY[name].score(make_context(FOUR_PRINCIPLES_ANSWER), 2.0)
        assert 0.0 <= layer.score <= 2.0
        assert all(math.isfinite(v) for v in layer.metrics.values())

    @pytest.mark.parametrize("name", list(LAYER_REGISTRY))
    def test_reference_scores_highest(self, make_context, name):
        own = LAYER_REGISTRY[name].score(make_context(OOP_REFERENCE), 1.0)
        partial = LAYER_REGISTRY[name].score(make_context(FOUR_PRINCIPLES_ANSWER), 1.0)
        assert own.score >= partial.score

    @pytest.mark.parametrize("name", STYLE_LAYERS)
    def test_style_layers_need_shared_content(self, make_context, name):
        ctx = make_context("Zebras graze quietly near quartz hills.")
        assert ctx.profile.coverage == 0.0
        assert LAYER_REGISTRY[name].score(ctx, 1.0).score == 0.0

    @pytest.mark.parametrize("index", range(len(split_sentences(OOP_REFERENCE))))
    def test_content_accuracy_grows_with_correct_sentences(self, make_context, index):
        sentence = split_sentences(OOP_REFERENCE)[index]
        scorer = LAYER_REGISTRY["contentAccuracy"]
        before = scorer.score(make_context(BASE_ANSWER), 2.0)
        after = scorer.score(make_context(f"{BASE_ANSWER} {sentence}."), 2.0)
        assert after.score >= before.score

    def test_content_accuracy_accumulates(self, make_context):
        scorer = LAYER_REGISTRY["contentAccuracy"]
        sentences = split_sentences(OOP_REFERENCE)
        previous = scorer.score(make_context(BASE_ANSWER), 2.0).score
        answer = BASE_ANSWER
        for sentence in sentences:
            answer = f"{answer} {sentence}."
            current = scorer.score(make_context(answer), 2.0).score
            assert current >= previous
            previous = current
        assert previous > scorer.score(make_context(BASE_ANSWER), 2.0).score

    def test_wrong_domain_terms_reduce_content(self, make_context):
        scorer = LAYER_REGISTRY["contentAccuracy"]
        clean = scorer.score(make_context(FOUR_PRINCIPLES_ANSWER), 2.0)
        mixed = scorer.score(make_context(f"{FOUR_PRINCIPLES_ANSWER} Each enzyme and protein in the cell nucleus."), 2.0)
        assert mixed.metrics["wrongDomainTerms"] > 0
        assert mixed.metrics["factualAccuracy"] <= clean.metrics["factualAccuracy"]

    def test_blank_line_separates_paragraphs(self, make_context):
        scorer = LAYER_REGISTRY["writingQuality"]
        single = scorer.score(make_context("OOP is programming. It has objects."), 1.0)
        split = scorer.score(make_context("OOP is programming.\n  \nIt has objects."), 1.0)
        assert single.metrics["paragraphOrganization"] == pytest.approx(2 / 3)
        assert split.metrics["paragraphOrganization"] == 1.0


class TestHelpers:
    def test_detect_domain(self, lexicon):
        assert detect_domain(OOP_REFERENCE, lexicon).name == "programming"
        assert detect_domain("Cells use enzymes and DNA to build protein.", lexicon).name == "biology"
        assert detect_domain("", lexicon).name == lexicon.default_domain

    def test_grammar_errors(self, lexicon):
        assert grammar_errors(TextView.build("This is fine.", lexicon)) == 0
        assert grammar_errors(TextView.build("this is is wrong , i think", lexicon)) >= 4
