import pytest
from samples import FOUR_PRINCIPLES_ANSWER, OOP_REFERENCE

from data_designer_essay_scorer.similarity import (
    TextView,
    compare,
    cosine_similarity,
    extract_concepts,
    jaccard_similarity,
    match_concepts,
)
from data_designer_essay_scorer.text import stem


class TestTextView:
    def test_build(self, lexicon):
        view = TextView.build("Classes inherit behavior. Objects hold state.", lexicon)
        assert view.word_count == 6
        assert len(view.sentences) == 2
        assert stem("classes") in view.stem_set
        assert not view.is_empty

    def test_empty(self, lexicon):
        view = TextView.build("", lexicon)
        assert view.is_empty
        assert view.sentences == ()


class TestExtractConcepts:
    def test_empty_text(self, lexicon):
        assert extract_concepts("", lexicon) == {}

    def test_technical_terms_outweigh_plain_words(self, lexicon):
        concepts = extract_concepts("Inheritance helps gardeners.", lexicon)
        assert concepts[stem("inheritance")].weight > concepts[stem("gardeners")].weight

    def test_variants_include_synonyms(self, lexicon):
        concepts = extract_concepts("Inheritance allows reuse.", lexicon)
        assert stem("permit") in concepts[stem("allows")].variants

    def test_phrase_terms_are_kept_whole(self, lexicon):
        concepts = extract_concepts("A neural network learns weights.", lexicon)
        assert concepts["neural network"].is_phrase


class TestMatchCascade:
    @pytest.mark.parametrize(
        "reference, student, kind",
        [
            ("Encapsulation.", "encapsulation matters", "exact"),
            ("Inheritance.", "It inherits.", "stem"),
            ("Inheritance allows reuse.", "Classes permit reuse.", "synonym"),
            ("Encapsulation.", "encapsulaton", "fuzzy"),
        ],
    )
    def test_match_kind(self, lexicon, hp, reference, student, kind):
        match = match_concepts(extract_concepts(reference, lexicon), TextView.build(student, lexicon), lexicon, hp)
        assert match.counts[kind] >= 1

    def test_no_match(self, lexicon, hp):
        match = match_concepts(extract_concepts("Encapsulation.", lexicon), TextView.build("zebra", lexicon), lexicon, hp)
        assert match.coverage == 0.0
        assert all(factor == 0.0 for factor in match.factors.values())


class TestVectorSimilarity:
    def test_cosine(self):
        assert cosine_similarity(["a", "a", "b"], ["a", "b", "a"]) == pytest.approx(1.0)
        assert cosine_similarity(["a"], ["b"]) == 0.0
        assert cosine_similarity([], ["a"]) == 0.0

    def test_cosine_weights_repeated_terms(self):
        # (2*1 + 1*1) / (sqrt(5) * sqrt(2))
        assert cosine_similarity(["a", "a", "b"], ["a", "b"]) == pytest.approx(3 / (5**0.5 * 2**0.5))

    def test_jaccard(self):
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity(set(), set()) == 0.0


class TestCompare:
    def test_reference_against_itself(self, lexicon, hp):
        view = TextView.build(OOP_REFERENCE, lexicon)
        profile = compare(view, view, extract_concepts(OOP_REFERENCE, lexicon), lexicon, hp)
        assert profile.coverage == pytest.approx(1.0)
        assert profile.cosine == pytest.approx(1.0)
        assert profile.grounding == pytest.approx(1.0)
        assert profile.mean_recall == pytest.approx(1.0)

    def test_partial_answer_sits_between(self, lexicon, hp):
        reference = TextView.build(OOP_REFERENCE, lexicon)
        student = TextView.build(FOUR_PRINCIPLES_ANSWER, lexicon)
        profile = compare(reference, student, extract_concepts(OOP_REFERENCE, lexicon), lexicon, hp)
        assert 0.0 < profile.coverage < 1.0
        assert profile.grounding == pytest.approx(profile.coverage**0.5)
