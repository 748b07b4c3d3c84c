import pytest

from data_designer_essay_scorer.text import (
    affix_variants,
    content_tokens,
    count_markers,
    count_occurrences,
    normalize,
    relative_presence,
    split_paragraphs,
    split_sentences,
    stem,
    tokenize,
    word_similarity,
)


class TestNormalization:
    def test_normalize_strips_punctuation_and_case(self):
        assert normalize("Hello, World!  Object-Oriented\tcode.") == "hello world object oriented code"

    def test_normalize_empty_inputs(self):
        assert normalize(None) == ""
        assert normalize("") == ""
        assert tokenize("   ") == []

    def test_content_tokens_drop_stopwords_and_short_words(self, lexicon):
        assert content_tokens("The class is an object of 42 types", lexicon) == ["class", "object", "types"]

    def test_split_sentences(self):
        assert split_sentences("One idea. Two ideas! Three?") == ["One idea", "Two ideas", "Three"]
        assert split_sentences("") == []

    def test_split_paragraphs(self):
        assert split_paragraphs("First part.\n\n  Second part.\n") == ["First part.", "Second part."]


class TestMorphology:
    def test_stem_conflates_inflections(self):
        assert stem("inherits") == stem("inheritance") == "inherit"
        assert stem("Programming") == stem("programs")

    def test_affix_variants(self, lexicon):
        variants = affix_variants("unreadable", lexicon)
        assert "unreadable" in variants
        assert "readable" in variants

    def test_affix_variants_keep_short_stems(self, lexicon):
        assert affix_variants("red", lexicon) == {"red"}

    def test_word_similarity(self):
        assert word_similarity("", "") == 1.0
        assert word_similarity("same", "same") == 1.0
        assert word_similarity("kitten", "sitting") == pytest.approx(4 / 7)
        assert word_similarity("encapsulation", "encapsulaton") == pytest.approx(12 / 13)


class TestMarkers:
    def test_marker_matches_inflected_forms(self):
        assert count_markers("four principles of design", ["principle"]) == 1
        assert count_markers("it depends on the input", ["depends on"]) == 1

    def test_marker_does_not_match_inside_words(self):
        assert count_markers("thus the bus", ["us"]) == 0

    def test_count_markers_counts_distinct_phrases(self):
        assert count_markers("for example and for example", ["for example", "for example"]) == 1
        assert count_occurrences("for example and for example", ["for example"]) == 2

    def test_count_on_empty_text(self):
        assert count_markers("", ["because"]) == 0
        assert count_occurrences("", ["because"]) == 0

    @pytest.mark.parametrize(
        "student, reference, expected",
        [(0, 0, 1.0), (3, 0, 1.0), (1, 2, 0.5), (5, 2, 1.0), (0, 4, 0.0)],
    )
    def test_relative_presence(self, student, reference, expected):
        assert relative_presence(student, reference) == expected
