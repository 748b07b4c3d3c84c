import pytest

from data_designer_essay_scorer.lexicon import LEXICON_VERSION, build_lexicon, load_lexicon
from data_designer_essay_scorer.text import stem


class TestLoadLexicon:
    def test_packaged_lexicon_loads(self, lexicon):
        assert lexicon.version == LEXICON_VERSION
        assert lexicon.default_domain in lexicon.domains
        assert "programming" in lexicon.domains
        assert "the" in lexicon.stopwords
        assert lexicon.keyboard_rows

    def test_load_is_cached(self):
        assert load_lexicon() is load_lexicon()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_lexicon(tmp_path / "missing.yaml")

    def test_custom_file(self, tmp_path):
        path = tmp_path / "lexicon.yaml"
        path.write_text(
            "version: 1\n"
            "stopwords: [the]\n"
            "domains:\n"
            "  general:\n"
            "    triggers: [topic]\n"
            "default_domain: general\n",
            encoding="utf-8",
        )
        custom = load_lexicon(path)
        assert custom.stopwords == frozenset({"the"})
        assert custom.default_domain == "general"
        assert set(custom.domains) == {"general"}
        assert custom.marker_list("causal") == ()


class TestBuildLexicon:
    def test_rejects_unknown_version(self):
        with pytest.raises(ValueError, match="version"):
            build_lexicon({"version": LEXICON_VERSION + 1})

    def test_rejects_missing_default_domain(self):
        with pytest.raises(ValueError, match="Default domain"):
            build_lexicon({"version": LEXICON_VERSION, "domains": {"biology": {}}, "default_domain": "physics"})

    def test_synonyms_are_symmetric(self, lexicon):
        assert stem("permit") in lexicon.synonym_stems[stem("allow")]
        assert stem("allow") in lexicon.synonym_stems[stem("permit")]

    def test_stem_tables(self, lexicon):
        assert stem("inheritance") in lexicon.technical_stems
        assert stem("principle") in lexicon.domain_stems
