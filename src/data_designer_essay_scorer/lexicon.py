from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from data_designer_essay_scorer.text import stem

logger = logging.getLogger(__name__)

LEXICON_VERSION = 1
DEFAULT_LEXICON_PATH = Path(__file__).parent / "data" / "lexicon.yaml"


@dataclass(frozen=True)
class DomainProfile:
    name: str
    triggers: tuple[str, ...]
    concepts: tuple[str, ...]
    methodology: tuple[str, ...]
    style: tuple[str, ...]
    contrasts: tuple[str, ...]


@dataclass(frozen=True)
class UnrelatedCategory:
    name: str
    weight: float
    patterns: tuple[str, ...]


@dataclass(frozen=True, eq=False)
class Lexicon:
    """Read-only word tables shared by every scoring component.

    Stem-keyed views (``technical_stems``, ``synonym_stems``...) are built once at
    load time so the analyzers never re-stem the tables per call.
    """

    version: int
    stopwords: frozenset[str]
    common_words: frozenset[str]
    technical_terms: frozenset[str]
    domain_terms: frozenset[str]
    modern_terms: tuple[str, ...]
    prefixes: tuple[str, ...]
    suffixes: tuple[str, ...]
    markers: dict[str, tuple[str, ...]]
    domains: dict[str, DomainProfile]
    default_domain: str
    unrelated: tuple[UnrelatedCategory, ...]
    keyboard_rows: tuple[str, ...]
    synonym_stems: dict[str, frozenset[str]] = field(default_factory=dict)
    related_stems: dict[str, frozenset[str]] = field(default_factory=dict)
    technical_stems: frozenset[str] = frozenset()
    domain_stems: frozenset[str] = frozenset()

    def marker_list(self, name: str) -> tuple[str, ...]:
        return self.markers.get(name, ())


def _words(raw: object) -> tuple[str, ...]:
    return tuple(str(w).strip().lower() for w in (raw or []) if str(w).strip())


def _symmetric_stem_groups(table: dict[str, list[str]]) -> dict[str, frozenset[str]]:
    groups: dict[str, set[str]] = {}
    for key, values in table.items():
        members = {stem(w) for w in (key, *values)}
        for member in members:
            groups.setdefault(member, set()).update(members - {member})
    return {k: frozenset(v) for k, v in groups.items()}


def _directed_stem_groups(table: dict[str, list[str]]) -> dict[str, frozenset[str]]:
    return {stem(key): frozenset(stem(w) for w in values) for key, values in table.items()}


def build_lexicon(payload: dict) -> Lexicon:
    """Validate a parsed lexicon document and build the stem lookup tables."""
    version = payload.get("version")
    if version != LEXICON_VERSION:
        raise ValueError(f"Unsupported lexicon version {version!r}, expected {LEXICON_VERSION}")

    domains = {
        name: DomainProfile(
            name=name,
            triggers=_words(entry.get("triggers")),
            concepts=_words(entry.get("concepts")),
            methodology=_words(entry.get("methodology")),
            style=_words(entry.get("style")),
            contrasts=_words(entry.get("contrasts")),
        )
        for name, entry in (payload.get("domains") or {}).items()
    }
    default_domain = payload.get("default_domain", "academic")
    if default_domain not in domains:
        raise ValueError(f"Default domain {default_domain!r} is not defined in the lexicon")

    unrelated = tuple(
        UnrelatedCategory(name=name, weight=float(entry.get("weight", 0.0)), patterns=_words(entry.get("patterns")))
        for name, entry in (payload.get("unrelated_content") or {}).items()
    )
    affixes = payload.get("affixes") or {}
    technical = frozenset(_words(payload.get("technical_terms")))
    domain_terms = frozenset(_words(payload.get("domain_terms")))

    return Lexicon(
        version=version,
        stopwords=frozenset(_words(payload.get("stopwords"))),
        common_words=frozenset(_words(payload.get("common_words"))),
        technical_terms=technical,
        domain_terms=domain_terms,
        modern_terms=_words(payload.get("modern_terms")),
        prefixes=_words(affixes.get("prefixes")),
        suffixes=_words(affixes.get("suffixes")),
        markers={name: _words(values) for name, values in (payload.get("markers") or {}).items()},
        domains=domains,
        default_domain=default_domain,
        unrelated=unrelated,
        keyboard_rows=_words(payload.get("keyboard_rows")),
        synonym_stems=_symmetric_stem_groups(payload.get("synonyms") or {}),
        related_stems=_directed_stem_groups(payload.get("related_concepts") or {}),
        technical_stems=frozenset(stem(w) for w in technical),
        domain_stems=frozenset(stem(w) for w in domain_terms),
    )


@lru_cache(maxsize=8)
def load_lexicon(path: str | Path | None = None) -> Lexicon:
    """Load a lexicon YAML file. Results are cached per path."""
    lexicon_path = Path(path) if path is not None else DEFAULT_LEXICON_PATH
    if not lexicon_path.exists():
        raise FileNotFoundError(f"Lexicon file not found: {lexicon_path}")
    with open(lexicon_path, "r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or {}
    lexicon = build_lexicon(payload)
    logger.debug(f"Loaded lexicon v{lexicon.version} from {lexicon_path} ({len(lexicon.domains)} domains)")
    return lexicon
