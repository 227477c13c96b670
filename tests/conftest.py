# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides sample entities, a small fact graph around Julie, rule files
written to temp directories, and fast sampling settings.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from kbpinfer.config.settings import Settings
from kbpinfer.core.models import Entity, Provenance, RelationFact
from kbpinfer.core.ner import NERTag
from kbpinfer.graph.entity_graph import EntityGraph
from kbpinfer.logging.context import clear_context
from kbpinfer.mln.reader import parse_mln
from kbpinfer.mln.text import MLNText


# === FIXTURES: Sample data ===


@pytest.fixture
def julie() -> Entity:
    return Entity(name="Julie", type=NERTag.PERSON)


@pytest.fixture
def canada() -> Entity:
    return Entity(name="Canada", type=NERTag.COUNTRY)


@pytest.fixture
def stanford() -> Entity:
    return Entity(name="Stanford", type=NERTag.ORGANIZATION)


@pytest.fixture
def sample_graph(julie: Entity, canada: Entity, stanford: Entity) -> EntityGraph:
    """Julie, born in Canada, works for Stanford; Stanford is based in Canada."""
    return EntityGraph.from_facts([
        RelationFact(
            entity=julie, relation="bornIn", slot=canada, score=0.9,
            provenance=Provenance(doc_id="doc1", sentence_index=0),
        ),
        RelationFact(
            entity=julie, relation="per:employee_of", slot=stanford, score=0.8,
            provenance=Provenance(doc_id="doc1", sentence_index=2, is_official=True),
        ),
        RelationFact(
            entity=stanford, relation="org:country_of_headquarters", slot=canada, score=0.7,
        ),
    ])


# === FIXTURES: Rule files ===


MATCH_RULES = """\
bornIn(PERSON,COUNTRY)
livedIn(PERSON,COUNTRY)
per:employee_of(PERSON,ORGANIZATION)
per:countries_of_residence(PERSON,COUNTRY)
org:country_of_headquarters(ORGANIZATION,COUNTRY)
1.0  !bornIn(x,y) v livedIn(x,y)
2.0  !per:employee_of(x,z) v !org:country_of_headquarters(z,y) v per:countries_of_residence(x,y)
"""


@pytest.fixture
def match_rule_lines() -> list[str]:
    return MATCH_RULES.splitlines()


@pytest.fixture
def match_rules_file(tmp_path: Path) -> Path:
    path = tmp_path / "match.rules"
    path.write_text(MATCH_RULES, encoding="utf-8")
    return path


MLN_RULES = """\
// Typed predicates as produced from graph relations.
bornIn_TYPE_PER_TO_CRY(PERSON,COUNTRY)
per_countries_of_residence_TYPE_PER_TO_CRY(PERSON,COUNTRY)

3.0 !bornIn_TYPE_PER_TO_CRY(x,y) v per_countries_of_residence_TYPE_PER_TO_CRY(x,y)
"""


@pytest.fixture
def mln_program() -> MLNText:
    return parse_mln(MLN_RULES.splitlines())


# Weak enough that the residence variable stays adjustable and is sampled.
SOFT_MLN_RULES = """\
bornIn_TYPE_PER_TO_CRY(PERSON,COUNTRY)
per_countries_of_residence_TYPE_PER_TO_CRY(PERSON,COUNTRY)

0.5 !bornIn_TYPE_PER_TO_CRY(x,y) v per_countries_of_residence_TYPE_PER_TO_CRY(x,y)
"""


@pytest.fixture
def soft_mln_program() -> MLNText:
    return parse_mln(SOFT_MLN_RULES.splitlines())


@pytest.fixture
def mln_rules_file(tmp_path: Path) -> Path:
    path = tmp_path / "kbp.mln"
    path.write_text(MLN_RULES, encoding="utf-8")
    return path


# === FIXTURES: Configuration ===


@pytest.fixture
def fast_settings(mln_rules_file: Path) -> Settings:
    """Settings with short, single-threaded sampling."""
    return Settings(
        _env_file=None,
        inference_engine="probabilistic",
        inference_rules_files=str(mln_rules_file),
        inference_gibbs_samples=2_000,
        inference_gibbs_threads=1,
    )


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()
