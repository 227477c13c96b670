# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

Lays out a workspace the way a deployment would: a fact file, rule files
for both engines and a .env file pointing at them. No external services.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from kbpinfer.graph.entity_graph import EntityGraph
from kbpinfer.main import _FACTS

CHAIN_RULES = """\
*bornIn_TYPE_PER_TO_CRY(PERSON,COUNTRY)

// Residence from birth, and from working for an organization based there.
2.0 !bornIn_TYPE_PER_TO_CRY(x,y) v per_countries_of_residence_TYPE_PER_TO_CRY(x,y)
1.5 !per_employee_of_TYPE_PER_TO_ORG(x,z) v !org_country_of_headquarters_TYPE_ORG_TO_CRY(z,y) v per_countries_of_residence_TYPE_PER_TO_CRY(x,y)
"""


@pytest.fixture
def workspace(tmp_path: Path, sample_graph: EntityGraph, match_rules_file: Path) -> Path:
    """Directory holding facts.json, match.rules, chain.mln and a .env file."""
    (tmp_path / "facts.json").write_bytes(_FACTS.dump_json(list(sample_graph.edges()), indent=2))
    (tmp_path / "chain.mln").write_text(CHAIN_RULES, encoding="utf-8")
    (tmp_path / ".env").write_text(
        f"INFERENCE_ENGINE=rule_match\n"
        f"INFERENCE_RULES_FILES={match_rules_file}\n"
        f"INFERENCE_GIBBS_SAMPLES=3000\n"
        f"INFERENCE_GIBBS_THREADS=2\n"
        f"LOG_FORMAT=json\n",
        encoding="utf-8",
    )
    return tmp_path
