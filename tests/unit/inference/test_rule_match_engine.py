# tests/unit/inference/test_rule_match_engine.py — v1
"""Tests for inference/rule_match_engine.py — deterministic rule matching."""

from __future__ import annotations

import pytest

from kbpinfer.config.settings import Settings
from kbpinfer.core.models import Entity, RelationFact
from kbpinfer.core.ner import NERTag
from kbpinfer.graph.entity_graph import EntityGraph
from kbpinfer.inference.logmath import sigmoid
from kbpinfer.inference.rule_match_engine import (
    BoundRule,
    Clause,
    MatchRule,
    RuleMatchEngine,
)
from kbpinfer.mln.reader import MLNParseError


def _fact(graph: EntityGraph, head: Entity, relation: str, tail: Entity) -> RelationFact:
    return next(
        f for f in graph.get_edges(head, tail) if f.relation == relation
    )


class TestLoading:
    def test_rules_indexed_by_consequent(self, match_rule_lines):
        engine = RuleMatchEngine(match_rule_lines)
        assert set(engine.rules_by_relation) == {"livedIn", "per:countries_of_residence"}
        (rule,) = engine.rules_by_relation["livedIn"]
        assert rule.probability == pytest.approx(sigmoid(1.0))
        assert rule.consequent == Clause("x", NERTag.PERSON, "livedIn", "y", NERTag.COUNTRY)
        assert str(rule) == "bornIn(x,y) -> livedIn(x,y)"

    def test_comments_and_blank_lines(self):
        engine = RuleMatchEngine([
            "// signatures",
            "",
            "bornIn(PER,CRY)  // short names work too",
            "livedIn(PERSON,COUNTRY)",
            "1.0\t!bornIn(x,y) v livedIn(x,y)",
        ])
        (rule,) = engine.rules_by_relation["livedIn"]
        (antecedent,) = rule.antecedents
        assert antecedent.entity_type is NERTag.PERSON

    def test_missing_signature_is_wildcard(self):
        engine = RuleMatchEngine(["1.0  !bornIn(x,y) v livedIn(x,y)"])
        (rule,) = engine.rules_by_relation["livedIn"]
        assert rule.consequent.entity_type is None
        assert rule.consequent.slot_type is None

    def test_typed_relation_names_untyped(self):
        engine = RuleMatchEngine([
            "1.0  !per_spouse_TYPE_PER_TO_PER(x,y) v per_spouse_TYPE_PER_TO_PER(y,x)",
        ])
        assert set(engine.rules_by_relation) == {"per:spouse"}

    def test_sorted_by_probability(self):
        engine = RuleMatchEngine([
            "1.0  !bornIn(x,y) v livedIn(x,y)",
            "2.0  !citizenOf(x,y) v livedIn(x,y)",
        ])
        probs = [r.probability for r in engine.rules_by_relation["livedIn"]]
        assert probs == sorted(probs, reverse=True)

    def test_cutoff(self, match_rule_lines):
        engine = RuleMatchEngine(match_rule_lines, cutoff=1.5)
        assert set(engine.rules_by_relation) == {"per:countries_of_residence"}
        assert engine.min_prob == pytest.approx(sigmoid(1.5))

    def test_max_depth(self, match_rule_lines):
        engine = RuleMatchEngine(match_rule_lines, max_depth=1)
        assert set(engine.rules_by_relation) == {"livedIn"}

    def test_duplicate_rule_kept_once(self):
        line = "1.0  !bornIn(x,y) v livedIn(x,y)"
        engine = RuleMatchEngine([line, line])
        assert len(engine.rules_by_relation["livedIn"]) == 1

    @pytest.mark.parametrize("line, reason", [
        ("1.0  bornIn(x,y) v livedIn(x,y)", "multiple consequents"),
        ("1.0  !bornIn(x,y)", "no consequent"),
        ("high  !bornIn(x,y) v livedIn(x,y)", "score"),
        ("1.0  !bornIn(x) v livedIn(x,y)", "Invalid clause"),
        ("bornIn(PERSON,ALIEN)", "Unknown entity type"),
        ("not a rule", "Invalid type signature"),
    ])
    def test_parse_errors(self, line, reason):
        with pytest.raises(MLNParseError, match=reason) as excinfo:
            RuleMatchEngine(["// header", line])
        assert excinfo.value.line_number == 2

    def test_from_files_concatenates(self, tmp_path):
        signatures = tmp_path / "signatures.rules"
        signatures.write_text("bornIn(PERSON,COUNTRY)\nlivedIn(PERSON,COUNTRY)\n")
        rules = tmp_path / "body.rules"
        rules.write_text("1.0  !bornIn(x,y) v livedIn(x,y)\n")
        engine = RuleMatchEngine.from_files([signatures, rules])
        (rule,) = engine.rules_by_relation["livedIn"]
        assert rule.consequent.slot_type is NERTag.COUNTRY

    def test_from_settings(self, match_rules_file):
        settings = Settings(
            _env_file=None,
            inference_rules_files=str(match_rules_file),
            inference_rules_cutoff=1.5,
        )
        engine = RuleMatchEngine.from_settings(settings)
        assert set(engine.rules_by_relation) == {"per:countries_of_residence"}

    def test_is_useful_relation(self, match_rule_lines):
        engine = RuleMatchEngine(match_rule_lines)
        assert engine.is_useful_relation("bornIn")
        assert engine.is_useful_relation("per:employee_of")
        assert not engine.is_useful_relation("per:spouse")


class TestBindings:
    def _build_rule(self, lines: list[str]) -> MatchRule:
        engine = RuleMatchEngine(lines)
        (rule,) = engine.rules_by_relation["per:countries_of_residence"]
        return rule

    def test_free_variables(self, match_rule_lines, julie, canada):
        bound = self._build_rule(match_rule_lines).bind_consequent(julie, canada)
        assert bound.free_variables() == {"z"}
        assert bound.bindings == {"x": julie, "y": canada}

    def test_bind_is_persistent(self, match_rule_lines, julie, canada, stanford):
        bound = self._build_rule(match_rule_lines).bind_consequent(julie, canada)
        extended = bound.bind("z", stanford)
        assert isinstance(extended, BoundRule)
        assert "z" not in bound.bindings
        assert extended.free_variables() == set()

    def test_consistent_bindings(self, match_rule_lines, sample_graph, julie, canada, stanford):
        engine = RuleMatchEngine(match_rule_lines)
        bound = self._build_rule(match_rule_lines).bind_consequent(julie, canada)
        (complete,) = engine.consistent_bindings(sample_graph, bound)
        assert complete.bindings["z"] == stanford

    def test_type_mismatch_inconsistent(self, match_rule_lines, sample_graph, julie, canada):
        bound = self._build_rule(match_rule_lines).bind_consequent(julie, canada)
        assert not bound.is_consistent(sample_graph, "z", julie)


class TestApply:
    def test_single_antecedent(self, julie, canada):
        graph = EntityGraph.from_facts([
            RelationFact(entity=julie, relation="bornIn", slot=canada, score=0.9),
        ])
        engine = RuleMatchEngine(["1.0  !bornIn(x,y) v livedIn(x,y)"])
        engine.apply(graph, julie)
        assert graph.contains(julie, "livedIn", canada)

    def test_sample_graph(self, match_rule_lines, sample_graph, julie, canada):
        engine = RuleMatchEngine(match_rule_lines)
        result = engine.apply(sample_graph, julie)
        assert result is sample_graph
        assert len(sample_graph) == 5

        lived = _fact(sample_graph, julie, "livedIn", canada)
        assert lived.score == pytest.approx(0.5 + sigmoid(1.0) / 2)
        assert lived.provenance is not None
        assert lived.provenance.doc_id == "doc1"

        residence = _fact(sample_graph, julie, "per:countries_of_residence", canada)
        assert residence.score == pytest.approx(0.5 + sigmoid(2.0) / 2)
        assert residence.provenance is None

    def test_highest_probability_rule_wins(self, sample_graph, julie, canada):
        engine = RuleMatchEngine([
            "0.5  !bornIn(x,y) v livedIn(x,y)",
            "3.0  !bornIn(x,y) v livedIn(x,y)",
        ])
        engine.apply(sample_graph, julie)
        lived = _fact(sample_graph, julie, "livedIn", canada)
        assert lived.score == pytest.approx(0.5 + sigmoid(3.0) / 2)

    def test_missing_antecedent(self, match_rule_lines, sample_graph, canada):
        engine = RuleMatchEngine(match_rule_lines)
        bob = Entity(name="Bob", type=NERTag.PERSON)
        sample_graph.add_vertex(bob)
        before = len(sample_graph)
        engine.apply(sample_graph, bob)
        assert len(sample_graph) == before

    def test_existing_fact_untouched(self, sample_graph, julie, canada):
        sample_graph.add(RelationFact(entity=julie, relation="livedIn", slot=canada, score=0.1))
        RuleMatchEngine(["1.0  !bornIn(x,y) v livedIn(x,y)"]).apply(sample_graph, julie)
        assert _fact(sample_graph, julie, "livedIn", canada).score == 0.1

    def test_kbp_slot_type_filter(self, julie, stanford):
        graph = EntityGraph.from_facts([
            RelationFact(entity=julie, relation="per:employee_of", slot=stanford, score=0.8),
        ])
        engine = RuleMatchEngine(["1.0  !per:employee_of(x,y) v per:spouse(x,y)"])
        engine.apply(graph, julie)
        assert not graph.contains(julie, "per:spouse", stanford)

    def test_no_self_loops(self, julie):
        graph = EntityGraph()
        graph.add_vertex(julie)
        RuleMatchEngine(["1.0  !bornIn(x,y) v livedIn(x,y)"]).apply(graph, julie)
        assert len(graph) == 0


class TestProvenance:
    def test_prefers_official(self, sample_graph, julie, stanford):
        rule = MatchRule(
            frozenset({Clause("x", None, "per:employee_of", "y", None)}),
            Clause("x", None, "per:member_of", "y", None),
            0.8,
        )
        provenance = RuleMatchEngine.try_find_provenance(sample_graph, julie, stanford, rule)
        assert provenance is not None and provenance.is_official

    def test_none_for_multi_antecedent(self, match_rule_lines, sample_graph, julie, canada):
        engine = RuleMatchEngine(match_rule_lines)
        (rule,) = engine.rules_by_relation["per:countries_of_residence"]
        assert RuleMatchEngine.try_find_provenance(sample_graph, julie, canada, rule) is None
