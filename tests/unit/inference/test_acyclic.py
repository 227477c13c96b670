# tests/unit/inference/test_acyclic.py — v1
"""Tests for inference/acyclic.py — greedy acyclic rule selection."""

from __future__ import annotations

from kbpinfer.inference.acyclic import (
    BayesianLogicNetwork,
    dependency_graph,
    is_acyclic,
    make_acyclic,
)
from kbpinfer.mln.reader import parse_mln

_PREDICATES = ["a(T1,T2)", "b(T1,T2)", "c(T1,T2)"]


def _build_program(*rules: str):
    return parse_mln(_PREDICATES + list(rules))


class TestMakeAcyclic:
    def test_three_cycle_keeps_two(self):
        program = _build_program(
            "5.0 !a(x,y) v b(x,y)",
            "5.0 !b(x,y) v c(x,y)",
            "5.0 !c(x,y) v a(x,y)",
        )
        reduced = make_acyclic(program)
        assert len(reduced.rules) == 2
        assert set(reduced.rules) < set(program.rules)
        assert is_acyclic(reduced)
        assert reduced.predicates == program.predicates

    def test_acyclic_program_unchanged(self):
        program = _build_program(
            "1.0 !a(x,y) v b(x,y)",
            "2.0 !b(x,y) v c(x,y)",
            "3.0 !a(x,y) v !b(x,y) v c(x,y)",
        )
        assert make_acyclic(program) == program

    def test_heavier_rule_wins_when_descending(self):
        program = _build_program(
            "1.0 !a(x,y) v b(x,y)",
            "5.0 !b(x,y) v a(x,y)",
        )
        assert [r.weight for r in make_acyclic(program).rules] == [5.0]
        assert [r.weight for r in make_acyclic(program, descending=False).rules] == [1.0]

    def test_long_cycle_detected_through_descendants(self):
        program = _build_program(
            "4.0 !b(x,y) v c(x,y)",
            "3.0 !a(x,y) v b(x,y)",
            "2.0 !c(x,y) v a(x,y)",
        )
        reduced = make_acyclic(program)
        assert [r.weight for r in reduced.rules] == [4.0, 3.0]

    def test_self_loop_rejected(self):
        program = _build_program("1.0 !a(x,y) v a(y,x)")
        assert make_acyclic(program).rules == ()

    def test_equality_literals_ignored(self):
        program = _build_program("1.0 !a(x,y) v !a(x,z) v b(x,y) v y = z")
        assert make_acyclic(program) == program


class TestDependencyGraph:
    def test_edges(self):
        program = _build_program("1.0 !a(x,y) v !b(x,y) v c(x,y)")
        graph = dependency_graph(program)
        assert set(graph.edges) == {("a", "c"), ("b", "c")}
        assert set(graph.nodes) == {"a", "b", "c"}

    def test_is_acyclic(self):
        assert is_acyclic(_build_program("1.0 !a(x,y) v b(x,y)"))
        assert not is_acyclic(_build_program("1.0 !a(x,y) v b(x,y)", "1.0 !b(x,y) v a(x,y)"))


class TestBayesianLogicNetwork:
    def test_build_acyclic(self):
        program = _build_program("1.0 !a(x,y) v b(x,y)", "2.0 !b(x,y) v a(x,y)")
        network = BayesianLogicNetwork.build_acyclic(program)
        assert is_acyclic(network.rules)
        assert len(network.rules.rules) == 1
