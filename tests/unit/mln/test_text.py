# tests/unit/mln/test_text.py — v1
"""Tests for mln/text.py — predicates, literals, rules and programs."""

from __future__ import annotations

import math

import pytest

from kbpinfer.mln.text import (
    EQUALS,
    Literal,
    MLNText,
    Predicate,
    Rule,
    UnknownPredicateError,
    is_constant,
)


def _build_program() -> MLNText:
    born = Predicate("bornIn", "PERSON", "COUNTRY")
    lived = Predicate("livedIn", "PERSON", "COUNTRY", closed=True)
    rule = Rule(1.5, (Literal("bornIn", "x", "y", False), Literal("livedIn", "x", "y")))
    return MLNText(frozenset({born, lived}), (rule,))


class TestIsConstant:
    @pytest.mark.parametrize("token,expected", [
        ("Julie", True), ("PER_Julie", True), ("x", False), ("person1", False), ("", False),
    ])
    def test_capitalization(self, token, expected):
        assert is_constant(token) is expected


class TestPredicate:
    def test_str_open(self):
        assert str(Predicate("bornIn", "PERSON", "COUNTRY")) == "bornIn(PERSON,COUNTRY)"

    def test_str_closed(self):
        assert str(Predicate("bornIn", "PERSON", "COUNTRY", closed=True)) == "*bornIn(PERSON,COUNTRY)"

    def test_open_closed_toggle(self):
        pred = Predicate("bornIn", "PERSON", "COUNTRY")
        assert pred.as_closed().closed is True
        assert pred.as_closed().as_open() == pred


class TestLiteral:
    def test_str(self):
        assert str(Literal("bornIn", "x", "y")) == "bornIn(x,y)"
        assert str(Literal("bornIn", "x", "y", False)) == "!bornIn(x,y)"

    def test_equality_str(self):
        assert str(Literal(EQUALS, "x", "y")) == "x = y"
        assert str(Literal(EQUALS, "x", "y", False)) == "x != y"
        assert Literal(EQUALS, "x", "y").is_equality

    def test_polarity_helpers(self):
        lit = Literal("bornIn", "x", "y", False)
        assert lit.as_true().truth is True
        assert lit.as_false() is lit
        assert lit.negate().negate() == lit

    def test_with_args(self):
        lit = Literal("bornIn", "x", "y", False).with_args("Julie", "Canada")
        assert lit == Literal("bornIn", "Julie", "Canada", False)


class TestRule:
    def test_antecedents_and_consequent(self):
        rule = _build_program().rules[0]
        assert rule.antecedents() == [Literal("bornIn", "x", "y", False)]
        assert rule.consequent() == Literal("livedIn", "x", "y")

    def test_consequent_missing(self):
        rule = Rule(1.0, (Literal("bornIn", "x", "y", False),))
        with pytest.raises(ValueError, match="no consequent"):
            rule.consequent()

    def test_hard_str(self):
        rule = Rule(math.inf, (Literal("bornIn", "Julie", "Canada"),))
        assert rule.is_hard
        assert str(rule) == "bornIn(Julie,Canada)."

    def test_weighted_str(self):
        assert str(_build_program().rules[0]) == "1.5 !bornIn(x,y) v livedIn(x,y)"

    def test_literals_coerced_to_tuple(self):
        rule = Rule(1.0, [Literal("bornIn", "x", "y")])
        assert isinstance(rule.literals, tuple)
        assert hash(rule) == hash(Rule(1.0, (Literal("bornIn", "x", "y"),)))


class TestMLNText:
    def test_get_predicate_by_name(self):
        program = _build_program()
        assert program.get_predicate_by_name("livedIn").closed is True
        assert program.get_predicate_by_name("diedIn") is None

    def test_predicate_raises(self):
        with pytest.raises(UnknownPredicateError):
            _build_program().predicate("diedIn")

    def test_union_dedupes_rules(self):
        program = _build_program()
        extra = Rule(-2.0, (Literal("bornIn", "x", "y"),))
        merged = program.union(program.with_rules([extra, program.rules[0]]))
        assert merged.rules == (program.rules[0], extra)
        assert merged.predicates == program.predicates

    def test_without_predicates(self):
        reduced = _build_program().without_predicates(["livedIn"])
        assert {p.name for p in reduced.predicates} == {"bornIn"}
        assert reduced.rules == ()

    def test_str_lists_predicates_then_rules(self):
        lines = str(_build_program()).splitlines()
        assert lines == [
            "*livedIn(PERSON,COUNTRY)",
            "bornIn(PERSON,COUNTRY)",
            "",
            "1.5 !bornIn(x,y) v livedIn(x,y)",
        ]
