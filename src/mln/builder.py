# src/mln/builder.py — v1
"""Fluent construction of rule programs.

    program = (
        MLNTextBuilder()
        .add_predicates()
            .open_predicate("bornIn", "PERSON", "COUNTRY")
            .closed_predicate("citizenOf", "PERSON", "COUNTRY")
            .end_predicates()
        .add_rules()
            .new_rule().or_not("citizenOf", "x", "y").or_("bornIn", "x", "y").end_rule(1.5)
            .end_rules()
        .add_evidence(Literal("citizenOf", "Julie", "Canada"))
        .end()
    )

Evidence becomes hard unit clauses and priors weighted unit clauses, so
the result is the program read_mln would return for the same file.
Domains and constants are kept on the builder (``domains``) since the
text format has no syntax for them.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from kbpinfer.mln.text import EQUALS, Literal, MLNText, Predicate, Rule, is_constant


class MLNTextBuilder:
    """Accumulates predicates, rules, evidence and domains."""

    def __init__(self) -> None:
        self._predicates: list[Predicate] = []
        self._rules: list[Rule] = []
        self._domains: dict[str, set[str]] = {}

    # --- Domains ---

    def register_domain(self, type_name: str) -> MLNTextBuilder:
        self._domains.setdefault(type_name, set())
        return self

    def register_constant(self, type_name: str, value: str) -> MLNTextBuilder:
        if not is_constant(value):
            raise ValueError(f"Constants must be capitalized: {value!r}")
        self._domains.setdefault(type_name, set()).add(value)
        return self

    @property
    def domains(self) -> dict[str, frozenset[str]]:
        return {k: frozenset(v) for k, v in self._domains.items()}

    # --- Predicates ---

    def add_predicates(self) -> PredicateBuilder:
        return PredicateBuilder(self)

    def _add_predicate(self, predicate: Predicate) -> None:
        self.register_domain(predicate.type1)
        self.register_domain(predicate.type2)
        self._predicates.append(predicate)

    # --- Rules ---

    def add_rules(self) -> RuleBuilder:
        return RuleBuilder(self)

    def add_rule(self, rule: Rule) -> MLNTextBuilder:
        self._rules.append(rule)
        return self

    def add_evidence(self, *literals: Literal) -> MLNTextBuilder:
        """Record ground literals as hard unit clauses."""
        for lit in literals:
            self.add_rule(Rule(math.inf, (lit,)))
        return self

    def add_priors(self, weight: float, literals: Iterable[Literal]) -> MLNTextBuilder:
        """Record one weighted unit clause per literal."""
        for lit in literals:
            self.add_rule(Rule(weight, (lit,)))
        return self

    def end(self) -> MLNText:
        return MLNText(frozenset(self._predicates), tuple(self._rules))


class PredicateBuilder:
    def __init__(self, parent: MLNTextBuilder) -> None:
        self._parent = parent

    def closed_predicate(self, name: str, type1: str, type2: str) -> PredicateBuilder:
        self._parent._add_predicate(Predicate(name, type1, type2, closed=True))
        return self

    def open_predicate(self, name: str, type1: str, type2: str) -> PredicateBuilder:
        self._parent._add_predicate(Predicate(name, type1, type2, closed=False))
        return self

    def end_predicates(self) -> MLNTextBuilder:
        return self._parent


class RuleBuilder:
    def __init__(self, parent: MLNTextBuilder) -> None:
        self._parent = parent

    def new_rule(self) -> ClauseBuilder:
        return ClauseBuilder(self)

    def _add(self, rule: Rule) -> None:
        self._parent.add_rule(rule)

    def end_rules(self) -> MLNTextBuilder:
        return self._parent


class ClauseBuilder:
    """Accumulates the disjuncts of a single clause."""

    def __init__(self, parent: RuleBuilder) -> None:
        self._parent = parent
        self._literals: list[Literal] = []

    def or_(self, name: str, arg1: str, arg2: str) -> ClauseBuilder:
        self._literals.append(Literal(name, arg1, arg2, True))
        return self

    def or_not(self, name: str, arg1: str, arg2: str) -> ClauseBuilder:
        self._literals.append(Literal(name, arg1, arg2, False))
        return self

    def equals(self, arg1: str, arg2: str) -> ClauseBuilder:
        self._literals.append(Literal(EQUALS, arg1, arg2, True))
        return self

    def not_equals(self, arg1: str, arg2: str) -> ClauseBuilder:
        self._literals.append(Literal(EQUALS, arg1, arg2, False))
        return self

    def end_rule(self, weight: float = math.inf) -> RuleBuilder:
        if not self._literals:
            raise ValueError("A rule needs at least one literal")
        self._parent._add(Rule(weight, tuple(self._literals)))
        return self._parent
