# src/mln/text.py — v1
"""In-memory rule programs: typed binary predicates and weighted clauses.

A rule is a disjunction of literals. When a rule is used as an
implication, its false literals are the antecedents and its single true
literal is the consequent. A weight of +inf marks a hard constraint.
Every type here is frozen; identity follows the canonical string form.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

EQUALS = "="


def is_constant(token: str) -> bool:
    """Constants are capitalized tokens; everything else is a variable."""
    return bool(token) and token[0].isupper()


class UnknownPredicateError(KeyError):
    """A literal references a predicate the program does not declare."""


@dataclass(frozen=True)
class Predicate:
    name: str
    type1: str
    type2: str
    closed: bool = False

    def as_open(self) -> Predicate:
        return replace(self, closed=False)

    def as_closed(self) -> Predicate:
        return replace(self, closed=True)

    def __str__(self) -> str:
        star = "*" if self.closed else ""
        return f"{star}{self.name}({self.type1},{self.type2})"


@dataclass(frozen=True)
class Literal:
    name: str
    arg1: str
    arg2: str
    truth: bool = True

    @property
    def is_equality(self) -> bool:
        return self.name == EQUALS

    def with_args(self, arg1: str, arg2: str) -> Literal:
        return replace(self, arg1=arg1, arg2=arg2)

    def as_true(self) -> Literal:
        return self if self.truth else replace(self, truth=True)

    def as_false(self) -> Literal:
        return replace(self, truth=False) if self.truth else self

    def negate(self) -> Literal:
        return replace(self, truth=not self.truth)

    def __str__(self) -> str:
        if self.is_equality:
            op = "=" if self.truth else "!="
            return f"{self.arg1} {op} {self.arg2}"
        bang = "" if self.truth else "!"
        return f"{bang}{self.name}({self.arg1},{self.arg2})"


@dataclass(frozen=True)
class Rule:
    weight: float
    literals: tuple[Literal, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "literals", tuple(self.literals))

    @property
    def is_hard(self) -> bool:
        return self.weight == math.inf

    def antecedents(self) -> list[Literal]:
        """The negated literals, i.e. the body of the implication."""
        return [lit for lit in self.literals if not lit.truth]

    def consequent(self) -> Literal:
        """The first positive literal.

        Raises:
            ValueError: If the clause has no positive literal.
        """
        for lit in self.literals:
            if lit.truth:
                return lit
        raise ValueError(f"Rule has no consequent: {self}")

    def __str__(self) -> str:
        body = " v ".join(str(lit) for lit in self.literals)
        if self.is_hard:
            return f"{body}."
        return f"{self.weight} {body}"


@dataclass(frozen=True)
class MLNText:
    """A rule program: the declared predicates and the rules over them."""

    predicates: frozenset[Predicate] = field(default_factory=frozenset)
    rules: tuple[Rule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "predicates", frozenset(self.predicates))
        object.__setattr__(self, "rules", tuple(self.rules))

    def get_predicate_by_name(self, name: str) -> Predicate | None:
        for pred in sorted(self.predicates, key=str):
            if pred.name == name:
                return pred
        return None

    def predicate(self, name: str) -> Predicate:
        """Like get_predicate_by_name, but raises UnknownPredicateError."""
        pred = self.get_predicate_by_name(name)
        if pred is None:
            raise UnknownPredicateError(name)
        return pred

    def union(self, other: MLNText) -> MLNText:
        """Predicates and rules of both programs; duplicate rules kept once."""
        rules = list(self.rules)
        seen = set(rules)
        for rule in other.rules:
            if rule not in seen:
                rules.append(rule)
                seen.add(rule)
        return MLNText(self.predicates | other.predicates, rules)

    def with_rules(self, rules: Iterable[Rule]) -> MLNText:
        return MLNText(self.predicates, tuple(rules))

    def without_predicates(self, names: Iterable[str]) -> MLNText:
        """Drop the named predicates and every rule mentioning them."""
        dropped = set(names)
        return MLNText(
            frozenset(p for p in self.predicates if p.name not in dropped),
            tuple(
                r for r in self.rules
                if not any(lit.name in dropped for lit in r.literals)
            ),
        )

    def __str__(self) -> str:
        lines = [str(p) for p in sorted(self.predicates, key=str)]
        lines.append("")
        lines.extend(str(r) for r in self.rules)
        return "\n".join(lines)
