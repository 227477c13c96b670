# src/inference/factors.py — v1
"""Factors over Boolean variables, built from grounded rules.

A factor maps a full assignment (a sequence of bools indexed by variable
id) to a log-probability contribution. Three independent variants share
the ``Factor`` protocol:

- EntailmentFactor: one grounded rule; scores the consequent when every
  antecedent holds and is indifferent (ln 0.5) otherwise.
- TableFactor: many groundings of one consequent merged with a
  ``FactorMergeMethod``; entries are computed lazily and memoized per
  antecedent bit-pattern behind a lock.
- EagerTableFactor: the same table fully precomputed at construction;
  limited to fewer than EAGER_TABLE_CEILING antecedents. BayesNetBuilder
  only produces this variant.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import numpy as np

from kbpinfer.inference.logmath import LOG_HALF, log1mexp, safe_log

EAGER_TABLE_CEILING = 16

Assignment = Sequence[bool]


class FactorMergeMethod(str, Enum):
    """How the groundings of one consequent combine into one table entry."""

    NOISY_OR = "noisy_or"
    HYBRID_OR = "hybrid_or"
    GENTLE_OR = "gentle_or"
    GEOMETRIC_MEAN = "geometric_mean"


@dataclass(frozen=True)
class GroundedRule:
    """A fully bound implication ``antecedents => consequent`` over variable ids."""

    name: str
    log_prob_true: float
    log_prob_false: float
    consequent: int
    antecedents: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "antecedents", tuple(self.antecedents))

    @classmethod
    def empty(cls, consequent: int, prior: float) -> GroundedRule:
        """The baseline prior used when a consequent has no unit grounding."""
        return cls("default prior", safe_log(prior), safe_log(1.0 - prior), consequent)

    def matches(self, assignment: Assignment) -> bool:
        return all(assignment[a] for a in self.antecedents)


class Factor(Protocol):
    name: str

    @property
    def consequent(self) -> int: ...

    def log_prob(self, assignment: Assignment) -> float: ...

    def components(self) -> frozenset[int]: ...

    def explanation(self, assignment: Assignment) -> str: ...


def clean_priors(rules: Iterable[GroundedRule], default_prior: float) -> list[GroundedRule]:
    """Return the rules with every zero-antecedent grounding replaced by one prior.

    The prior is the unit grounding with the highest log_prob_true, or
    ``GroundedRule.empty`` when there is none. It is placed first.
    """
    rules = list(rules)
    if not rules:
        raise ValueError("clean_priors needs at least one grounded rule")
    consequent = rules[0].consequent
    prior = GroundedRule.empty(consequent, default_prior)
    best = -math.inf
    for rule in rules:
        if not rule.antecedents and rule.log_prob_true > best:
            best = rule.log_prob_true
            prior = rule
    return [prior] + [rule for rule in rules if rule.antecedents]


class EntailmentFactor:
    def __init__(self, rule: GroundedRule) -> None:
        self.rule = rule
        self.name = rule.name
        self._components = frozenset(rule.antecedents) | {rule.consequent}

    @property
    def consequent(self) -> int:
        return self.rule.consequent

    def log_prob(self, assignment: Assignment) -> float:
        if self.rule.matches(assignment):
            if assignment[self.rule.consequent]:
                return self.rule.log_prob_true
            return self.rule.log_prob_false
        return LOG_HALF

    def components(self) -> frozenset[int]:
        return self._components

    def explanation(self, assignment: Assignment) -> str:
        return self.name if self.rule.matches(assignment) else ""

    def __repr__(self) -> str:
        return f"EntailmentFactor({self.name!r})"


class _RuleTable:
    """Groundings of one consequent, sorted for table lookup.

    Rules are ordered by descending antecedent count; the sort is stable,
    so the prior (the only zero-antecedent rule) ends up last.
    """

    def __init__(
        self,
        rules: Iterable[GroundedRule],
        merge_method: FactorMergeMethod,
        default_prior: float,
    ) -> None:
        cleaned = clean_priors(rules, default_prior)
        self.prior = cleaned[0]
        self.rules = sorted(cleaned, key=lambda r: -len(r.antecedents))
        self.consequent = self.prior.consequent
        self.merge_method = FactorMergeMethod(merge_method)
        self.name = "\n".join(r.name for r in self.rules)

        antecedents: set[int] = set()
        for rule in self.rules:
            if rule.consequent != self.consequent:
                raise ValueError(
                    f"Mixed consequents in one table: {rule.consequent} != {self.consequent}"
                )
            antecedents.update(rule.antecedents)
        self.antecedents = tuple(sorted(antecedents))
        self.components = frozenset(self.antecedents) | {self.consequent}

    def key(self, assignment: Assignment) -> int:
        """Big-endian bit pattern of the antecedents' values."""
        bits = 0
        for a in self.antecedents:
            bits = (bits << 1) | (1 if assignment[a] else 0)
        return bits

    def compute_entry(self, assignment: Assignment) -> float:
        """log P(consequent = true) given the antecedent values in assignment."""
        prior = self.prior
        method = self.merge_method
        size_limit = 0
        updates = 0
        log_prob_true = 0.0
        log_prob_false = 0.0
        positive = 0
        negative = 0

        for rule in self.rules:
            if len(rule.antecedents) < size_limit:
                break
            if not rule.matches(assignment):
                continue
            size_limit = len(rule.antecedents)

            if method is FactorMergeMethod.NOISY_OR:
                log_prob_false += min(prior.log_prob_false, rule.log_prob_false)
            elif method is FactorMergeMethod.GEOMETRIC_MEAN:
                updates += 1
                update = max(prior.log_prob_true, rule.log_prob_true)
                log_prob_true += (update - log_prob_true) / updates
            elif rule.log_prob_true > rule.log_prob_false:
                positive = 1
                log_prob_false += min(prior.log_prob_false, rule.log_prob_false)
            elif method is FactorMergeMethod.HYBRID_OR:
                negative = 1
                log_prob_true += max(prior.log_prob_true, rule.log_prob_true)
            else:
                # GENTLE_OR: the negative branch is a noisy-or as well.
                negative = 1
                log_prob_true += min(prior.log_prob_false, rule.log_prob_false)

        if method is FactorMergeMethod.NOISY_OR:
            return log1mexp(log_prob_false)
        if method is FactorMergeMethod.GEOMETRIC_MEAN:
            return log_prob_true
        true_branch = positive * -math.expm1(log_prob_false)
        if method is FactorMergeMethod.HYBRID_OR:
            false_branch = negative * math.exp(log_prob_true)
        else:
            false_branch = negative * -math.expm1(log_prob_true)
        return safe_log((true_branch + false_branch) / (positive + negative))

    def explain(self, assignment: Assignment) -> GroundedRule:
        """The matching grounding that scores the consequent's value highest."""
        best_rule = self.rules[0]
        best_score = -math.inf
        for rule in self.rules:
            if rule.matches(assignment):
                score = rule.log_prob_true if assignment[self.consequent] else rule.log_prob_false
                if score > best_score:
                    best_score = score
                    best_rule = rule
        return best_rule

    def explanation(self, assignment: Assignment) -> str:
        """Names of every grounding whose antecedents hold, one per line."""
        return "\n".join(r.name for r in self.rules if r.matches(assignment))


class TableFactor:
    def __init__(
        self,
        rules: Iterable[GroundedRule],
        merge_method: FactorMergeMethod = FactorMergeMethod.GEOMETRIC_MEAN,
        default_prior: float = 0.3,
    ) -> None:
        self._table = _RuleTable(rules, merge_method, default_prior)
        self.name = self._table.name
        self._cache: dict[int, float] = {}
        self._lock = threading.Lock()

    @property
    def consequent(self) -> int:
        return self._table.consequent

    @property
    def antecedents(self) -> tuple[int, ...]:
        return self._table.antecedents

    @property
    def rules(self) -> list[GroundedRule]:
        return list(self._table.rules)

    def log_prob(self, assignment: Assignment) -> float:
        key = self._table.key(assignment)
        log_prob_true = self._cache.get(key)
        if log_prob_true is None:
            log_prob_true = self._table.compute_entry(assignment)
            with self._lock:
                log_prob_true = self._cache.setdefault(key, log_prob_true)
        if assignment[self._table.consequent]:
            return log_prob_true
        return log1mexp(log_prob_true)

    def explain(self, assignment: Assignment) -> GroundedRule:
        return self._table.explain(assignment)

    def explanation(self, assignment: Assignment) -> str:
        return self._table.explanation(assignment)

    def components(self) -> frozenset[int]:
        return self._table.components

    def __repr__(self) -> str:
        return f"TableFactor(consequent={self.consequent}, antecedents={len(self.antecedents)})"


class EagerTableFactor:
    def __init__(
        self,
        rules: Iterable[GroundedRule],
        merge_method: FactorMergeMethod = FactorMergeMethod.GEOMETRIC_MEAN,
        default_prior: float = 0.3,
    ) -> None:
        table = _RuleTable(rules, merge_method, default_prior)
        n = len(table.antecedents)
        if n >= EAGER_TABLE_CEILING:
            raise ValueError(
                f"Eager table over {n} antecedents exceeds the ceiling "
                f"of {EAGER_TABLE_CEILING - 1}"
            )
        self._table = table
        self.name = table.name

        size = 1 << n
        entries = np.fromiter(
            (table.compute_entry(self._expand(bits)) for bits in range(size)),
            dtype=np.float64,
            count=size,
        )
        with np.errstate(divide="ignore"):
            complements = np.log(-np.expm1(entries))
        self._log_prob_true: list[float] = entries.tolist()
        self._log_prob_false: list[float] = complements.tolist()

    def _expand(self, bits: int) -> dict[int, bool]:
        antecedents = self._table.antecedents
        n = len(antecedents)
        return {a: bool((bits >> (n - 1 - i)) & 1) for i, a in enumerate(antecedents)}

    @property
    def consequent(self) -> int:
        return self._table.consequent

    @property
    def antecedents(self) -> tuple[int, ...]:
        return self._table.antecedents

    @property
    def rules(self) -> list[GroundedRule]:
        return list(self._table.rules)

    def log_prob(self, assignment: Assignment) -> float:
        key = self._table.key(assignment)
        if assignment[self._table.consequent]:
            return self._log_prob_true[key]
        return self._log_prob_false[key]

    def explain(self, assignment: Assignment) -> GroundedRule:
        return self._table.explain(assignment)

    def explanation(self, assignment: Assignment) -> str:
        return self._table.explanation(assignment)

    def components(self) -> frozenset[int]:
        return self._table.components

    def __repr__(self) -> str:
        return (
            f"EagerTableFactor(consequent={self.consequent}, "
            f"antecedents={len(self.antecedents)})"
        )
