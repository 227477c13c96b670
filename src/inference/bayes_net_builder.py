# src/inference/bayes_net_builder.py — v1
"""Grounds a rule program against typed domains and evidence into a BayesNet.

Build order:

1. Ground unit clauses (priors and ground facts) are registered directly.
2. Every rule with two or more literals is grounded by recursive
   unification over its literals. Closed-world literals bind only to the
   recorded evidence; open-world literals bind to the declared domain of
   each argument type, optionally narrowed by a valid-pairings table.
3. Unit clauses with variables are applied to every variable grounded so
   far that carries the same predicate.
4. Per consequent, the groundings are merged into table factors. A
   consequent whose groundings are all unlikely (all likely) is fixed
   false (true) instead.

Bindings are plain dicts that are copied, never mutated, on extension,
so backtracking needs no undo step.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Collection, Iterable, Iterator, Mapping
from typing import Any

from kbpinfer.inference.bayes_net import BayesNet
from kbpinfer.inference.factors import (
    EAGER_TABLE_CEILING,
    EagerTableFactor,
    Factor,
    FactorMergeMethod,
    GroundedRule,
    clean_priors,
)
from kbpinfer.inference.logmath import clip_log_prob, log_sigmoid
from kbpinfer.mln.text import (
    Literal,
    MLNText,
    Predicate,
    Rule,
    UnknownPredicateError,
    is_constant,
)

logger = logging.getLogger(__name__)

MAX_BATCH_ANTECEDENTS = 12
BATCH_SHUFFLE_SEED = 42
FIX_FALSE_BELOW = math.log(0.3)
FIX_TRUE_ABOVE = math.log(0.9)

Binding = Mapping[str, str]


def _unify(binding: Binding, term: str, value: str) -> Binding | None:
    """Extend binding so that term denotes value, or None if impossible.

    A variable may not take a constant already held by another variable.
    """
    if is_constant(term):
        return binding if term == value else None
    bound = binding.get(term)
    if bound is not None:
        return binding if bound == value else None
    if value in binding.values():
        return None
    return {**binding, term: value}


class _GroundingState:
    """Everything one build() call accumulates."""

    def __init__(self) -> None:
        self.variables: list[Literal] = []
        self.index: dict[Literal, int] = {}
        self.groundings: dict[int, list[GroundedRule]] = {}
        self.fixed: dict[int, bool] = {}
        self.priors: dict[int, float] = {}
        self.warned_domains: set[str] = set()

    def variable(self, literal: Literal) -> int:
        literal = literal.as_true()
        idx = self.index.get(literal)
        if idx is None:
            idx = len(self.variables)
            self.index[literal] = idx
            self.variables.append(literal)
        return idx


class BayesNetBuilder:
    """Accumulates predicates, domains, evidence and rules; ``build`` grounds them."""

    def __init__(
        self,
        merge_method: FactorMergeMethod | str = FactorMergeMethod.GEOMETRIC_MEAN,
        default_prior: float = 0.3,
        do_hillclimb: bool = False,
        threads: int = 1,
    ) -> None:
        if not 0.0 < default_prior < 1.0:
            raise ValueError(f"default_prior must be in (0, 1), got {default_prior}")
        self.merge_method = FactorMergeMethod(merge_method)
        self.default_prior = default_prior
        self.do_hillclimb = do_hillclimb
        self.threads = threads

        self._predicates: dict[str, Predicate] = {}
        self._domains: dict[str, set[str]] = {}
        self._closed_world_evidence: dict[str, list[Literal]] = {}
        self._evidence: list[Literal] = []
        self._prior_rules: list[Rule] = []
        self._rules: list[Rule] = []
        self._valid_pairings: Mapping[str, Collection[str]] | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> BayesNetBuilder:
        return cls(
            merge_method=settings.inference_merge_method,
            default_prior=settings.inference_prior,
            do_hillclimb=settings.inference_do_hillclimb,
            threads=settings.inference_gibbs_threads,
        )

    # --- Domains ---

    def register_domain(self, name: str, values: Iterable[str] | None = None) -> BayesNetBuilder:
        domain = self._domains.setdefault(name, set())
        if values is not None:
            domain.update(values)
        return self

    def register_constant(self, type_name: str, value: str) -> BayesNetBuilder:
        self._domains.setdefault(type_name, set()).add(value)
        return self

    def add_constants(self, constants: Mapping[str, str]) -> BayesNetBuilder:
        """Register each constant (key) under its type name (value)."""
        for value, type_name in constants.items():
            self.register_constant(type_name, value)
        return self

    @property
    def domains(self) -> dict[str, frozenset[str]]:
        return {name: frozenset(values) for name, values in self._domains.items()}

    # --- Predicates and evidence ---

    def register_predicate(self, predicate: Predicate) -> BayesNetBuilder:
        existing = self._predicates.get(predicate.name)
        if existing is not None:
            if existing != predicate:
                raise ValueError(f"Conflicting declarations: {existing} vs {predicate}")
            return self
        self._predicates[predicate.name] = predicate
        self.register_domain(predicate.type1)
        self.register_domain(predicate.type2)
        if predicate.closed:
            self._closed_world_evidence[predicate.name] = []
        return self

    def add_predicates(self, predicates: Iterable[Predicate]) -> BayesNetBuilder:
        for predicate in sorted(predicates, key=str):
            self.register_predicate(predicate)
        return self

    def _predicate(self, name: str) -> Predicate:
        pred = self._predicates.get(name)
        if pred is None:
            raise UnknownPredicateError(name)
        return pred

    def register_evidence(self, literal: Literal) -> BayesNetBuilder:
        """Record a ground literal of a closed-world predicate as fixed."""
        pred = self._predicate(literal.name)
        if not pred.closed:
            raise ValueError(f"Evidence requires a closed-world predicate: {pred}")
        if not (is_constant(literal.arg1) and is_constant(literal.arg2)):
            raise ValueError(f"Evidence must be ground: {literal}")
        self.register_constant(pred.type1, literal.arg1)
        self.register_constant(pred.type2, literal.arg2)
        if literal.truth:
            self._closed_world_evidence[pred.name].append(literal)
        self._evidence.append(literal)
        return self

    def add_evidence(self, literals: Iterable[Literal]) -> BayesNetBuilder:
        for literal in literals:
            self.register_evidence(literal)
        return self

    def set_valid_pairings(
        self, valid_pairings: Mapping[str, Collection[str]] | None
    ) -> BayesNetBuilder:
        self._valid_pairings = valid_pairings
        return self

    def param_do_hillclimb(self, do_hillclimb: bool) -> BayesNetBuilder:
        self.do_hillclimb = do_hillclimb
        return self

    # --- Rules ---

    def _register_rule_constants(self, rule: Rule) -> None:
        for literal in rule.literals:
            if literal.is_equality:
                continue
            pred = self._predicate(literal.name)
            if is_constant(literal.arg1):
                self.register_constant(pred.type1, literal.arg1)
            if is_constant(literal.arg2):
                self.register_constant(pred.type2, literal.arg2)

    def add_prior(self, rule: Rule) -> BayesNetBuilder:
        if len(rule.literals) != 1:
            raise ValueError(f"A prior must have exactly one literal: {rule}")
        self._register_rule_constants(rule)
        self._prior_rules.append(rule)
        return self

    def add_priors(self, rules: Iterable[Rule]) -> BayesNetBuilder:
        for rule in rules:
            self.add_prior(rule)
        return self

    def add_rule(self, rule: Rule) -> BayesNetBuilder:
        self._register_rule_constants(rule)
        self._rules.append(rule)
        return self

    def add_rules(self, rules: Iterable[Rule]) -> BayesNetBuilder:
        for rule in rules:
            self.add_rule(rule)
        return self

    def add_mln(self, program: MLNText) -> BayesNetBuilder:
        """Add a parsed program.

        Hard ground unit clauses over closed-world predicates become
        evidence; all other clauses are added as rules.
        """
        self.add_predicates(program.predicates)
        for rule in program.rules:
            if len(rule.literals) == 1 and rule.is_hard:
                literal = rule.literals[0]
                pred = self._predicate(literal.name)
                if pred.closed and is_constant(literal.arg1) and is_constant(literal.arg2):
                    self.register_evidence(literal)
                    continue
            self.add_rule(rule)
        return self

    # --- Build ---

    def build(self) -> BayesNet:
        """Ground everything registered so far into a new BayesNet.

        Raises:
            ValueError: If one grounding alone reaches EAGER_TABLE_CEILING
                antecedents, so its table cannot be precomputed.
        """
        state = _GroundingState()
        for literal in self._evidence:
            state.fixed[state.variable(literal)] = literal.truth

        unit_rules = self._prior_rules + [r for r in self._rules if len(r.literals) == 1]
        deferred: list[tuple[Literal, float]] = []
        for rule in unit_rules:
            literal, weight = self._as_positive_unit(rule)
            if is_constant(literal.arg1) and is_constant(literal.arg2):
                self._register_rule_instance(
                    state, log_sigmoid(weight), log_sigmoid(-weight), [literal]
                )
            else:
                deferred.append((literal, weight))

        grounded = 0
        for rule in self._rules:
            if len(rule.literals) > 1:
                grounded += self._ground_template(state, rule)

        for template, weight in deferred:
            for variable in list(state.variables):
                if variable.name != template.name:
                    continue
                binding = _unify({}, template.arg1, variable.arg1)
                if binding is None or _unify(binding, template.arg2, variable.arg2) is None:
                    continue
                self._register_rule_instance(
                    state, log_sigmoid(weight), log_sigmoid(-weight), [variable]
                )

        factors: list[Factor] = []
        for var, groundings in state.groundings.items():
            if var not in state.fixed:
                if all(g.log_prob_true < FIX_FALSE_BELOW for g in groundings):
                    state.fixed[var] = False
                    continue
                if all(g.log_prob_true > FIX_TRUE_ABOVE for g in groundings):
                    state.fixed[var] = True
                    continue
            factors.extend(self._make_factors(state, groundings))

        logger.info(
            "Grounded %d rule instances into %d variables (%d fixed) and %d factors",
            grounded, len(state.variables), len(state.fixed), len(factors),
        )
        return BayesNet(
            variables=state.variables,
            factors=factors,
            priors=state.priors,
            fixed_values=state.fixed,
            do_hillclimb=self.do_hillclimb,
            threads=self.threads,
        )

    @staticmethod
    def _as_positive_unit(rule: Rule) -> tuple[Literal, float]:
        """A negated unit clause of weight w is the positive one of weight -w."""
        literal = rule.literals[0]
        if literal.truth:
            return literal, rule.weight
        return literal.as_true(), -rule.weight

    def _register_rule_instance(
        self,
        state: _GroundingState,
        log_prob_true: float,
        log_prob_false: float,
        literals: list[Literal],
    ) -> None:
        name = str(Rule(log_prob_true - log_prob_false, tuple(literals)))
        log_prob_true = clip_log_prob(log_prob_true)
        log_prob_false = clip_log_prob(log_prob_false)

        consequent = -1
        antecedents: list[int] = []
        for literal in literals:
            idx = state.variable(literal)
            if literal.truth:
                consequent = idx
            else:
                antecedents.append(idx)
        state.groundings.setdefault(consequent, []).append(
            GroundedRule(name, log_prob_true, log_prob_false, consequent, tuple(antecedents))
        )

    def _ground_template(self, state: _GroundingState, rule: Rule) -> int:
        heads = [lit for lit in rule.literals if lit.truth and not lit.is_equality]
        if len(heads) != 1:
            logger.warning(
                "Skipping rule with %d positive literals (need exactly 1): %s",
                len(heads), rule,
            )
            return 0
        # Equality literals need both sides bound, so they are checked last.
        order = sorted(range(len(rule.literals)), key=lambda i: rule.literals[i].is_equality)
        return self._ground(
            state, rule, order, 0, {}, (None,) * len(rule.literals),
            log_sigmoid(rule.weight), log_sigmoid(-rule.weight),
        )

    def _ground(
        self,
        state: _GroundingState,
        rule: Rule,
        order: list[int],
        depth: int,
        binding: Binding,
        grounded: tuple[Literal | None, ...],
        log_prob_true: float,
        log_prob_false: float,
    ) -> int:
        if depth == len(order):
            self._register_rule_instance(
                state, log_prob_true, log_prob_false,
                [lit for lit in grounded if lit is not None],
            )
            return 1

        pos = order[depth]
        literal = rule.literals[pos]

        if literal.is_equality:
            arg1 = literal.arg1 if is_constant(literal.arg1) else binding.get(literal.arg1)
            arg2 = literal.arg2 if is_constant(literal.arg2) else binding.get(literal.arg2)
            if arg1 is None or arg2 is None:
                logger.warning("Equality over an unbound variable in %s", rule)
                return 0
            if (arg1 == arg2) == literal.truth:
                # The clause is satisfied outright; nothing to ground.
                return 0
            return self._ground(
                state, rule, order, depth + 1, binding, grounded,
                log_prob_true, log_prob_false,
            )

        count = 0
        for arg1, arg2, extended in self._candidates(state, literal, binding):
            count += self._ground(
                state, rule, order, depth + 1, extended,
                grounded[:pos] + (literal.with_args(arg1, arg2),) + grounded[pos + 1:],
                log_prob_true, log_prob_false,
            )
        return count

    def _candidates(
        self, state: _GroundingState, literal: Literal, binding: Binding
    ) -> Iterator[tuple[str, str, Binding]]:
        pred = self._predicate(literal.name)

        if pred.closed:
            for evidence in self._closed_world_evidence[pred.name]:
                first = _unify(binding, literal.arg1, evidence.arg1)
                if first is None:
                    continue
                second = _unify(first, literal.arg2, evidence.arg2)
                if second is not None:
                    yield evidence.arg1, evidence.arg2, second
            return

        for value1 in self._slot_values(state, pred.type1, literal.arg1, binding):
            first = _unify(binding, literal.arg1, value1)
            if first is None:
                continue
            for value2 in self._slot_values(state, pred.type2, literal.arg2, first):
                if self._valid_pairings is not None:
                    allowed = self._valid_pairings.get(value1)
                    if allowed is not None and value2 not in allowed:
                        continue
                second = _unify(first, literal.arg2, value2)
                if second is not None:
                    yield value1, value2, second

    def _slot_values(
        self, state: _GroundingState, type_name: str, term: str, binding: Binding
    ) -> list[str]:
        if is_constant(term):
            return [term]
        bound = binding.get(term)
        if bound is not None:
            return [bound]
        domain = self._domains.get(type_name)
        if not domain:
            if type_name not in state.warned_domains:
                state.warned_domains.add(type_name)
                logger.warning("No constants registered for type %s; grounding skipped", type_name)
            return []
        return sorted(domain)

    # --- Factor construction ---

    def _make_factors(
        self, state: _GroundingState, groundings: list[GroundedRule]
    ) -> list[Factor]:
        unique = list(dict.fromkeys(groundings))
        cleaned = clean_priors(unique, self.default_prior)
        prior, rules = cleaned[0], cleaned[1:]
        state.priors[prior.consequent] = prior.log_prob_true
        if not rules:
            return [self._table_factor(state, [prior])]

        random.Random(BATCH_SHUFFLE_SEED).shuffle(rules)
        batches: list[list[GroundedRule]] = []
        buffer: list[GroundedRule] = []
        antecedents: set[int] = set()
        for rule in rules:
            candidate = antecedents | set(rule.antecedents)
            if buffer and len(candidate) > MAX_BATCH_ANTECEDENTS:
                batches.append(buffer)
                buffer = [rule]
                antecedents = set(rule.antecedents)
            else:
                buffer.append(rule)
                antecedents = candidate
        if buffer:
            batches.append(buffer)
        return [self._table_factor(state, [prior] + batch) for batch in batches]

    def _table_factor(self, state: _GroundingState, rules: list[GroundedRule]) -> Factor:
        antecedents = {a for rule in rules for a in rule.antecedents}
        if len(antecedents) >= EAGER_TABLE_CEILING:
            raise ValueError(
                f"Grounding of {state.variables[rules[0].consequent]} has "
                f"{len(antecedents)} antecedents; tables are limited to "
                f"{EAGER_TABLE_CEILING - 1}"
            )
        return EagerTableFactor(rules, self.merge_method, self.default_prior)
