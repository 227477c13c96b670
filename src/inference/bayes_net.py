# src/inference/bayes_net.py — v1
"""Compiled graphical model over ground literals, with Gibbs-sampling inference.

The model is read-only once built. Each sampling call runs one chain per
configured thread on a ThreadPoolExecutor; every chain owns its own
assignment, running score and counts, and chains only meet at a single
lock-guarded merge when they finish.

Scores are unnormalized: ``log_prob`` is the sum of factor contributions,
not a calibrated joint probability.
"""

from __future__ import annotations

import logging
import math
import random
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from kbpinfer.inference.factors import Factor
from kbpinfer.inference.logmath import log_add
from kbpinfer.mln.text import Literal

logger = logging.getLogger(__name__)

RESTART_ITERS = 100_000
CHECK_ITERS = 10_000
DRIFT_TOLERANCE = 0.1
# Restart probability for variables that never received a prior.
UNINFORMED_PRIOR = 0.2


@dataclass
class MapResult:
    """Best assignment found by MAP search and its log-score."""

    assignment: dict[Literal, bool] = field(default_factory=dict)
    log_score: float = -math.inf

    @property
    def true_literals(self) -> set[Literal]:
        return {lit for lit, value in self.assignment.items() if value}


class BayesNet:
    """Boolean variables, their fixed/prior state, and the factors over them."""

    def __init__(
        self,
        variables: Sequence[Literal],
        factors: Iterable[Factor],
        priors: Mapping[int, float] | None = None,
        fixed_values: Mapping[int, bool] | None = None,
        do_hillclimb: bool = False,
        threads: int = 1,
    ) -> None:
        """
        Args:
            variables: Ground literals in variable-id order (true polarity).
            factors: Factors over variable ids.
            priors: Log-probability of truth per variable, used for restarts.
            fixed_values: Evidence and auto-fixed values; never resampled.
            do_hillclimb: Run a deterministic pass at every MAP drift check.
            threads: Number of independent chains per sampling call.
        """
        if threads < 1:
            raise ValueError("threads must be >= 1")
        self.variables: tuple[Literal, ...] = tuple(variables)
        self.index: dict[Literal, int] = {lit: i for i, lit in enumerate(self.variables)}
        self.factors: tuple[Factor, ...] = tuple(factors)
        self.fixed_values: dict[int, bool] = dict(fixed_values or {})
        self.do_hillclimb = do_hillclimb
        self.threads = threads

        n = len(self.variables)
        priors = priors or {}
        self.prior_probs: list[float] = [
            math.exp(priors[i]) if i in priors else UNINFORMED_PRIOR for i in range(n)
        ]
        self.adjustable: tuple[int, ...] = tuple(
            i for i in range(n) if i not in self.fixed_values
        )

        self.factors_by_variable: list[list[Factor]] = [[] for _ in range(n)]
        for factor in self.factors:
            for var in factor.components():
                if not 0 <= var < n:
                    raise ValueError(f"Factor {factor!r} references unknown variable {var}")
                self.factors_by_variable[var].append(factor)

    def __len__(self) -> int:
        return len(self.factors)

    def __repr__(self) -> str:
        return (
            f"BayesNet(variables={len(self.variables)}, factors={len(self.factors)}, "
            f"fixed={len(self.fixed_values)}, adjustable={len(self.adjustable)})"
        )

    # --- Exact scoring ---

    def score(self, assignment: Sequence[bool]) -> float:
        """Sum of every factor's log-probability under a full assignment."""
        return sum(factor.log_prob(assignment) for factor in self.factors)

    def assignment_for(self, true_set: Iterable[Literal]) -> list[bool]:
        """Full assignment with the given literals true and all others false."""
        assignment = [False] * len(self.variables)
        for lit in true_set:
            idx = self.index.get(lit.as_true())
            if idx is not None:
                assignment[idx] = True
        return assignment

    def log_prob(self, true_set: Iterable[Literal]) -> float:
        """Unnormalized log-score of the world where exactly ``true_set`` holds."""
        return self.score(self.assignment_for(true_set))

    def explain(self, literal: Literal, true_set: Iterable[Literal]) -> list[str]:
        """Names of the groundings that fire for ``literal`` in the given world."""
        idx = self.index.get(literal.as_true())
        if idx is None:
            return []
        assignment = self.assignment_for(true_set)
        explanations = []
        for factor in self.factors_by_variable[idx]:
            if factor.consequent == idx:
                text = factor.explanation(assignment)
                if text:
                    explanations.extend(text.split("\n"))
        return explanations

    def _fixed_assignment(self) -> list[bool]:
        assignment = [False] * len(self.variables)
        for i, value in self.fixed_values.items():
            assignment[i] = value
        return assignment

    # --- Sampling ---

    def _run_chains(self, chain: Callable[[int], None], executor: Executor | None) -> None:
        if executor is None:
            with ThreadPoolExecutor(
                max_workers=self.threads, thread_name_prefix="gibbs"
            ) as pool:
                self._run_chains(chain, pool)
            return
        futures = [executor.submit(chain, seed) for seed in range(self.threads)]
        for future in as_completed(futures):
            future.result()

    def gibbs_map(self, num_iters: int, executor: Executor | None = None) -> MapResult:
        """Best assignment found over ``threads`` chains of ``num_iters`` steps each."""
        if not self.adjustable:
            logger.warning("All %d variables are fixed; skipping MAP search", len(self.variables))
            assignment = self._fixed_assignment()
            return MapResult(
                {lit: assignment[i] for i, lit in enumerate(self.variables)},
                self.score(assignment),
            )

        lock = threading.Lock()
        best: dict[str, object] = {"score": -math.inf, "seed": None, "assignment": None}

        def chain(seed: int) -> None:
            sampler = GibbsSampler(self, seed, do_map=True)
            sampler.run(num_iters)
            with lock:
                better = sampler.best_log_score > best["score"]
                tie = sampler.best_log_score == best["score"] and (
                    best["seed"] is None or seed < best["seed"]
                )
                if better or tie:
                    best["score"] = sampler.best_log_score
                    best["seed"] = seed
                    best["assignment"] = sampler.best_assignment

        logger.debug(
            "MAP search: %d chains x %d steps over %d adjustable variables",
            self.threads, num_iters, len(self.adjustable),
        )
        self._run_chains(chain, executor)

        assignment: list[bool] = best["assignment"]  # type: ignore[assignment]
        return MapResult(
            {lit: assignment[i] for i, lit in enumerate(self.variables)},
            best["score"],  # type: ignore[arg-type]
        )

    def gibbs_marginals(
        self, num_iters: int, executor: Executor | None = None
    ) -> dict[Literal, float]:
        """Estimated P(literal is true) for every variable, averaged over chains."""
        if not self.adjustable:
            logger.warning(
                "All %d variables are fixed; returning evidence as marginals",
                len(self.variables),
            )
            return {
                lit: 1.0 if self.fixed_values[i] else 0.0
                for i, lit in enumerate(self.variables)
            }

        lock = threading.Lock()
        per_chain: dict[int, list[float]] = {}

        def chain(seed: int) -> None:
            sampler = GibbsSampler(self, seed, do_map=False)
            sampler.run(num_iters)
            with lock:
                per_chain[seed] = sampler.marginals()

        logger.debug(
            "Marginal estimation: %d chains x %d steps over %d adjustable variables",
            self.threads, num_iters, len(self.adjustable),
        )
        self._run_chains(chain, executor)

        totals = [0.0] * len(self.variables)
        for seed in sorted(per_chain):
            for i, value in enumerate(per_chain[seed]):
                totals[i] += value
        return {
            lit: min(1.0, max(0.0, totals[i] / len(per_chain)))
            for i, lit in enumerate(self.variables)
        }

    def gibbs_mle(self, num_iters: int, executor: Executor | None = None) -> set[Literal]:
        """Literals whose estimated marginal exceeds one half."""
        marginals = self.gibbs_marginals(num_iters, executor)
        return {lit for lit, p in marginals.items() if p > 0.5}


class GibbsSampler:
    """Private state of one chain. Not shared between threads."""

    def __init__(self, net: BayesNet, seed: int, do_map: bool) -> None:
        self.net = net
        self.rng = random.Random(seed)
        self.do_map = do_map
        n = len(net.variables)

        self.assignment: list[bool] = net._fixed_assignment()
        self.num_iters = 0
        self.counts = [0.0] * n
        self.last_update = [0] * n
        self.log_score = -math.inf
        self.best_log_score = -math.inf
        self.best_assignment: list[bool] = list(self.assignment)

        self.random_restart()

    def run(self, num_iters: int) -> None:
        adjustable = self.net.adjustable
        for _ in range(num_iters):
            if self.num_iters > 0 and self.num_iters % RESTART_ITERS == 0:
                self.random_restart()
            if self.do_map and self.num_iters > 0 and self.num_iters % CHECK_ITERS == 0:
                self.check_drift()
            self.num_iters += 1
            self.step(adjustable[self.rng.randrange(len(adjustable))])
        if not self.do_map:
            self.update_counts(self.num_iters)

    def random_restart(self) -> None:
        """Redraw every adjustable variable from its prior."""
        if not self.do_map:
            self.update_counts(self.num_iters)
        for i in self.net.adjustable:
            self.assignment[i] = self.rng.random() < self.net.prior_probs[i]
        self.log_score = self.net.score(self.assignment)
        self._track_best()

    def check_drift(self) -> None:
        """Optionally hill-climb, then resynchronize the running score."""
        if self.net.do_hillclimb:
            for var in self.net.adjustable:
                self.step(var, hill_climb=True)
        recomputed = self.net.score(self.assignment)
        if not math.isinf(recomputed) and not math.isinf(self.log_score):
            assert abs(recomputed - self.log_score) < DRIFT_TOLERANCE, (
                f"log-score drifted: incremental {self.log_score} vs exact {recomputed}"
            )
        self.log_score = recomputed

    def conditional(self, var: int) -> tuple[float, float]:
        """(score if var is true, score if var is false), touching only var's factors."""
        assignment = self.assignment
        factors = self.net.factors_by_variable[var]
        current = assignment[var]

        assignment[var] = True
        contrib_true = sum(f.log_prob(assignment) for f in factors)
        assignment[var] = False
        contrib_false = sum(f.log_prob(assignment) for f in factors)
        assignment[var] = current

        if math.isinf(self.log_score) or math.isinf(contrib_true if current else contrib_false):
            assignment[var] = True
            score_true = self.net.score(assignment)
            assignment[var] = False
            score_false = self.net.score(assignment)
            assignment[var] = current
            return score_true, score_false

        rest = self.log_score - (contrib_true if current else contrib_false)
        return rest + contrib_true, rest + contrib_false

    def step(self, var: int, hill_climb: bool = False) -> None:
        score_true, score_false = self.conditional(var)
        if score_true == -math.inf and score_false == -math.inf:
            prob_true = 0.5
        else:
            prob_true = math.exp(score_true - log_add(score_true, score_false))
        prob_true = min(1.0, max(0.0, prob_true))

        current = self.assignment[var]
        if hill_climb:
            value = current if prob_true == 0.5 else prob_true > 0.5
        else:
            value = self.rng.random() < prob_true

        if value != current and not self.do_map:
            self._flush_count(var, self.num_iters - 1)
        self.assignment[var] = value
        self.log_score = score_true if value else score_false
        self._track_best()

    def _track_best(self) -> None:
        if self.do_map and self.log_score > self.best_log_score:
            self.best_log_score = self.log_score
            self.best_assignment = list(self.assignment)

    # --- Marginal bookkeeping ---

    def _flush_count(self, var: int, upto: int) -> None:
        """Fold the samples (last_update, upto] of var into its running mean."""
        elapsed = upto - self.last_update[var]
        if upto <= 0 or elapsed <= 0:
            return
        value = 1.0 if self.assignment[var] else 0.0
        self.counts[var] += (value - self.counts[var]) * elapsed / upto
        self.last_update[var] = upto

    def update_counts(self, upto: int) -> None:
        for var in range(len(self.assignment)):
            self._flush_count(var, upto)

    def marginals(self) -> list[float]:
        if self.num_iters == 0:
            return [1.0 if v else 0.0 for v in self.assignment]
        return list(self.counts)
