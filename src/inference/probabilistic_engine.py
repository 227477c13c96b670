# src/inference/probabilistic_engine.py — v1
"""Probabilistic inference over the fact graph with a grounded Bayes net.

Per pivot entity:

1. ``get_rules`` narrows the candidate rules to those that can bear on
   KBP relations of the pivot, expanding backwards from the pivot's KBP
   predicates through rule antecedents. Predicates that only occur as
   antecedents become closed-world; the rest are open-world.
2. ``graph_to_mln`` turns graph edges into priors: closed-world edges are
   hard facts, open-world edges get a logit prior from their score.
3. ``apply`` grounds the reduced program, samples it, and writes facts
   about the pivot that clear the acceptance threshold back to the graph.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from kbpinfer.core.models import Entity, RelationFact
from kbpinfer.core.relations import RelationType
from kbpinfer.graph.entity_graph import EntityGraph
from kbpinfer.inference.acyclic import make_acyclic
from kbpinfer.inference.base_engine import (
    GraphInferenceEngine,
    clean_entity,
    clean_relation,
    untyped_relation,
)
from kbpinfer.inference.bayes_net_builder import BayesNetBuilder
from kbpinfer.inference.factors import FactorMergeMethod
from kbpinfer.inference.logmath import logit
from kbpinfer.logging.context import set_engine_context
from kbpinfer.mln.reader import read_mln_files
from kbpinfer.mln.text import Literal, MLNText, Predicate, Rule

logger = logging.getLogger(__name__)

MAX_RULE_DEPTH = 10


class RulesMode(str, Enum):
    """How far ``get_rules`` may reach beyond the pivot's KBP predicates."""

    KBP_ONLY = "kbp_only"
    REVERB_STRICT = "reverb_strict"
    REVERB = "reverb"


@dataclass(frozen=True)
class InferenceHacks:
    """Score rescaling and rule admissibility toggles."""

    always_true: bool = False
    soft_priors: bool = False
    no_spouse: bool = False
    no_negative_translations: bool = False

    def __post_init__(self) -> None:
        if self.always_true and self.soft_priors:
            raise ValueError("always_true and soft_priors are mutually exclusive")


def _kbp_predicates() -> frozenset[Predicate]:
    predicates = set()
    for relation in RelationType:
        for slot_type in relation.valid_slot_types:
            predicates.add(Predicate(
                clean_relation(relation.canonical_name, relation.entity_type, slot_type),
                relation.entity_type.tag_name,
                slot_type.tag_name,
            ))
    return frozenset(predicates)


KBP_PREDICATES = _kbp_predicates()
_KBP_NAMES = frozenset(p.name for p in KBP_PREDICATES)


def _fact_predicate_name(fact: RelationFact) -> str:
    return clean_relation(fact.relation, fact.entity.type, fact.slot.type)


def _consequent_name(rule: Rule) -> str | None:
    for literal in rule.literals:
        if literal.truth and not literal.is_equality:
            return literal.name
    return None


class ProbabilisticEngine(GraphInferenceEngine):
    """Gibbs-sampled inference over the rules relevant to one pivot entity.

    The engine owns a worker pool for the sampling chains; close it with
    ``close()`` or use the engine as a context manager.
    """

    def __init__(
        self,
        rules: MLNText,
        *,
        cutoff: float = 0.0,
        max_depth: int = 3,
        rules_mode: RulesMode | str = RulesMode.REVERB_STRICT,
        do_map: bool = False,
        merge_method: FactorMergeMethod | str = FactorMergeMethod.GEOMETRIC_MEAN,
        gibbs_samples: int = 200_000,
        threads: int = 4,
        prior: float = 0.3,
        do_hillclimb: bool = False,
        acceptance_threshold: float = 0.5,
        acyclic: bool = False,
        acyclic_descending: bool = True,
        hacks: InferenceHacks | None = None,
    ) -> None:
        self.rules_mode = RulesMode(rules_mode)
        self.do_map = do_map
        self.merge_method = FactorMergeMethod(merge_method)
        self.gibbs_samples = gibbs_samples
        self.threads = threads
        self.prior = prior
        self.do_hillclimb = do_hillclimb
        self.acceptance_threshold = acceptance_threshold
        self.acyclic = acyclic
        self.acyclic_descending = acyclic_descending
        self.hacks = hacks or InferenceHacks()

        program = MLNText(KBP_PREDICATES).union(rules)
        kept = [
            rule for rule in program.rules
            if abs(rule.weight) >= cutoff
            and len(rule.literals) <= max_depth + 1
            and not self._excluded_by_hacks(rule)
        ]
        self.candidate_rules = program.with_rules(kept)
        self._useful_relations = {untyped_relation(p.name) for p in program.predicates}
        logger.info(
            "Loaded %d candidate rules (%d dropped by cutoff, depth or toggles)",
            len(kept), len(program.rules) - len(kept),
        )
        self._executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="gibbs")

    @classmethod
    def from_files(cls, paths: Iterable[str | Path], **kwargs: Any) -> ProbabilisticEngine:
        return cls(read_mln_files(paths), **kwargs)

    @classmethod
    def from_settings(cls, settings: Any) -> ProbabilisticEngine:
        return cls.from_files(
            settings.inference_rules_files_list,
            cutoff=settings.inference_rules_cutoff,
            max_depth=settings.inference_depth,
            rules_mode=settings.inference_rules_mode,
            do_map=settings.inference_do_map,
            merge_method=settings.inference_merge_method,
            gibbs_samples=settings.inference_gibbs_samples,
            threads=settings.inference_gibbs_threads,
            prior=settings.inference_prior,
            do_hillclimb=settings.inference_do_hillclimb,
            acceptance_threshold=settings.inference_acceptance_threshold,
            acyclic=settings.inference_acyclic,
            acyclic_descending=settings.inference_acyclic_order == "descending",
            hacks=InferenceHacks(
                always_true=settings.inference_hacks_always_true,
                soft_priors=settings.inference_hacks_soft_priors,
                no_spouse=settings.inference_hacks_no_spouse,
                no_negative_translations=settings.inference_hacks_no_negative_translations,
            ),
        )

    # --- Lifecycle ---

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> ProbabilisticEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- Rule selection ---

    def _excluded_by_hacks(self, rule: Rule) -> bool:
        if self.hacks.no_spouse and rule.antecedents():
            consequent = _consequent_name(rule)
            if consequent is not None and (
                untyped_relation(consequent) == RelationType.PER_SPOUSE.canonical_name
            ):
                logger.debug("Skipping rule %s: spouse rules disabled", rule)
                return True
        if self.hacks.no_negative_translations and len(rule.literals) == 2 and rule.weight < 0:
            logger.debug("Skipping rule %s: negative translations disabled", rule)
            return True
        return False

    def is_useful_relation(self, relation: str) -> bool:
        return relation in self._useful_relations

    def get_query_terms(self, rules: MLNText, pivot: Entity) -> list[Literal]:
        """Open literals asking for every KBP relation the pivot could head."""
        declared = {p.name for p in rules.predicates}
        return [
            Literal(pred.name, clean_entity(pivot), pred.type2.lower() + "1")
            for pred in sorted(KBP_PREDICATES, key=str)
            if pred.type1 == pivot.type.tag_name and pred.name in declared
        ]

    def get_rules(self, graph: EntityGraph, pivot: Entity) -> MLNText:
        """The subset of candidate rules that can influence the pivot's relations."""
        set_engine_context("probabilistic", "rules")
        by_name = {p.name: p for p in sorted(self.candidate_rules.predicates, key=str)}
        edge_predicates = {_fact_predicate_name(fact) for fact in graph.edges()}

        valid_antecedents = set(edge_predicates)
        if self.rules_mode == RulesMode.KBP_ONLY:
            valid_antecedents &= _KBP_NAMES
        valid_consequents = {
            p.name for p in KBP_PREDICATES if p.type1 == pivot.type.tag_name
        }

        def admissible(rule: Rule) -> bool:
            return all(
                lit.is_equality
                or lit.name in by_name and (
                    lit.name in valid_consequents if lit.truth
                    else lit.name in valid_antecedents
                )
                for lit in rule.literals
            )

        remaining = list(self.candidate_rules.rules)
        selected: list[Rule] = []
        for depth in range(MAX_RULE_DEPTH):
            logger.debug(
                "(%d) %d rules (%d remain), |consequents| = %d, |antecedents| = %d",
                depth, len(selected), len(remaining),
                len(valid_consequents), len(valid_antecedents),
            )
            before = len(selected)
            still_remaining = []
            for rule in remaining:
                (selected if admissible(rule) else still_remaining).append(rule)
            remaining = still_remaining
            if self.rules_mode != RulesMode.REVERB or len(selected) == before:
                break
            valid_antecedents |= valid_consequents
            for rule in selected:
                valid_consequents.update(lit.name for lit in rule.literals if not lit.truth)

        consequents = {
            lit.name for rule in selected for lit in rule.literals
            if lit.truth and not lit.is_equality
        }
        antecedents = {
            lit.name for rule in selected for lit in rule.literals
            if not lit.truth and not lit.is_equality
        }
        antecedents |= edge_predicates
        consequents |= {
            _fact_predicate_name(fact) for fact in graph.outgoing_edges(pivot)
            if RelationType.from_string(fact.relation) is not None
        }

        predicates = {by_name[n].as_open() for n in consequents if n in by_name}
        predicates |= {
            by_name[n].as_closed() for n in antecedents - consequents if n in by_name
        }
        logger.info(
            "Selected %d rules with %d open and %d closed predicates for %s",
            len(selected), len(consequents), len(antecedents - consequents), pivot,
        )
        return MLNText(frozenset(predicates), tuple(selected))

    # --- Evidence ---

    def _rescale(self, score: float) -> float:
        if self.hacks.always_true:
            return 1.0
        if self.hacks.soft_priors:
            return 0.5 + 0.4 * score
        return (1.0 + score) / 2.0

    def graph_to_mln(
        self, graph: EntityGraph, rules: MLNText
    ) -> tuple[MLNText, dict[str, Entity]]:
        """Priors for every graph edge over a declared predicate.

        Returns:
            The prior program and the map from rule-file constants back to entities.
        """
        entities: dict[str, Entity] = {}
        predicates: set[Predicate] = set()
        priors: list[Rule] = []
        for fact in graph.edges():
            arg1 = clean_entity(fact.entity)
            arg2 = clean_entity(fact.slot)
            entities[arg1] = fact.entity
            entities[arg2] = fact.slot
            pred = rules.get_predicate_by_name(_fact_predicate_name(fact))
            if pred is None:
                continue
            predicates.add(pred)
            literal = Literal(pred.name, arg1, arg2)
            if pred.closed or fact.score is None:
                priors.append(Rule(float("inf"), (literal,)))
            else:
                priors.append(Rule(logit(self._rescale(fact.score)), (literal,)))
        return MLNText(frozenset(predicates), tuple(priors)), entities

    @staticmethod
    def _translate_pairings(
        valid_pairings: Mapping[str, Collection[str]], entities: Mapping[str, Entity]
    ) -> dict[str, set[str]]:
        constants_by_name: dict[str, list[str]] = {}
        for constant, entity in entities.items():
            constants_by_name.setdefault(entity.name, []).append(constant)
        translated: dict[str, set[str]] = {}
        for name, partners in valid_pairings.items():
            allowed = {c for partner in partners for c in constants_by_name.get(partner, ())}
            for constant in constants_by_name.get(name, ()):
                translated.setdefault(constant, set()).update(allowed)
        return translated

    # --- Inference ---

    def apply(
        self,
        graph: EntityGraph,
        entity: Entity,
        valid_pairings: Mapping[str, Collection[str]] | None = None,
    ) -> EntityGraph:
        """Add inferred facts about ``entity`` to ``graph``.

        Args:
            valid_pairings: Optional map from an entity name to the entity
                names it may share a grounded rule with.
        """
        rules = self.get_rules(graph, entity)
        if not rules.rules:
            logger.info("No applicable rules for %s", entity)
            return graph
        if self.acyclic:
            rules = make_acyclic(rules, descending=self.acyclic_descending)

        set_engine_context("probabilistic", "ground")
        priors, entities = self.graph_to_mln(graph, rules)
        pivot = clean_entity(entity)
        entities.setdefault(pivot, entity)

        builder = BayesNetBuilder(
            merge_method=self.merge_method,
            default_prior=self.prior,
            do_hillclimb=self.do_hillclimb,
            threads=self.threads,
        )
        builder.add_predicates(rules.predicates)
        builder.add_constants({name: e.type.tag_name for name, e in entities.items()})
        for prior in priors.rules:
            literal = prior.literals[0]
            if rules.predicate(literal.name).closed:
                builder.register_evidence(literal)
            else:
                builder.add_prior(prior)
        builder.add_rules(rules.rules)
        if valid_pairings is not None:
            builder.set_valid_pairings(self._translate_pairings(valid_pairings, entities))
        net = builder.build()

        set_engine_context("probabilistic", "sample")
        if self.do_map:
            result = net.gibbs_map(self.gibbs_samples, executor=self._executor)
            true_set = result.true_literals
            probabilities = {lit: 1.0 for lit in true_set}
        else:
            true_set = set()
            probabilities = net.gibbs_marginals(self.gibbs_samples, executor=self._executor)

        set_engine_context("probabilistic", "apply")
        added = 0
        for literal, probability in sorted(probabilities.items(), key=lambda kv: str(kv[0])):
            if literal.arg1 != pivot or probability <= self.acceptance_threshold:
                continue
            pred = rules.get_predicate_by_name(literal.name)
            slot = entities.get(literal.arg2)
            if pred is None or pred.closed or slot is None:
                continue
            relation = untyped_relation(literal.name)
            if graph.contains(entity, relation, slot):
                continue
            graph.add(RelationFact(entity=entity, relation=relation, slot=slot, score=probability))
            added += 1
            logger.info("Inferred %s | %s [%.3f] | %s", entity.name, relation, probability, slot.name)
            if self.do_map:
                for reason in net.explain(literal, true_set):
                    logger.debug("  because %s", reason)
        logger.info("Added %d inferred facts for %s", added, entity)
        return graph
