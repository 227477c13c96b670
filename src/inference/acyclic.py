# src/inference/acyclic.py — v1
"""Reduce a weighted rule set to one whose predicate-dependency graph is acyclic.

Rules are admitted greedily in weight order. Each predicate keeps the
set of its ancestors (itself included); a rule is rejected when one of
its consequents already lies among the ancestors of one of its
antecedents, since admitting it would close a loop. After each admission
the new ancestors are pushed to the consequent and to every predicate
that descends from it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import networkx as nx

from kbpinfer.mln.text import MLNText, Rule

logger = logging.getLogger(__name__)


def _split(rule: Rule) -> tuple[set[str], set[str]]:
    antecedents: set[str] = set()
    consequents: set[str] = set()
    for lit in rule.literals:
        if lit.is_equality:
            continue
        (consequents if lit.truth else antecedents).add(lit.name)
    return antecedents, consequents


def dependency_graph(program: MLNText) -> nx.DiGraph:
    """Directed graph with an edge antecedent -> consequent for every rule."""
    graph = nx.DiGraph()
    graph.add_nodes_from(p.name for p in program.predicates)
    for rule in program.rules:
        antecedents, consequents = _split(rule)
        graph.add_nodes_from(antecedents | consequents)
        graph.add_edges_from((a, c) for a in antecedents for c in consequents)
    return graph


def is_acyclic(program: MLNText) -> bool:
    return nx.is_directed_acyclic_graph(dependency_graph(program))


def make_acyclic(program: MLNText, descending: bool = True) -> MLNText:
    """Greedy weight-ordered admission of rules that keep the program acyclic.

    Args:
        program: Candidate rules.
        descending: Admit heavier rules first. With False, lighter rules
            are admitted first. Ties keep their program order.

    Returns:
        A program with the same predicates and an acyclic subset of the rules.
    """
    ordered = sorted(program.rules, key=lambda r: r.weight, reverse=descending)
    ancestors: dict[str, set[str]] = {}

    def ancestors_of(name: str) -> set[str]:
        return ancestors.setdefault(name, {name})

    admitted: list[Rule] = []
    for rule in ordered:
        antecedents, consequents = _split(rule)
        if any(ancestors_of(a) & consequents for a in antecedents):
            logger.debug("Excluding rule %s", rule)
            continue
        admitted.append(rule)

        inherited: set[str] = set()
        for a in antecedents:
            inherited |= ancestors_of(a)
        for consequent in consequents:
            for name, names in ancestors.items():
                if consequent in names or name == consequent:
                    names |= inherited
            ancestors_of(consequent).update(inherited)

    logger.info(
        "Acyclic selection kept %d of %d rules", len(admitted), len(program.rules)
    )
    # Keep program order for the admitted rules.
    keep = set(admitted)
    return program.with_rules(r for r in program.rules if r in keep)


@dataclass(frozen=True)
class BayesianLogicNetwork:
    """A rule program known to have an acyclic predicate-dependency graph."""

    rules: MLNText

    @classmethod
    def build_acyclic(cls, rules: MLNText, descending: bool = True) -> BayesianLogicNetwork:
        return cls(make_acyclic(rules, descending=descending))
