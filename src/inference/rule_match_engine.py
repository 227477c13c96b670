# src/inference/rule_match_engine.py — v1
"""Deterministic rule matching over the fact graph, no sampling.

Rule file format: type-signature lines ``relation(TYPE1,TYPE2)`` and rule
lines ``score<two spaces or tab>clause v clause ...`` where a clause is
``!?relation(var1,var2)``. Negated clauses are antecedents; exactly one
clause must be positive. Scores are logits.

For every vertex other than the pivot, and every rule whose consequent
types fit (pivot, vertex), the consequent is bound to that pair. The
candidate is accepted when the antecedents touching the bound variables
find matching edges and a backtracking search binds the remaining
variables to graph vertices consistently. Accepted facts score
``0.5 + p / 2``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kbpinfer.core.models import Entity, Provenance, RelationFact
from kbpinfer.core.ner import NERTag
from kbpinfer.core.relations import RelationType
from kbpinfer.graph.entity_graph import EntityGraph
from kbpinfer.inference.base_engine import GraphInferenceEngine, untyped_relation
from kbpinfer.inference.logmath import sigmoid
from kbpinfer.logging.context import set_engine_context
from kbpinfer.mln.reader import MLNParseError

logger = logging.getLogger(__name__)

_CLAUSE = re.compile(r"^!?([^(]+)\(\s*([^,]+?)\s*,\s*([^)]+?)\s*\)$")
_RULE_SEPARATOR = re.compile(r" {2,}|\t")
_DISJUNCTION = re.compile(r"\s+v\s+")


def _type_ok(expected: NERTag | None, actual: NERTag) -> bool:
    return expected is None or expected == actual


@dataclass(frozen=True)
class Clause:
    """One relation clause of a rule: ``relation(entity_var, slot_var)``."""

    entity_var: str
    entity_type: NERTag | None
    relation: str
    slot_var: str
    slot_type: NERTag | None

    def __str__(self) -> str:
        return f"{self.relation}({self.entity_var},{self.slot_var})"


@dataclass(frozen=True)
class MatchRule:
    antecedents: frozenset[Clause]
    consequent: Clause
    probability: float

    def bind_consequent(self, entity: Entity, slot: Entity) -> BoundRule:
        return BoundRule(self, {
            self.consequent.entity_var: entity,
            self.consequent.slot_var: slot,
        })

    def __str__(self) -> str:
        body = " ^ ".join(sorted(str(a) for a in self.antecedents))
        return f"{body} -> {self.consequent}"


class BoundRule:
    """A rule with some of its variables bound to graph vertices. Immutable."""

    def __init__(self, rule: MatchRule, bindings: Mapping[str, Entity]) -> None:
        self.rule = rule
        self._bindings = dict(bindings)

    @property
    def bindings(self) -> dict[str, Entity]:
        return dict(self._bindings)

    def free_variables(self) -> set[str]:
        free: set[str] = set()
        for clause in self.rule.antecedents:
            if clause.entity_var not in self._bindings:
                free.add(clause.entity_var)
            if clause.slot_var not in self._bindings:
                free.add(clause.slot_var)
        return free

    def is_consistent(self, graph: EntityGraph, var: str, candidate: Entity) -> bool:
        """Whether binding var to candidate leaves every touched antecedent satisfiable."""
        for clause in self.rule.antecedents:
            if clause.entity_var == var:
                if not _type_ok(clause.entity_type, candidate.type):
                    return False
                slot = self._bindings.get(clause.slot_var)
                if not any(
                    edge.relation == clause.relation and (slot is None or edge.slot == slot)
                    for edge in graph.outgoing_edges(candidate)
                ):
                    return False
            if clause.slot_var == var:
                if not _type_ok(clause.slot_type, candidate.type):
                    return False
                head = self._bindings.get(clause.entity_var)
                if not any(
                    edge.relation == clause.relation and (head is None or edge.entity == head)
                    for edge in graph.incoming_edges(candidate)
                ):
                    return False
        return True

    def bind(self, var: str, entity: Entity) -> BoundRule:
        return BoundRule(self.rule, {**self._bindings, var: entity})


class RuleMatchEngine(GraphInferenceEngine):
    """Adds facts whose rule antecedents are all present in the graph."""

    def __init__(
        self,
        rule_lines: Iterable[str],
        cutoff: float = 0.0,
        max_depth: int = 3,
    ) -> None:
        self.cutoff = cutoff
        self.max_depth = max_depth
        self.min_prob = sigmoid(cutoff)
        self.rules_by_relation: dict[str, list[MatchRule]] = {}
        self._relations: set[str] = set()
        self._load(rule_lines)
        for rules in self.rules_by_relation.values():
            rules.sort(key=lambda r: -r.probability)
        logger.info(
            "Loaded %d match rules for %d relations (cutoff %.2f, depth %d)",
            sum(len(r) for r in self.rules_by_relation.values()),
            len(self.rules_by_relation), cutoff, max_depth,
        )

    @classmethod
    def from_files(
        cls, paths: Iterable[str | Path], cutoff: float = 0.0, max_depth: int = 3
    ) -> RuleMatchEngine:
        lines: list[str] = []
        for path in paths:
            with open(path, encoding="utf-8") as f:
                lines.extend(f)
        return cls(lines, cutoff=cutoff, max_depth=max_depth)

    @classmethod
    def from_settings(cls, settings: Any) -> RuleMatchEngine:
        return cls.from_files(
            settings.inference_rules_files_list,
            cutoff=settings.inference_rules_cutoff,
            max_depth=settings.inference_depth,
        )

    # --- Loading ---

    def _load(self, lines: Iterable[str]) -> None:
        signatures: dict[str, tuple[NERTag, NERTag]] = {}
        for lineno, raw in enumerate(lines, start=1):
            line = raw.split("//", 1)[0].rstrip()
            if not line.strip():
                continue
            parts = _RULE_SEPARATOR.split(line.strip(), maxsplit=1)
            if len(parts) == 2:
                self._load_rule(parts[0], parts[1], signatures, lineno, line)
            else:
                self._load_signature(line.strip(), signatures, lineno)

    @staticmethod
    def _load_signature(
        line: str, signatures: dict[str, tuple[NERTag, NERTag]], lineno: int
    ) -> None:
        match = _CLAUSE.match(line)
        if not match:
            raise MLNParseError("Invalid type signature line", lineno, line)
        name = match.group(1).strip()
        type1 = NERTag.from_string(match.group(2))
        type2 = NERTag.from_string(match.group(3))
        if type1 is None or type2 is None:
            raise MLNParseError("Unknown entity type in signature", lineno, line)
        signatures.setdefault(name, (type1, type2))

    def _load_rule(
        self,
        score_text: str,
        body: str,
        signatures: Mapping[str, tuple[NERTag, NERTag]],
        lineno: int,
        line: str,
    ) -> None:
        try:
            score = float(score_text)
        except ValueError as exc:
            raise MLNParseError("Could not parse rule score", lineno, line) from exc
        if score < self.cutoff:
            return
        clauses = _DISJUNCTION.split(body.strip().replace(")v", ")  v  "))
        if len(clauses) - 1 > self.max_depth:
            return

        antecedents: set[Clause] = set()
        consequent: Clause | None = None
        for text in clauses:
            text = text.strip()
            match = _CLAUSE.match(text)
            if not match:
                raise MLNParseError("Invalid clause in rule", lineno, line)
            name = match.group(1).strip()
            entity_type, slot_type = signatures.get(name, (None, None))
            clause = Clause(
                entity_var=match.group(2),
                entity_type=entity_type,
                relation=untyped_relation(name),
                slot_var=match.group(3),
                slot_type=slot_type,
            )
            self._relations.add(clause.relation)
            if text.startswith("!"):
                antecedents.add(clause)
            elif consequent is not None:
                raise MLNParseError("Rule has multiple consequents", lineno, line)
            else:
                consequent = clause
        if consequent is None:
            raise MLNParseError("Rule has no consequent", lineno, line)

        rule = MatchRule(frozenset(antecedents), consequent, sigmoid(score))
        rules = self.rules_by_relation.setdefault(consequent.relation, [])
        if rule not in rules:
            rules.append(rule)

    # --- Matching ---

    def is_useful_relation(self, relation: str) -> bool:
        return relation in self._relations

    def matches(self, graph: EntityGraph, rule: MatchRule, entity: Entity, slot: Entity) -> bool:
        bound = rule.bind_consequent(entity, slot)
        return (
            bound.is_consistent(graph, rule.consequent.entity_var, entity)
            and bound.is_consistent(graph, rule.consequent.slot_var, slot)
            and bool(self.consistent_bindings(graph, bound, limit_one=True))
        )

    def consistent_bindings(
        self, graph: EntityGraph, target: BoundRule, limit_one: bool = False
    ) -> list[BoundRule]:
        """Complete bindings of target's free variables consistent with the graph."""
        free = target.free_variables()
        if not free:
            return [target]
        var = min(free)
        found: list[BoundRule] = []
        for candidate in graph.vertices():
            if target.is_consistent(graph, var, candidate):
                found.extend(self.consistent_bindings(graph, target.bind(var, candidate), limit_one))
                if limit_one and found:
                    return found
        return found

    @staticmethod
    def try_find_provenance(
        graph: EntityGraph, entity: Entity, slot: Entity, rule: MatchRule
    ) -> Provenance | None:
        """Provenance of the matching edge when rule is a one-antecedent translation."""
        if len(rule.antecedents) != 1:
            return None
        (antecedent,) = rule.antecedents
        provenance: Provenance | None = None
        for edge in graph.outgoing_edges(entity):
            if edge.relation == antecedent.relation and edge.slot == slot:
                if edge.provenance is not None and edge.provenance.is_official:
                    return edge.provenance
                provenance = provenance or edge.provenance
        return provenance

    def apply(self, graph: EntityGraph, entity: Entity) -> EntityGraph:
        set_engine_context("rule_match", "apply")
        for edge in graph.outgoing_edges(entity):
            if RelationType.from_string(edge.relation) is None:
                logger.debug("Open-domain extraction: %s", edge)

        to_add: dict[tuple[Entity, str, Entity], RelationFact] = {}
        for sink in graph.vertices():
            if sink == entity:
                continue
            kbp_candidates = RelationType.possible_relations_between(entity.type, sink.type)
            for relation, rules in self.rules_by_relation.items():
                kbp = RelationType.from_string(relation)
                if kbp is not None and kbp not in kbp_candidates:
                    continue
                for rule in rules:
                    consequent = rule.consequent
                    if not (
                        _type_ok(consequent.entity_type, entity.type)
                        and _type_ok(consequent.slot_type, sink.type)
                    ):
                        continue
                    if not self.matches(graph, rule, entity, sink):
                        continue
                    if rule.probability > self.min_prob:
                        fill = RelationFact(
                            entity=entity,
                            relation=relation,
                            slot=sink,
                            score=0.5 + rule.probability / 2.0,
                            provenance=self.try_find_provenance(graph, entity, sink, rule),
                        )
                        if not graph.contains(entity, relation, sink) and fill.key not in to_add:
                            logger.info(
                                "Inferred %s | %s [%.3f] | %s {%s}",
                                entity.name, relation, rule.probability, sink.name, rule,
                            )
                            to_add[fill.key] = fill
                        break

        for fill in to_add.values():
            graph.add(fill)
        return graph
