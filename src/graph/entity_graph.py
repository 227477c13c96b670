# src/graph/entity_graph.py — v1
"""Entity/fact graph — the structure inference engines read and augment.

Vertices are typed ``Entity`` objects; edges are ``RelationFact`` objects
stored on a NetworkX MultiDiGraph keyed by relation name, so at most one
edge exists per (head, relation, tail).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

import networkx as nx

from kbpinfer.core.models import Entity, RelationFact

logger = logging.getLogger(__name__)


class EntityGraph:
    """Directed multigraph of relation facts between typed entities."""

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()

    @classmethod
    def from_facts(cls, facts: Iterable[RelationFact]) -> EntityGraph:
        graph = cls()
        for fact in facts:
            graph.add(fact)
        return graph

    # --- Mutation ---

    def add_vertex(self, entity: Entity) -> None:
        if not self._graph.has_node(entity):
            self._graph.add_node(entity)

    def add(self, fact: RelationFact) -> bool:
        """Add a fact. Returns True if the graph changed.

        Re-adding an existing (head, relation, tail) keeps whichever copy
        has the higher score; unscored facts never replace scored ones.
        """
        self.add_vertex(fact.entity)
        self.add_vertex(fact.slot)
        existing = self._edge_data(fact.entity, fact.relation, fact.slot)
        if existing is not None:
            old: RelationFact = existing["fact"]
            if fact.score is None or (old.score is not None and old.score >= fact.score):
                return False
            existing["fact"] = fact
            return True
        self._graph.add_edge(fact.entity, fact.slot, key=fact.relation, fact=fact)
        return True

    # --- Queries ---

    def _edge_data(self, head: Entity, relation: str, tail: Entity) -> dict | None:
        if not self._graph.has_edge(head, tail, key=relation):
            return None
        return self._graph.edges[head, tail, relation]

    def contains(self, head: Entity, relation: str, tail: Entity) -> bool:
        return self._edge_data(head, relation, tail) is not None

    def has_vertex(self, entity: Entity) -> bool:
        return self._graph.has_node(entity)

    def get_edges(self, head: Entity, tail: Entity) -> list[RelationFact]:
        """All facts from head to tail (empty if either is absent)."""
        if not self._graph.has_node(head) or not self._graph.has_node(tail):
            return []
        data = self._graph.get_edge_data(head, tail) or {}
        return [attrs["fact"] for attrs in data.values()]

    def outgoing_edges(self, entity: Entity) -> list[RelationFact]:
        if not self._graph.has_node(entity):
            return []
        return [
            attrs["fact"]
            for _, _, attrs in self._graph.out_edges(entity, data=True)
        ]

    def incoming_edges(self, entity: Entity) -> list[RelationFact]:
        if not self._graph.has_node(entity):
            return []
        return [
            attrs["fact"]
            for _, _, attrs in self._graph.in_edges(entity, data=True)
        ]

    def out_degree(self, entity: Entity) -> int:
        if not self._graph.has_node(entity):
            return 0
        return self._graph.out_degree(entity)

    def vertices(self) -> list[Entity]:
        return list(self._graph.nodes)

    def edges(self) -> Iterator[RelationFact]:
        for _, _, attrs in self._graph.edges(data=True):
            yield attrs["fact"]

    def __len__(self) -> int:
        return self._graph.number_of_edges()

    def __repr__(self) -> str:
        return (
            f"EntityGraph(vertices={self._graph.number_of_nodes()}, "
            f"edges={self._graph.number_of_edges()})"
        )
