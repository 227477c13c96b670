# src/inference/base_engine.py — v1
"""Abstract inference engine: augment a fact graph around a pivot entity.

Also hosts the naming helpers shared by the engines. Rule files name
relations with their argument types folded in
(``per_spouse_TYPE_PER_TO_PER``) and name entities with their type
prefixed (``PER_Julie_Smith``).
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from kbpinfer.core.models import Entity
from kbpinfer.core.ner import NERTag
from kbpinfer.core.relations import RelationType
from kbpinfer.graph.entity_graph import EntityGraph

_TYPE_MARKER = "_TYPE_"
_TYPES_PATTERN = re.compile(r".*_TYPE_([A-Z]+)_TO_([A-Z]+).*")


class GraphInferenceEngine(ABC):
    """Base class for engines that add inferred facts to an EntityGraph."""

    @abstractmethod
    def apply(self, graph: EntityGraph, entity: Entity) -> EntityGraph:
        """Run inference around ``entity``.

        Returns:
            The same graph object, with zero or more inferred facts added.
        """

    def is_useful_relation(self, relation: str) -> bool:
        """Whether a relation could ever take part in inference.

        Graph builders may call this to prune edges up front; it is
        independent of ``apply``.
        """
        return True


def untyped_relation(typed_relation: str) -> str:
    """Map a typed rule-file relation back to its graph spelling.

    KBP relations come back in canonical form (``per:spouse``); anything
    else has its underscores turned back into spaces.
    """
    relation = typed_relation
    marker = relation.find(_TYPE_MARKER)
    if marker >= 0:
        relation = relation[:marker]
    if relation.startswith("per_"):
        relation = "per:" + relation[4:]
    if relation.startswith("org_"):
        relation = "org:" + relation[4:]
    known = RelationType.from_string(relation)
    if known is not None:
        return known.canonical_name
    return relation.replace("_", " ")


def get_types(typed_relation: str) -> tuple[NERTag, NERTag]:
    """The (head, slot) types encoded in a typed relation name.

    Raises:
        ValueError: If the name carries no valid type suffix.
    """
    match = _TYPES_PATTERN.match(typed_relation)
    if match:
        head = NERTag.from_string(match.group(1))
        slot = NERTag.from_string(match.group(2))
        if head is not None and slot is not None:
            return head, slot
    raise ValueError(f"Invalid type string: {typed_relation}")


def clean_relation(
    raw_relation: str, type1: NERTag | None = None, type2: NERTag | None = None
) -> str:
    """Rule-file-safe relation name, typed when both types are given."""
    cleaned = re.sub(r"[^a-zA-Z0-9_]", "_", re.sub(r"\s+", "_", raw_relation))
    if type1 is None or type2 is None:
        return cleaned
    return f"{cleaned}{_TYPE_MARKER}{type1.short_name}_TO_{type2.short_name}"


def clean_entity(entity: Entity) -> str:
    """Rule-file constant for an entity: type short name, then the cleaned name."""
    name = re.sub(r"[^a-zA-Z0-9_]", "_", re.sub(r"\s+", "_", entity.name))
    return f"{entity.type.short_name.upper()}_{name}"
