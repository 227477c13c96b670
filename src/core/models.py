# src/core/models.py — v1
"""Shared Pydantic domain models for the fact graph.

Entities serialize their type by tag name, so fact files read as plain JSON.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from kbpinfer.core.ner import NERTag


class Entity(BaseModel):
    """A typed graph vertex. Frozen so it can key graphs and bindings."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: NERTag

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: object) -> object:
        """Accept tag names (``PERSON``) and short names (``PER``)."""
        if isinstance(v, str):
            tag = NERTag.from_string(v)
            if tag is None:
                raise ValueError(f"Unknown entity type: {v}")
            return tag
        return v

    @field_serializer("type")
    def serialize_type(self, v: NERTag) -> str:
        return v.tag_name

    def __str__(self) -> str:
        return f"{self.name}[{self.type.short_name}]"


class Provenance(BaseModel):
    """Where a fact was read from."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    sentence_index: int | None = None
    is_official: bool = False


class RelationFact(BaseModel):
    """A directed, optionally scored relation between two entities."""

    model_config = ConfigDict(frozen=True)

    entity: Entity
    relation: str
    slot: Entity
    score: float | None = Field(default=None)
    provenance: Provenance | None = None

    @property
    def key(self) -> tuple[Entity, str, Entity]:
        """Identity of the fact, independent of score and provenance."""
        return (self.entity, self.relation, self.slot)

    def __str__(self) -> str:
        score = "?" if self.score is None else f"{self.score:.3f}"
        return f"{self.relation}({self.entity.name}, {self.slot.name}) @ {score}"
