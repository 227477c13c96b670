# tests/unit/core/test_unit_models.py — v1
"""Tests for core/models.py — entities, provenance and relation facts."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kbpinfer.core.models import Entity, Provenance, RelationFact
from kbpinfer.core.ner import NERTag


class TestEntity:
    def test_str_uses_short_name(self):
        assert str(Entity(name="Julie", type=NERTag.PERSON)) == "Julie[PER]"

    def test_hashable_and_equal(self):
        a = Entity(name="Julie", type=NERTag.PERSON)
        b = Entity(name="Julie", type=NERTag.PERSON)
        assert a == b
        assert len({a, b}) == 1

    def test_type_distinguishes(self):
        assert Entity(name="Washington", type=NERTag.PERSON) != Entity(
            name="Washington", type=NERTag.STATE_OR_PROVINCE
        )

    def test_type_from_tag_name(self):
        assert Entity(name="Canada", type="COUNTRY").type is NERTag.COUNTRY

    def test_type_from_short_name(self):
        assert Entity(name="Canada", type="CRY").type is NERTag.COUNTRY

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Entity(name="Canada", type="PLANET")

    def test_serializes_tag_name(self):
        dumped = Entity(name="Canada", type=NERTag.COUNTRY).model_dump(mode="json")
        assert dumped == {"name": "Canada", "type": "COUNTRY"}

    def test_frozen(self):
        entity = Entity(name="Julie", type=NERTag.PERSON)
        with pytest.raises(ValidationError):
            entity.name = "Jules"


class TestRelationFact:
    def _build_fact(self, score: float | None = 0.9) -> RelationFact:
        return RelationFact(
            entity=Entity(name="Julie", type=NERTag.PERSON),
            relation="per:spouse",
            slot=Entity(name="Arun", type=NERTag.PERSON),
            score=score,
            provenance=Provenance(doc_id="doc1"),
        )

    def test_key_ignores_score(self):
        assert self._build_fact(0.9).key == self._build_fact(0.1).key

    def test_str_with_score(self):
        assert str(self._build_fact(0.9)) == "per:spouse(Julie, Arun) @ 0.900"

    def test_str_without_score(self):
        assert str(self._build_fact(None)) == "per:spouse(Julie, Arun) @ ?"

    def test_provenance_defaults(self):
        provenance = Provenance(doc_id="doc1")
        assert provenance.sentence_index is None
        assert provenance.is_official is False

    def test_json_round_trip_from_plain_types(self):
        fact = RelationFact.model_validate({
            "entity": {"name": "Julie", "type": "PERSON"},
            "relation": "bornIn",
            "slot": {"name": "Canada", "type": "COUNTRY"},
        })
        assert fact.slot.type is NERTag.COUNTRY
        assert fact.score is None
