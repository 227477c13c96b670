# src/core/relations.py — v1
"""Catalogue of KBP slot relations: canonical name, head type, valid slot types.

Rule files and graph edges spell relations loosely (``per:spouse``,
``per_spouse``, ``org:top_members/employees``); ``RelationType.from_string``
folds those spellings onto one canonical member.
"""

from __future__ import annotations

import re
from enum import Enum

from kbpinfer.core.ner import NERTag

_PER = NERTag.PERSON
_ORG = NERTag.ORGANIZATION
_LOCATIONS = (NERTag.COUNTRY, NERTag.STATE_OR_PROVINCE, NERTag.CITY)


def _fold(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


class RelationType(Enum):
    """KBP slot relations."""

    PER_ALTERNATE_NAMES = ("per:alternate_names", _PER, (_PER, NERTag.MISC))
    PER_AGE = ("per:age", _PER, (NERTag.NUMBER, NERTag.DURATION))
    PER_CAUSE_OF_DEATH = ("per:cause_of_death", _PER, (NERTag.CAUSE_OF_DEATH,))
    PER_CHARGES = ("per:charges", _PER, (NERTag.CRIMINAL_CHARGE,))
    PER_CHILDREN = ("per:children", _PER, (_PER,))
    PER_CITIES_OF_RESIDENCE = ("per:cities_of_residence", _PER, (NERTag.CITY,))
    PER_CITY_OF_BIRTH = ("per:city_of_birth", _PER, (NERTag.CITY,))
    PER_CITY_OF_DEATH = ("per:city_of_death", _PER, (NERTag.CITY,))
    PER_COUNTRIES_OF_RESIDENCE = (
        "per:countries_of_residence", _PER, (NERTag.COUNTRY, NERTag.NATIONALITY),
    )
    PER_COUNTRY_OF_BIRTH = (
        "per:country_of_birth", _PER, (NERTag.COUNTRY, NERTag.NATIONALITY),
    )
    PER_COUNTRY_OF_DEATH = (
        "per:country_of_death", _PER, (NERTag.COUNTRY, NERTag.NATIONALITY),
    )
    PER_DATE_OF_BIRTH = ("per:date_of_birth", _PER, (NERTag.DATE,))
    PER_DATE_OF_DEATH = ("per:date_of_death", _PER, (NERTag.DATE,))
    PER_EMPLOYEE_OF = ("per:employee_of", _PER, (_ORG,) + _LOCATIONS)
    PER_MEMBER_OF = ("per:member_of", _PER, (_ORG,))
    PER_ORIGIN = ("per:origin", _PER, (NERTag.NATIONALITY, NERTag.COUNTRY))
    PER_OTHER_FAMILY = ("per:other_family", _PER, (_PER,))
    PER_PARENTS = ("per:parents", _PER, (_PER,))
    PER_RELIGION = ("per:religion", _PER, (NERTag.RELIGION,))
    PER_SCHOOLS_ATTENDED = ("per:schools_attended", _PER, (_ORG,))
    PER_SIBLINGS = ("per:siblings", _PER, (_PER,))
    PER_SPOUSE = ("per:spouse", _PER, (_PER,))
    PER_STATEORPROVINCE_OF_BIRTH = (
        "per:stateorprovince_of_birth", _PER, (NERTag.STATE_OR_PROVINCE,),
    )
    PER_STATEORPROVINCE_OF_DEATH = (
        "per:stateorprovince_of_death", _PER, (NERTag.STATE_OR_PROVINCE,),
    )
    PER_STATEORPROVINCES_OF_RESIDENCE = (
        "per:stateorprovinces_of_residence", _PER, (NERTag.STATE_OR_PROVINCE,),
    )
    PER_TITLE = ("per:title", _PER, (NERTag.TITLE,))
    ORG_ALTERNATE_NAMES = ("org:alternate_names", _ORG, (_ORG, NERTag.MISC))
    ORG_CITY_OF_HEADQUARTERS = ("org:city_of_headquarters", _ORG, (NERTag.CITY,))
    ORG_COUNTRY_OF_HEADQUARTERS = (
        "org:country_of_headquarters", _ORG, (NERTag.COUNTRY, NERTag.NATIONALITY),
    )
    ORG_DISSOLVED = ("org:dissolved", _ORG, (NERTag.DATE,))
    ORG_FOUNDED = ("org:founded", _ORG, (NERTag.DATE,))
    ORG_FOUNDED_BY = ("org:founded_by", _ORG, (_PER, _ORG))
    ORG_MEMBER_OF = ("org:member_of", _ORG, (_ORG,) + _LOCATIONS)
    ORG_MEMBERS = ("org:members", _ORG, (_ORG, NERTag.COUNTRY))
    ORG_NUMBER_OF_EMPLOYEES_MEMBERS = (
        "org:number_of_employees/members", _ORG, (NERTag.NUMBER,),
    )
    ORG_PARENTS = ("org:parents", _ORG, (_ORG,) + _LOCATIONS)
    ORG_POLITICAL_RELIGIOUS_AFFILIATION = (
        "org:political/religious_affiliation", _ORG, (NERTag.RELIGION, NERTag.IDEOLOGY),
    )
    ORG_SHAREHOLDERS = ("org:shareholders", _ORG, (_PER, _ORG))
    ORG_STATEORPROVINCE_OF_HEADQUARTERS = (
        "org:stateorprovince_of_headquarters", _ORG, (NERTag.STATE_OR_PROVINCE,),
    )
    ORG_SUBSIDIARIES = ("org:subsidiaries", _ORG, (_ORG,))
    ORG_TOP_MEMBERS_EMPLOYEES = ("org:top_members/employees", _ORG, (_PER,))
    ORG_WEBSITE = ("org:website", _ORG, (NERTag.URL,))

    def __init__(
        self, canonical_name: str, entity_type: NERTag, valid_slot_types: tuple[NERTag, ...]
    ) -> None:
        self.canonical_name = canonical_name
        self.entity_type = entity_type
        self.valid_slot_types = valid_slot_types

    @classmethod
    def from_string(cls, name: str | None) -> RelationType | None:
        """Find a relation by canonical name, ignoring separators and case."""
        if not name:
            return None
        folded = _fold(name)
        for rel in cls:
            if _fold(rel.canonical_name) == folded:
                return rel
        return None

    @classmethod
    def possible_relations_between(
        cls, entity_type: NERTag, slot_type: NERTag
    ) -> list[RelationType]:
        """Relations whose head type and slot types admit the given pair."""
        return [
            rel
            for rel in cls
            if rel.entity_type == entity_type and slot_type in rel.valid_slot_types
        ]
