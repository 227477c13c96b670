# src/core/ner.py — v1
"""Named-entity tags carried by graph vertices and rule predicate types."""

from __future__ import annotations

from enum import Enum


class NERTag(Enum):
    """Entity types, with a short name used in compact predicate/constant names."""

    CAUSE_OF_DEATH = ("CAUSE_OF_DEATH", "COD")
    CITY = ("CITY", "CIT")
    COUNTRY = ("COUNTRY", "CRY")
    CRIMINAL_CHARGE = ("CRIMINAL_CHARGE", "CC")
    DATE = ("DATE", "DT")
    IDEOLOGY = ("IDEOLOGY", "IDY")
    LOCATION = ("LOCATION", "LOC")
    MISC = ("MISC", "MSC")
    MODIFIER = ("MODIFIER", "MOD")
    NATIONALITY = ("NATIONALITY", "NAT")
    NUMBER = ("NUMBER", "NUM")
    ORGANIZATION = ("ORGANIZATION", "ORG")
    PERSON = ("PERSON", "PER")
    RELIGION = ("RELIGION", "REL")
    STATE_OR_PROVINCE = ("STATE_OR_PROVINCE", "ST")
    TITLE = ("TITLE", "TIT")
    URL = ("URL", "URL")
    DURATION = ("DURATION", "DUR")

    def __init__(self, tag_name: str, short_name: str) -> None:
        self.tag_name = tag_name
        self.short_name = short_name

    @classmethod
    def from_string(cls, name: str | None) -> NERTag | None:
        """Find a tag by full name, falling back to the short name."""
        if not name:
            return None
        name = name.upper()
        for tag in cls:
            if tag.tag_name == name:
                return tag
        for tag in cls:
            if tag.short_name == name:
                return tag
        return None
