# src/mln/reader.py — v1
"""Line-oriented reader and writer for rule files.

Grammar, one declaration per line, ``//`` starts a comment:

    *livesIn(PERSON,COUNTRY)              closed-world predicate
    bornIn(PERSON,COUNTRY)                open-world predicate
    1.5 !bornIn(x,y) v livesIn(x,y)       weighted clause
    !spouse(x,y) v spouse(y,x).           hard clause (trailing period)
    -0.7 !a(x,y) v b(x,z) v y != z        equality literals

Any other non-empty line is a fatal MLNParseError.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from pathlib import Path

from kbpinfer.mln.text import EQUALS, Literal, MLNText, Predicate, Rule

logger = logging.getLogger(__name__)

_COMMENT = re.compile(r"//.*$")
_PREDICATE = re.compile(
    r"^(\*?)([^-0-9*!.\s(][^(\s]*)\(\s*([^,]+?)\s*,\s*([^)]+?)\s*\)$"
)
_LITERAL = re.compile(r"^(!?)([^(]+?)\(\s*([^,]+?)\s*,\s*([^)]+?)\s*\)$")
_EQUALITY = re.compile(r"^([^,=!\s]+)\s*(!?=)\s*([^,.\s]+)$")
_DISJUNCTION = re.compile(r"\s+v\s+")


class MLNParseError(ValueError):
    """A rule-file line matched neither the predicate nor the clause grammar."""

    def __init__(self, reason: str, line_number: int | None = None, line: str = "") -> None:
        where = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"{reason}{where}: {line!r}")
        self.reason = reason
        self.line_number = line_number
        self.line = line


def parse_literal(text: str) -> Literal:
    """Parse one disjunct: ``!?name(a,b)`` or ``a (=|!=) b``."""
    text = text.strip()
    match = _LITERAL.match(text)
    if match:
        return Literal(
            name=match.group(2).strip(),
            arg1=match.group(3),
            arg2=match.group(4),
            truth=not match.group(1),
        )
    match = _EQUALITY.match(text)
    if match:
        return Literal(
            name=EQUALS,
            arg1=match.group(1),
            arg2=match.group(3),
            truth=not match.group(2).startswith("!"),
        )
    raise MLNParseError("Could not parse literal", line=text)


def parse_rule(line: str) -> Rule:
    """Parse a weighted or hard clause (comments already stripped)."""
    if line.endswith("."):
        weight = math.inf
        body = line[:-1].strip()
    else:
        head, _, body = line.partition(" ")
        try:
            weight = float(head)
        except ValueError as exc:
            raise MLNParseError("Could not parse rule weight", line=line) from exc
        body = body.strip()
    if not body:
        raise MLNParseError("Rule has no literals", line=line)
    clauses = _DISJUNCTION.split(body.replace(")v", ")  v  "))
    return Rule(weight, tuple(parse_literal(c) for c in clauses))


def parse_mln(lines: Iterable[str]) -> MLNText:
    """Parse rule-file lines into a program.

    Raises:
        MLNParseError: On the first line matching neither grammar.
    """
    predicates: list[Predicate] = []
    rules: list[Rule] = []
    for lineno, raw in enumerate(lines, start=1):
        line = _COMMENT.sub("", raw).strip()
        if not line:
            continue
        match = _PREDICATE.match(line)
        if match:
            predicates.append(Predicate(
                name=match.group(2).strip(),
                type1=match.group(3),
                type2=match.group(4),
                closed=bool(match.group(1)),
            ))
            continue
        try:
            rules.append(parse_rule(line))
        except MLNParseError as exc:
            raise MLNParseError(exc.reason, lineno, line) from exc

    program = MLNText(frozenset(predicates), tuple(rules))
    logger.debug(
        "Parsed rule program: %d predicates, %d rules",
        len(program.predicates), len(program.rules),
    )
    return program


def read_mln(path: str | Path) -> MLNText:
    """Parse a rule file from disk."""
    with open(path, encoding="utf-8") as f:
        return parse_mln(f)


def read_mln_files(paths: Iterable[str | Path]) -> MLNText:
    """Parse and union several rule files, in order."""
    program = MLNText()
    for path in paths:
        program = program.union(read_mln(path))
    return program


def write_mln(program: MLNText, path: str | Path) -> Path:
    """Serialize a program in the format read_mln accepts."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(program) + "\n", encoding="utf-8")
    return path
