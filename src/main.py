# src/main.py — v1
"""CLI entry point — validate, acyclic, infer commands.

Usage:
    kbpinfer validate <rules>
    kbpinfer acyclic <rules> [-o out] [--ascending]
    kbpinfer infer <facts.json> --pivot NAME [--rules FILE ...] [--engine KIND]
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from kbpinfer.core.models import RelationFact
from kbpinfer.version import __version__

logger = logging.getLogger(__name__)

_FACTS = TypeAdapter(list[RelationFact])


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="kbpinfer",
        description=f"kbpinfer v{__version__} — Rule-based inference over KBP fact graphs",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- validate ---
    p_validate = subparsers.add_parser(
        "validate", help="Parse a rule file and report its size",
    )
    p_validate.add_argument("rules", type=Path, help="Path to rule file")
    p_validate.set_defaults(func=_cmd_validate)

    # --- acyclic ---
    p_acyclic = subparsers.add_parser(
        "acyclic", help="Keep a subset of rules with no dependency cycle",
    )
    p_acyclic.add_argument("rules", type=Path, help="Path to rule file")
    p_acyclic.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output rule file (default: stdout)",
    )
    p_acyclic.add_argument(
        "--ascending", action="store_true",
        help="Admit lighter rules first",
    )
    p_acyclic.set_defaults(func=_cmd_acyclic)

    # --- infer ---
    p_infer = subparsers.add_parser(
        "infer", help="Infer new facts about a pivot entity",
    )
    p_infer.add_argument("facts", type=Path, help="JSON list of relation facts")
    p_infer.add_argument("--pivot", required=True, help="Name of the pivot entity")
    p_infer.add_argument(
        "--pivot-type", default=None,
        help="Entity type of the pivot, when the name is ambiguous",
    )
    p_infer.add_argument(
        "--rules", type=Path, nargs="+", default=None,
        help="Rule files (default: INFERENCE_RULES_FILES)",
    )
    p_infer.add_argument(
        "--engine", choices=["rule_match", "probabilistic"], default=None,
        help="Inference engine (default: INFERENCE_ENGINE)",
    )
    p_infer.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the augmented fact list as JSON",
    )
    p_infer.set_defaults(func=_cmd_infer)

    return parser


def _cmd_validate(args: argparse.Namespace) -> int:
    """Parse a rule file and print predicate and rule counts."""
    from kbpinfer.inference.acyclic import is_acyclic
    from kbpinfer.mln.reader import MLNParseError, read_mln

    rules_path: Path = args.rules
    if not rules_path.exists():
        logger.error("File not found: %s", rules_path)
        return 1

    try:
        program = read_mln(rules_path)
    except MLNParseError as exc:
        logger.error("%s: %s", rules_path, exc)
        return 1

    closed = sum(1 for p in program.predicates if p.closed)
    hard = sum(1 for r in program.rules if r.is_hard)
    print(f"\nRule file {rules_path}:")
    print(f"  Predicates:  {len(program.predicates)} ({closed} closed)")
    print(f"  Rules:       {len(program.rules)} ({hard} hard)")
    print(f"  Acyclic:     {'yes' if is_acyclic(program) else 'no'}")
    return 0


def _cmd_acyclic(args: argparse.Namespace) -> int:
    """Write the acyclic subset of a rule file."""
    from kbpinfer.inference.acyclic import make_acyclic
    from kbpinfer.mln.reader import read_mln, write_mln

    rules_path: Path = args.rules
    if not rules_path.exists():
        logger.error("File not found: %s", rules_path)
        return 1

    program = read_mln(rules_path)
    reduced = make_acyclic(program, descending=not args.ascending)
    if args.output is None:
        print(reduced)
    else:
        write_mln(reduced, args.output)
        logger.info(
            "Wrote %d of %d rules to %s", len(reduced.rules), len(program.rules), args.output,
        )
    return 0


def _cmd_infer(args: argparse.Namespace) -> int:
    """Load facts, run the configured engine around the pivot, print new facts."""
    from kbpinfer.config.settings import load_settings
    from kbpinfer.core.ner import NERTag
    from kbpinfer.graph.entity_graph import EntityGraph
    from kbpinfer.inference.engine_factory import create_engine
    from kbpinfer.logging.context import clear_context, set_run_context
    from kbpinfer.logging.logger import setup_logging_from_settings

    facts_path: Path = args.facts
    if not facts_path.exists():
        logger.error("File not found: %s", facts_path)
        return 1

    overrides: dict[str, object] = {}
    if args.rules:
        missing = [p for p in args.rules if not p.exists()]
        if missing:
            logger.error("Rule file not found: %s", ", ".join(str(p) for p in missing))
            return 1
        overrides["inference_rules_files"] = ",".join(str(p) for p in args.rules)
    if args.engine:
        overrides["inference_engine"] = args.engine
    settings = load_settings(**overrides)
    setup_logging_from_settings(settings, level="DEBUG" if args.verbose else None)
    if not settings.inference_rules_files_list:
        logger.error("No rule files given (use --rules or INFERENCE_RULES_FILES)")
        return 1

    try:
        facts = _load_facts(facts_path)
    except ValidationError as exc:
        logger.error("Invalid facts file %s: %s", facts_path, exc)
        return 1
    graph = EntityGraph.from_facts(facts)

    pivot_type = NERTag.from_string(args.pivot_type) if args.pivot_type else None
    candidates = [
        v for v in graph.vertices()
        if v.name == args.pivot and (pivot_type is None or v.type == pivot_type)
    ]
    if not candidates:
        logger.error("Pivot entity not found in facts: %s", args.pivot)
        return 1
    pivot = candidates[0]

    set_run_context(uuid.uuid4().hex[:12], pivot_entity=str(pivot))
    engine = create_engine(settings)
    try:
        before = {fact.key for fact in graph.edges()}
        engine.apply(graph, pivot)
    finally:
        close = getattr(engine, "close", None)
        if close is not None:
            close()
        clear_context()

    inferred = [fact for fact in graph.edges() if fact.key not in before]
    print(f"\nInferred {len(inferred)} facts for {pivot}:")
    for fact in inferred:
        print(f"  {fact}")

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(_FACTS.dump_json(list(graph.edges()), indent=2))
        logger.info("Wrote %d facts to %s", len(graph), args.output)
    return 0


def _load_facts(path: Path) -> list[RelationFact]:
    """Read and validate a JSON list of relation facts."""
    return _FACTS.validate_json(path.read_bytes())


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from kbpinfer.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "INFO", log_format="text")


if __name__ == "__main__":
    sys.exit(main())
