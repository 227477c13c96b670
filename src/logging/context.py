# src/logging/context.py — v1
"""Contextual logging support — attach run_id, pivot entity, engine and phase to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per inference run.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_pivot_entity: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pivot_entity", default=None
)
_engine: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "engine", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    pivot_entity: str | None = None
    engine: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        pivot_entity=_pivot_entity.get(),
        engine=_engine.get(),
        phase=_phase.get(),
    )


def set_run_context(run_id: str, pivot_entity: str | None = None) -> None:
    """Set run-level context (called once per apply on a pivot)."""
    _run_id.set(run_id)
    _pivot_entity.set(pivot_entity)


def set_engine_context(engine: str, phase: str | None = None) -> None:
    """Set engine-level context (grounding, sampling, readback...)."""
    _engine.set(engine)
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _pivot_entity.set(None)
    _engine.set(None)
    _phase.set(None)
