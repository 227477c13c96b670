# tests/unit/logging/test_unit_context.py — v1
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

from kbpinfer.logging.context import (
    clear_context,
    get_context,
    set_engine_context,
    set_run_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.pivot_entity is None
        assert ctx.engine is None
        assert ctx.phase is None

    def test_set_run_context(self):
        set_run_context("run1", pivot_entity="Julie[PER]")
        ctx = get_context()
        assert ctx.run_id == "run1"
        assert ctx.pivot_entity == "Julie[PER]"

    def test_set_engine_context(self):
        set_engine_context("probabilistic", "ground")
        ctx = get_context()
        assert ctx.engine == "probabilistic"
        assert ctx.phase == "ground"

    def test_engine_context_replaces_phase(self):
        set_engine_context("probabilistic", "ground")
        set_engine_context("probabilistic")
        assert get_context().phase is None

    def test_as_dict_filters_none(self):
        set_run_context("run1")
        d = get_context().as_dict()
        assert d == {"run_id": "run1"}

    def test_clear(self):
        set_run_context("run1", "Julie[PER]")
        set_engine_context("rule_match", "apply")
        clear_context()
        assert get_context().as_dict() == {}
