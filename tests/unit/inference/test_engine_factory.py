# tests/unit/inference/test_engine_factory.py — v1
"""Tests for inference/engine_factory.py."""

from __future__ import annotations

import pytest

from kbpinfer.config.settings import Settings
from kbpinfer.inference.engine_factory import EngineKind, create_engine
from kbpinfer.inference.probabilistic_engine import ProbabilisticEngine
from kbpinfer.inference.rule_match_engine import RuleMatchEngine


class TestCreateEngine:
    def test_rule_match_from_settings(self, match_rules_file):
        settings = Settings(_env_file=None, inference_rules_files=str(match_rules_file))
        engine = create_engine(settings)
        assert isinstance(engine, RuleMatchEngine)

    def test_probabilistic_from_settings(self, fast_settings):
        engine = create_engine(fast_settings)
        try:
            assert isinstance(engine, ProbabilisticEngine)
            assert engine.gibbs_samples == 2_000
        finally:
            engine.close()

    def test_kind_overrides_settings(self, match_rules_file):
        settings = Settings(
            _env_file=None,
            inference_engine="probabilistic",
            inference_rules_files=str(match_rules_file),
        )
        engine = create_engine(settings, kind=EngineKind.RULE_MATCH)
        assert isinstance(engine, RuleMatchEngine)

    def test_kind_as_string(self, fast_settings):
        engine = create_engine(fast_settings, kind="probabilistic")
        try:
            assert isinstance(engine, ProbabilisticEngine)
        finally:
            engine.close()

    def test_unknown_kind(self, fast_settings):
        with pytest.raises(ValueError):
            create_engine(fast_settings, kind="markov_chain")
