# src/inference/engine_factory.py — v1
"""Factory for inference engine instantiation.

Engines are imported lazily so the rule-match path never loads the
sampling stack.
"""

from __future__ import annotations

import importlib
from enum import Enum

from kbpinfer.config.settings import Settings
from kbpinfer.inference.base_engine import GraphInferenceEngine


class EngineKind(str, Enum):
    RULE_MATCH = "rule_match"
    PROBABILISTIC = "probabilistic"


_ENGINES: dict[EngineKind, str] = {
    EngineKind.RULE_MATCH: "kbpinfer.inference.rule_match_engine.RuleMatchEngine",
    EngineKind.PROBABILISTIC: "kbpinfer.inference.probabilistic_engine.ProbabilisticEngine",
}


def create_engine(
    settings: Settings, kind: EngineKind | str | None = None
) -> GraphInferenceEngine:
    """Create the configured inference engine.

    Args:
        settings: Supplies the rule files and engine parameters.
        kind: Overrides ``settings.inference_engine`` when given.

    Raises:
        ValueError: If the engine kind is unknown.
    """
    engine_kind = EngineKind(kind if kind is not None else settings.inference_engine)
    module_path, class_name = _ENGINES[engine_kind].rsplit(".", 1)
    cls = getattr(importlib.import_module(module_path), class_name)
    return cls.from_settings(settings)
