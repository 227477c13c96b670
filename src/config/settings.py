# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for inference and logging settings. Algorithmic
classes never read this object directly; engines and builders are handed
explicit values through their ``from_settings`` constructors.
"""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === ENGINE SELECTION ===
    inference_engine: Literal["rule_match", "probabilistic"] = "rule_match"
    inference_rules_files: str = ""

    # === RULE ADMISSION ===
    inference_rules_cutoff: float = 0.0
    inference_depth: int = 3
    inference_rules_mode: Literal["kbp_only", "reverb_strict", "reverb"] = "reverb_strict"

    # === SAMPLING ===
    inference_do_map: bool = False
    inference_merge_method: Literal[
        "noisy_or", "hybrid_or", "gentle_or", "geometric_mean"
    ] = "geometric_mean"
    inference_gibbs_samples: int = 200_000
    inference_gibbs_threads: int = 4
    inference_prior: float = 0.3
    inference_do_hillclimb: bool = False
    inference_acceptance_threshold: float = 0.5

    # === ACYCLIC SELECTION ===
    inference_acyclic: bool = False
    inference_acyclic_order: Literal["descending", "ascending"] = "descending"

    # === HEURISTIC TOGGLES ===
    inference_hacks_always_true: bool = False
    inference_hacks_soft_priors: bool = False
    inference_hacks_no_spouse: bool = False
    inference_hacks_no_negative_translations: bool = False

    # === LOGGING ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str = ""
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Field validators ---

    @field_validator("inference_prior")
    @classmethod
    def validate_prior(cls, v: float) -> float:
        """INFERENCE_PRIOR must be a probability strictly inside (0, 1)."""
        if not 0.0 < v < 1.0:
            raise ValueError("inference_prior must be in (0, 1)")
        return v

    @field_validator("inference_acceptance_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("inference_acceptance_threshold must be in [0, 1]")
        return v

    @field_validator("inference_gibbs_threads")
    @classmethod
    def validate_threads(cls, v: int) -> int:
        if v < 1:
            raise ValueError("inference_gibbs_threads must be >= 1")
        return v

    @field_validator("inference_gibbs_samples", "inference_depth", "log_retention")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.inference_hacks_always_true and self.inference_hacks_soft_priors:
            errors.append(
                "INFERENCE_HACKS_ALWAYS_TRUE and INFERENCE_HACKS_SOFT_PRIORS "
                "are mutually exclusive"
            )

        if self.inference_do_hillclimb and not self.inference_do_map:
            errors.append("INFERENCE_DO_HILLCLIMB requires INFERENCE_DO_MAP")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def inference_rules_files_list(self) -> list[str]:
        """Parse comma-separated rule file paths."""
        return [f.strip() for f in self.inference_rules_files.split(",") if f.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is invalid or inconsistent.
    """
    from pydantic import ValidationError

    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
