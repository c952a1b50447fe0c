"""Tunable constants for sampling, measurement and verdicts."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplingConfig:
    """Time-windowed hit-test sampling."""

    window_ms: int = 750
    sample_interval_ms: int = 16  # ~60 Hz
    min_samples: int = 10
    max_stability_spread_cm: float = 1.5
    max_bad_tracking_frames: int = 10

    @property
    def window_s(self) -> float:
        return self.window_ms / 1000.0

    @property
    def sample_interval_s(self) -> float:
        return self.sample_interval_ms / 1000.0

    def validate(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("SamplingConfig.window_ms must be > 0")
        if self.sample_interval_ms <= 0:
            raise ValueError("SamplingConfig.sample_interval_ms must be > 0")
        if self.min_samples < 1:
            raise ValueError("SamplingConfig.min_samples must be >= 1")
        if self.max_stability_spread_cm < 0:
            raise ValueError("SamplingConfig.max_stability_spread_cm must be >= 0")
        if self.max_bad_tracking_frames < 0:
            raise ValueError("SamplingConfig.max_bad_tracking_frames must be >= 0")


@dataclass(frozen=True)
class MeasurementConfig:
    base_uncertainty_cm: float = 0.5
    level_tolerance_m: float = 0.03  # bottom door corners must agree within 3 cm

    def validate(self) -> None:
        if self.base_uncertainty_cm < 0:
            raise ValueError("MeasurementConfig.base_uncertainty_cm must be >= 0")
        if self.level_tolerance_m <= 0:
            raise ValueError("MeasurementConfig.level_tolerance_m must be > 0")


@dataclass(frozen=True)
class VerdictConfig:
    safety_margin_cm: float = 3.0
    min_pass_confidence: float = 0.7

    def validate(self) -> None:
        if self.safety_margin_cm < 0:
            raise ValueError("VerdictConfig.safety_margin_cm must be >= 0")
        if not 0.0 <= self.min_pass_confidence <= 1.0:
            raise ValueError("VerdictConfig.min_pass_confidence must be in [0, 1]")


def _coerce_number(key: str, value: Any, kind: type) -> Any:
    """All config values are numbers; ints must be whole, bools are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Config value '{key}' must be a number, got {value!r}")
    if kind is int:
        if not float(value).is_integer():
            raise ValueError(f"Config value '{key}' must be a whole number, got {value!r}")
        return int(value)
    return float(value)


@dataclass(frozen=True)
class FitConfig:
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    measurement: MeasurementConfig = field(default_factory=MeasurementConfig)
    verdict: VerdictConfig = field(default_factory=VerdictConfig)

    def validate(self) -> None:
        self.sampling.validate()
        self.measurement.validate()
        self.verdict.validate()

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FitConfig":
        sections = {
            "sampling": SamplingConfig,
            "measurement": MeasurementConfig,
            "verdict": VerdictConfig,
        }
        unknown = set(payload) - set(sections)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        kwargs = {}
        for name, section_cls in sections.items():
            overrides = payload.get(name) or {}
            if not isinstance(overrides, dict):
                raise ValueError(f"Config section '{name}' must be an object, got {overrides!r}")
            defaults = {f.name: f.default for f in fields(section_cls)}
            bad = set(overrides) - set(defaults)
            if bad:
                raise ValueError(f"Unknown keys in '{name}' config: {sorted(bad)}")
            kwargs[name] = section_cls(**{
                key: _coerce_number(f"{name}.{key}", value, type(defaults[key]))
                for key, value in overrides.items()
            })

        config = cls(**kwargs)
        config.validate()
        return config


def load_config(path: Optional[str] = None) -> FitConfig:
    """Load a FitConfig from a JSON file; defaults when no path is given."""
    if path is None:
        return FitConfig()

    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict):
        raise ValueError(f"Config file must contain a JSON object: {config_path}")

    config = FitConfig.from_dict(payload)
    logger.info("Loaded config overrides from %s", config_path)
    return config
