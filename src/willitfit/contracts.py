"""Contracts shared by the measurement pipeline: enums, points, results, verdicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
ScreenPoint = Tuple[float, float]

M_TO_CM = 100.0


class MeasurementError(Exception):
    """Base exception for measurement pipeline errors."""
    pass


class MeasurementIncompleteError(MeasurementError):
    """A verdict was requested before every dimension was measured."""
    pass


class HitQuality(Enum):
    """Reliability tier of a hit test, best first.

    Each tier carries a confidence multiplier and an uncertainty addend (cm).
    """

    EXISTING_PLANE = ("existing_plane", 1.0, 0.0)
    DEPTH_POINT = ("depth_point", 0.85, 0.5)
    ESTIMATED_SURFACE = ("estimated_surface", 0.6, 1.5)

    def __init__(self, key: str, confidence_multiplier: float, uncertainty_cm: float):
        self.key = key
        self.confidence_multiplier = confidence_multiplier
        self.uncertainty_cm = uncertainty_cm

    @staticmethod
    def worse(a: "HitQuality", b: "HitQuality") -> "HitQuality":
        """Return the tier with the lower confidence multiplier."""
        return a if a.confidence_multiplier < b.confidence_multiplier else b


class PlaneAlignment(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    ANY = "any"


class TrackingQuality(Enum):
    """Tracking state reported by the sensing subsystem."""

    GOOD = ("good", 1.0)
    DEGRADED = ("degraded", 0.5)
    STOPPED = ("stopped", 0.0)

    def __init__(self, key: str, confidence: float):
        self.key = key
        self.confidence = confidence


class MeasurementMode(Enum):
    DOOR = "door"
    SPACE = "space"
    VIRTUAL_PLACEMENT = "virtual_placement"


class MeasurementKind(Enum):
    """Horizontal ignores the vertical offset; vertical keeps only it."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class ConfidenceLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VerdictKind(Enum):
    PASS = "pass"
    FAIL = "fail"
    NOT_SURE = "not_sure"


class ProtocolStep(Enum):
    """One tap in a measurement protocol, with its fixed configuration."""

    DOOR_BOTTOM_LEFT = (
        "door_bottom_left", "Tap BOTTOM-LEFT corner of door", PlaneAlignment.HORIZONTAL, True,
    )
    DOOR_BOTTOM_RIGHT = (
        "door_bottom_right", "Tap BOTTOM-RIGHT corner of door", PlaneAlignment.HORIZONTAL, True,
    )
    DOOR_TOP_LEFT = (
        "door_top_left", "Tap TOP-LEFT corner of door", PlaneAlignment.VERTICAL, False,
    )
    SPACE_WIDTH_LEFT = ("space_width_left", "Tap LEFT wall", PlaneAlignment.VERTICAL, False)
    SPACE_WIDTH_RIGHT = ("space_width_right", "Tap RIGHT wall", PlaneAlignment.VERTICAL, False)
    SPACE_DEPTH_FRONT = ("space_depth_front", "Tap FRONT wall", PlaneAlignment.VERTICAL, False)
    SPACE_DEPTH_BACK = ("space_depth_back", "Tap BACK wall", PlaneAlignment.VERTICAL, False)
    SPACE_HEIGHT_FLOOR = ("space_height_floor", "Tap FLOOR", PlaneAlignment.HORIZONTAL, True)
    # Ceilings are hard to hit, so estimated surfaces are allowed.
    SPACE_HEIGHT_CEILING = ("space_height_ceiling", "Tap CEILING", PlaneAlignment.ANY, False)
    COMPLETE = ("complete", "Measurement complete!", PlaneAlignment.ANY, False)

    def __init__(
        self,
        key: str,
        instruction: str,
        alignment: PlaneAlignment,
        requires_plane_hit: bool,
    ):
        self.key = key
        self.instruction = instruction
        self.alignment = alignment
        self.requires_plane_hit = requires_plane_hit


PROTOCOLS: Dict[MeasurementMode, Tuple[ProtocolStep, ...]] = {
    MeasurementMode.DOOR: (
        ProtocolStep.DOOR_BOTTOM_LEFT,
        ProtocolStep.DOOR_BOTTOM_RIGHT,
        ProtocolStep.DOOR_TOP_LEFT,
    ),
    MeasurementMode.SPACE: (
        ProtocolStep.SPACE_WIDTH_LEFT,
        ProtocolStep.SPACE_WIDTH_RIGHT,
        ProtocolStep.SPACE_DEPTH_FRONT,
        ProtocolStep.SPACE_DEPTH_BACK,
        ProtocolStep.SPACE_HEIGHT_FLOOR,
        ProtocolStep.SPACE_HEIGHT_CEILING,
    ),
    MeasurementMode.VIRTUAL_PLACEMENT: (),
}


@dataclass(frozen=True)
class StabilizedPoint:
    """Median of one sampling run, in meters."""

    position: Vec3
    hit_quality: HitQuality
    stability_spread_cm: float
    tracking_confidence: float
    sample_count: int = 0

    def __post_init__(self):
        if len(self.position) != 3:
            raise ValueError(f"StabilizedPoint.position must have 3 components, got {self.position!r}")
        if self.stability_spread_cm < 0:
            raise ValueError("StabilizedPoint.stability_spread_cm must be >= 0")
        if not 0.0 <= self.tracking_confidence <= 1.0:
            raise ValueError("StabilizedPoint.tracking_confidence must be in [0, 1]")

    def as_array(self) -> np.ndarray:
        return np.asarray(self.position, dtype=float)


@dataclass(frozen=True)
class MeasurementResult:
    dimension: str
    value_cm: float
    uncertainty_cm: float
    confidence_score: float
    hit_quality: HitQuality

    @property
    def confidence_level(self) -> ConfidenceLevel:
        if self.confidence_score >= 0.8:
            return ConfidenceLevel.HIGH
        if self.confidence_score >= 0.6:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    @property
    def formatted_value(self) -> str:
        return f"{int(self.value_cm)} cm"

    @property
    def formatted_uncertainty(self) -> str:
        return f"+/- {self.uncertainty_cm:.1f} cm"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension,
            "value_cm": float(self.value_cm),
            "uncertainty_cm": float(self.uncertainty_cm),
            "confidence_score": float(self.confidence_score),
            "confidence_level": self.confidence_level.value,
            "hit_quality": self.hit_quality.key,
        }


@dataclass(frozen=True)
class DoorMeasurement:
    width: Optional[MeasurementResult] = None
    height: Optional[MeasurementResult] = None

    DIMENSIONS = ("width", "height")

    @property
    def is_complete(self) -> bool:
        return self.width is not None and self.height is not None

    def missing(self) -> List[str]:
        return [name for name in self.DIMENSIONS if getattr(self, name) is None]


@dataclass(frozen=True)
class SpaceMeasurement:
    width: Optional[MeasurementResult] = None
    depth: Optional[MeasurementResult] = None
    height: Optional[MeasurementResult] = None

    DIMENSIONS = ("width", "depth", "height")

    @property
    def is_complete(self) -> bool:
        return self.width is not None and self.depth is not None and self.height is not None

    def missing(self) -> List[str]:
        return [name for name in self.DIMENSIONS if getattr(self, name) is None]


@dataclass(frozen=True)
class Product:
    """A product to fit, dimensions in centimeters."""

    id: str
    name: str
    category: str
    width_cm: float
    height_cm: float
    depth_cm: float
    allow_rotate: bool = False
    image_url: Optional[str] = None

    @property
    def can_mount_on_wall(self) -> bool:
        return self.category.lower() == "tv"

    @property
    def dimensions_text(self) -> str:
        return f"{int(self.width_cm)} x {int(self.height_cm)} x {int(self.depth_cm)} cm"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Product":
        try:
            product = cls(
                id=str(payload["id"]),
                name=str(payload.get("name", payload["id"])),
                category=str(payload.get("category", "")),
                width_cm=float(payload["width_cm"]),
                height_cm=float(payload["height_cm"]),
                depth_cm=float(payload["depth_cm"]),
                allow_rotate=bool(payload.get("allow_rotate", False)),
                image_url=payload.get("image_url"),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed product entry: {payload!r}") from exc
        except ValueError as exc:
            raise ValueError(f"Malformed product entry: {payload!r} ({exc})") from exc
        for name in ("width_cm", "height_cm", "depth_cm"):
            if getattr(product, name) <= 0:
                raise ValueError(f"Product {product.id} has non-positive {name}")
        return product


_VERDICT_TITLES = {
    VerdictKind.PASS: "WILL FIT",
    VerdictKind.FAIL: "WON'T FIT",
    VerdictKind.NOT_SURE: "NOT SURE",
}


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    reason: str
    clearances_cm: Dict[str, float] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return _VERDICT_TITLES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.kind.value,
            "title": self.title,
            "reason": self.reason,
            "clearances_cm": {k: float(v) for k, v in self.clearances_cm.items()},
        }
