"""
Distance, confidence and uncertainty for a pair of stabilized points.

World frame is y-up, meters. Horizontal distances use the x/z plane only;
vertical distances use |dy| only.
"""
from typing import Optional

import numpy as np

from willitfit.config import MeasurementConfig
from willitfit.contracts import (
    M_TO_CM,
    HitQuality,
    MeasurementKind,
    MeasurementResult,
    StabilizedPoint,
)


def horizontal_distance_m(a: StabilizedPoint, b: StabilizedPoint) -> float:
    d = b.as_array() - a.as_array()
    return float(np.hypot(d[0], d[2]))


def vertical_distance_m(a: StabilizedPoint, b: StabilizedPoint) -> float:
    return abs(float(b.position[1]) - float(a.position[1]))


def stability_factor(spread_a_cm: float, spread_b_cm: float) -> float:
    """Step function of the mean stability spread."""
    avg = (spread_a_cm + spread_b_cm) / 2.0
    if avg < 0.5:
        return 1.0
    if avg < 1.0:
        return 0.9
    if avg < 1.5:
        return 0.8
    return 0.7


def measure_between(
    start: StabilizedPoint,
    end: StabilizedPoint,
    dimension: str,
    kind: MeasurementKind,
    config: Optional[MeasurementConfig] = None,
) -> MeasurementResult:
    """Combine two endpoints into a MeasurementResult.

    Confidence = mean tracking confidence x hit-quality multiplier x
    stability factor, clamped to [0, 1]. Uncertainty = base + mean spread
    + hit-quality addend.
    """
    if config is None:
        config = MeasurementConfig()

    if kind is MeasurementKind.HORIZONTAL:
        distance_m = horizontal_distance_m(start, end)
    else:
        distance_m = vertical_distance_m(start, end)

    quality = HitQuality.worse(start.hit_quality, end.hit_quality)

    tracking = (start.tracking_confidence + end.tracking_confidence) / 2.0
    confidence = tracking * quality.confidence_multiplier * stability_factor(
        start.stability_spread_cm, end.stability_spread_cm
    )
    confidence = min(max(confidence, 0.0), 1.0)

    uncertainty = (
        config.base_uncertainty_cm
        + (start.stability_spread_cm + end.stability_spread_cm) / 2.0
        + quality.uncertainty_cm
    )

    return MeasurementResult(
        dimension=dimension,
        value_cm=distance_m * M_TO_CM,
        uncertainty_cm=uncertainty,
        confidence_score=confidence,
        hit_quality=quality,
    )
