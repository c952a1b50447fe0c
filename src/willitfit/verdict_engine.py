"""
Fit verdicts for completed door and space measurements.

Evaluation is conservative. Anything the measurements cannot back up
(missing dimensions, estimated-only surfaces, low confidence, clearance
inside the safety margin) is NOT_SURE. FAIL is only reported when the
product provably does not fit, always with the overage in centimeters.
"""
import logging
from typing import Dict, List, Optional, Tuple, Union

from willitfit.config import VerdictConfig
from willitfit.contracts import (
    DoorMeasurement,
    HitQuality,
    MeasurementResult,
    Product,
    SpaceMeasurement,
    Verdict,
    VerdictKind,
)

logger = logging.getLogger(__name__)


def _cm(value: float) -> str:
    """Whole centimeters, truncated so clearances are never overstated."""
    return str(int(value))


def used_only_estimated_surface(result: MeasurementResult) -> bool:
    return result.hit_quality is HitQuality.ESTIMATED_SURFACE


def effective_product_width(product: Product) -> float:
    """Width presented to a doorway; rotatable products go through on their narrow side."""
    if product.allow_rotate:
        return min(product.width_cm, product.depth_cm)
    return product.width_cm


def _not_sure(reason: str, clearances: Optional[Dict[str, float]] = None) -> Verdict:
    return Verdict(VerdictKind.NOT_SURE, reason, dict(clearances or {}))


def _evaluate_clearances(
    checks: List[Tuple[str, MeasurementResult, float]],
    place: str,
    config: VerdictConfig,
) -> Verdict:
    """Shared tail of door/space evaluation.

    checks: (dimension, measured result, product size in cm), in report order.
    """
    clearances = {name: result.value_cm - size for name, result, size in checks}

    for name, result, size in checks:
        clearance = clearances[name]
        if clearance < 0:
            return Verdict(
                VerdictKind.FAIL,
                f"Product {name} ({_cm(size)}cm) exceeds {place} by {_cm(abs(clearance))}cm",
                clearances,
            )

    overall_confidence = min(result.confidence_score for _, result, _ in checks)
    if overall_confidence < config.min_pass_confidence:
        return _not_sure("Low confidence measurement. Try again with better lighting.", clearances)

    if all(
        clearances[name] >= config.safety_margin_cm + result.uncertainty_cm
        for name, result, _ in checks
    ):
        return Verdict(
            VerdictKind.PASS,
            f"Product fits with {_cm(min(clearances.values()))}cm clearance",
            clearances,
        )

    return _not_sure("Tight fit - measure with tape measure to confirm.", clearances)


def verdict_for_door(
    door: DoorMeasurement,
    product: Product,
    config: Optional[VerdictConfig] = None,
) -> Verdict:
    if config is None:
        config = VerdictConfig()

    if door.width is None:
        return _not_sure("Incomplete measurement - missing width")
    if door.height is None:
        return _not_sure("Incomplete measurement - missing height")

    if used_only_estimated_surface(door.width) or used_only_estimated_surface(door.height):
        return _not_sure(
            "Measurement used estimated surface (no plane detected). "
            "Scan the floor/door frame more slowly and try again."
        )

    return _evaluate_clearances(
        [
            ("width", door.width, effective_product_width(product)),
            ("height", door.height, product.height_cm),
        ],
        place="door",
        config=config,
    )


def verdict_for_space(
    space: SpaceMeasurement,
    product: Product,
    config: Optional[VerdictConfig] = None,
) -> Verdict:
    if config is None:
        config = VerdictConfig()

    for name in SpaceMeasurement.DIMENSIONS:
        if getattr(space, name) is None:
            return _not_sure(f"Incomplete measurement - missing {name}")

    # Ceiling height may come from an estimated surface; walls may not.
    if used_only_estimated_surface(space.width) or used_only_estimated_surface(space.depth):
        return _not_sure(
            "Wall measurement used estimated surface. Scan the walls more slowly and try again."
        )

    return _evaluate_clearances(
        [
            ("width", space.width, product.width_cm),
            ("depth", space.depth, product.depth_cm),
            ("height", space.height, product.height_cm),
        ],
        place="space",
        config=config,
    )


def evaluate(
    measurement: Union[DoorMeasurement, SpaceMeasurement],
    product: Product,
    config: Optional[VerdictConfig] = None,
) -> Verdict:
    """Verdict for a door or space measurement set."""
    if isinstance(measurement, DoorMeasurement):
        verdict = verdict_for_door(measurement, product, config)
    elif isinstance(measurement, SpaceMeasurement):
        verdict = verdict_for_space(measurement, product, config)
    else:
        raise TypeError(f"Cannot evaluate {type(measurement).__name__}")

    logger.info("Verdict for %s: %s (%s)", product.id, verdict.kind.value, verdict.reason)
    return verdict


def suggest_rotation(
    door: DoorMeasurement,
    product: Product,
    config: Optional[VerdictConfig] = None,
) -> bool:
    """True when turning the product on its depth would get it through the door.

    Informational only; the verdict is unaffected.
    """
    if config is None:
        config = VerdictConfig()
    if not product.allow_rotate or door.width is None or door.height is None:
        return False

    normal_clearance = door.width.value_cm - product.width_cm
    rotated_clearance = door.width.value_cm - product.depth_cm
    return normal_clearance < 0 and rotated_clearance >= config.safety_margin_cm
