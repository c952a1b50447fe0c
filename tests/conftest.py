"""
Shared test fixtures for the measurement pipeline tests.
"""
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from willitfit.contracts import (
    HitQuality,
    MeasurementResult,
    PlaneAlignment,
    Product,
    StabilizedPoint,
    TrackingQuality,
)
from willitfit.sampling import SensingSession


class FakeClock:
    """Manual clock; sleep() advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class ScriptedSensing(SensingSession):
    """Sensing session that replays scripted tracking states and hits.

    Positions and qualities are cycled per hit test; tracking states are
    consumed one per poll and the last one repeats.
    """

    def __init__(
        self,
        positions: Sequence[Tuple[float, float, float]] = (),
        quality: Union[HitQuality, Sequence[HitQuality]] = HitQuality.EXISTING_PLANE,
        tracking: Union[TrackingQuality, Sequence[TrackingQuality]] = TrackingQuality.GOOD,
        strict_upfront_hit: bool = True,
    ):
        self.positions = list(positions)
        self.qualities = [quality] if isinstance(quality, HitQuality) else list(quality)
        self.tracking = [tracking] if isinstance(tracking, TrackingQuality) else list(tracking)
        self.strict_upfront_hit = strict_upfront_hit
        self.hit_calls: List[Tuple[PlaneAlignment, bool]] = []
        self.tracking_polls = 0
        self._hit_index = 0

    def tracking_quality(self) -> TrackingQuality:
        index = min(self.tracking_polls, len(self.tracking) - 1)
        self.tracking_polls += 1
        return self.tracking[index]

    def priority_hit_test(self, anchor, alignment, strict):
        self.hit_calls.append((alignment, strict))
        if strict and len(self.hit_calls) == 1 and not self.strict_upfront_hit:
            return None
        if not self.positions:
            return None
        i = self._hit_index
        self._hit_index += 1
        position = self.positions[i % len(self.positions)]
        quality = self.qualities[i % len(self.qualities)]
        return position, quality


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_point():
    """Factory for StabilizedPoint with sensible defaults."""

    def _make(
        x: float = 0.0,
        y: float = 0.0,
        z: float = 0.0,
        quality: HitQuality = HitQuality.EXISTING_PLANE,
        spread_cm: float = 0.0,
        tracking: float = 1.0,
    ) -> StabilizedPoint:
        return StabilizedPoint(
            position=(x, y, z),
            hit_quality=quality,
            stability_spread_cm=spread_cm,
            tracking_confidence=tracking,
            sample_count=20,
        )

    return _make


@pytest.fixture
def make_result():
    """Factory for MeasurementResult with high-confidence defaults."""

    def _make(
        dimension: str,
        value_cm: float,
        uncertainty_cm: float = 0.5,
        confidence: float = 1.0,
        quality: HitQuality = HitQuality.EXISTING_PLANE,
    ) -> MeasurementResult:
        return MeasurementResult(
            dimension=dimension,
            value_cm=value_cm,
            uncertainty_cm=uncertainty_cm,
            confidence_score=confidence,
            hit_quality=quality,
        )

    return _make


@pytest.fixture
def cabinet_product():
    """A 90x200x60cm product that does not rotate."""
    return Product(
        id="cabinet-1",
        name="Tall Cabinet",
        category="Furniture",
        width_cm=90.0,
        height_cm=200.0,
        depth_cm=60.0,
    )


@pytest.fixture
def scripted_sensing():
    return ScriptedSensing
