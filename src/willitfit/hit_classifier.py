"""
Hit classification and priority hit selection.

Raw hit candidates come from the sensing subsystem. Each one is classified
into a HitQuality tier, and among several candidates for the same screen
anchor the most reliable one is picked:

1. a hit inside already-reconstructed plane geometry,
2. a depth-sensor point,
3. any remaining feature point or plane hit,
4. the first candidate.

Strict mode only accepts tier 1.
"""
from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Point, Polygon

from willitfit.contracts import HitQuality, PlaneAlignment, ScreenPoint, Vec3
from willitfit.sampling import SensingSession


class TrackableKind(Enum):
    """What the sensing subsystem hit."""
    PLANE = "plane"
    DEPTH_POINT = "depth_point"
    FEATURE_POINT = "feature_point"
    OTHER = "other"


class PlaneOrientation(Enum):
    HORIZONTAL_UPWARD = "horizontal_upward"
    HORIZONTAL_DOWNWARD = "horizontal_downward"
    VERTICAL = "vertical"

    @property
    def is_horizontal(self) -> bool:
        return self is not PlaneOrientation.VERTICAL


@dataclass(frozen=True)
class DetectedPlane:
    """A reconstructed plane bounded by a polygon in its local 2D frame."""
    orientation: PlaneOrientation
    origin: Vec3                  # point on the plane, local (0, 0)
    basis_u: Vec3                 # first in-plane axis
    basis_v: Vec3                 # second in-plane axis
    polygon: Polygon              # boundary in (u, v) meters

    def project_to_local(self, position: Vec3) -> Tuple[float, float]:
        d = np.asarray(position, dtype=float) - np.asarray(self.origin, dtype=float)
        return (float(d @ np.asarray(self.basis_u, dtype=float)),
                float(d @ np.asarray(self.basis_v, dtype=float)))

    def contains(self, position: Vec3) -> bool:
        """Point-in-polygon test for a world position on this plane."""
        u, v = self.project_to_local(position)
        return bool(self.polygon.covers(Point(u, v)))

    @classmethod
    def horizontal(cls, height: float, polygon_xz: Sequence[Tuple[float, float]],
                   upward: bool = True) -> "DetectedPlane":
        """Floor/ceiling plane at a given height with an outline in world x/z."""
        return cls(
            orientation=(PlaneOrientation.HORIZONTAL_UPWARD if upward
                         else PlaneOrientation.HORIZONTAL_DOWNWARD),
            origin=(0.0, float(height), 0.0),
            basis_u=(1.0, 0.0, 0.0),
            basis_v=(0.0, 0.0, 1.0),
            polygon=Polygon(polygon_xz),
        )

    @classmethod
    def vertical(cls, origin: Vec3, normal_xz: Tuple[float, float],
                 polygon_uv: Sequence[Tuple[float, float]]) -> "DetectedPlane":
        """Wall plane through origin; u runs along the wall, v is up."""
        nx, nz = normal_xz
        norm = float(np.hypot(nx, nz))
        if norm < 1e-9:
            raise ValueError("Wall normal must have a horizontal component")
        return cls(
            orientation=PlaneOrientation.VERTICAL,
            origin=tuple(float(c) for c in origin),
            basis_u=(-nz / norm, 0.0, nx / norm),
            basis_v=(0.0, 1.0, 0.0),
            polygon=Polygon(polygon_uv),
        )


@dataclass(frozen=True)
class HitCandidate:
    """One raw hit returned by the sensing subsystem."""
    kind: TrackableKind
    position: Vec3
    plane: Optional[DetectedPlane] = None

    @property
    def in_plane_polygon(self) -> bool:
        return (self.kind is TrackableKind.PLANE
                and self.plane is not None
                and self.plane.contains(self.position))


def classify_hit(candidate: HitCandidate) -> HitQuality:
    """Map a raw hit onto its quality tier. Total and side-effect free."""
    if candidate.in_plane_polygon:
        return HitQuality.EXISTING_PLANE
    if candidate.kind is TrackableKind.DEPTH_POINT:
        return HitQuality.DEPTH_POINT
    return HitQuality.ESTIMATED_SURFACE


def matches_alignment(candidate: HitCandidate, alignment: PlaneAlignment) -> bool:
    """Only planes are filtered by orientation; other hits always match."""
    if alignment is PlaneAlignment.ANY:
        return True
    if candidate.kind is not TrackableKind.PLANE or candidate.plane is None:
        return True
    if alignment is PlaneAlignment.HORIZONTAL:
        return candidate.plane.orientation.is_horizontal
    return candidate.plane.orientation is PlaneOrientation.VERTICAL


def select_priority_hit(
    candidates: Sequence[HitCandidate],
    alignment: PlaneAlignment,
    strict: bool = False,
) -> Optional[HitCandidate]:
    """Pick the most reliable candidate, or None.

    When nothing survives the alignment filter, lenient mode falls back to
    the first unfiltered candidate.
    """
    if not candidates:
        return None

    filtered = [c for c in candidates if matches_alignment(c, alignment)]
    if not filtered:
        return None if strict else candidates[0]

    for c in filtered:
        if c.in_plane_polygon:
            return c
    if strict:
        return None

    for c in filtered:
        if c.kind is TrackableKind.DEPTH_POINT:
            return c
    for c in filtered:
        if c.kind in (TrackableKind.FEATURE_POINT, TrackableKind.PLANE):
            return c
    return filtered[0]


class HitTestSensingSession(SensingSession):
    """Sensing session built on a raw multi-candidate hit test.

    Subclasses supply tracking_quality() and hit_test(); the priority
    policy and classification are layered on top here.
    """

    @abstractmethod
    def hit_test(self, anchor: ScreenPoint) -> List[HitCandidate]:
        """All raw candidates under a screen anchor, nearest first."""
        ...

    def priority_hit_test(
        self,
        anchor: ScreenPoint,
        alignment: PlaneAlignment,
        strict: bool,
    ) -> Optional[Tuple[Vec3, HitQuality]]:
        hit = select_priority_hit(self.hit_test(anchor), alignment, strict=strict)
        if hit is None:
            return None
        return hit.position, classify_hit(hit)
