"""Public API for the will-it-fit measurement pipeline."""

from willitfit.catalog import get_product, load_products, products_by_category
from willitfit.config import FitConfig, load_config
from willitfit.contracts import (
    HitQuality,
    MeasurementMode,
    MeasurementResult,
    Product,
    ProtocolStep,
    StabilizedPoint,
    Verdict,
    VerdictKind,
)
from willitfit.flow_controller import MeasurementFlowController
from willitfit.hit_classifier import (
    DetectedPlane,
    HitCandidate,
    HitTestSensingSession,
    TrackableKind,
    classify_hit,
    select_priority_hit,
)
from willitfit.sampling import PointSampler, SensingSession
from willitfit.session import MeasurementSession
from willitfit.verdict_engine import evaluate, suggest_rotation

__all__ = [
    "DetectedPlane",
    "FitConfig",
    "HitCandidate",
    "HitQuality",
    "HitTestSensingSession",
    "MeasurementFlowController",
    "MeasurementMode",
    "MeasurementResult",
    "MeasurementSession",
    "PointSampler",
    "Product",
    "ProtocolStep",
    "SensingSession",
    "StabilizedPoint",
    "TrackableKind",
    "Verdict",
    "VerdictKind",
    "classify_hit",
    "evaluate",
    "get_product",
    "load_config",
    "load_products",
    "products_by_category",
    "select_priority_hit",
    "suggest_rotation",
]
