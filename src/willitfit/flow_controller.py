"""
Measurement protocol state machine.

The core is a pure transition, advance(state, point) -> (state, effects).
MeasurementFlowController holds the current state for one run and is the
single writer for it.

Protocol steps come in pairs: the first tap of a pair is stored, the second
is combined with it into a MeasurementResult. The door's top-left corner
pairs with the stored bottom-left corner for the height.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple, Union

from willitfit.config import MeasurementConfig
from willitfit.contracts import (
    M_TO_CM,
    PROTOCOLS,
    DoorMeasurement,
    MeasurementKind,
    MeasurementMode,
    MeasurementResult,
    ProtocolStep,
    SpaceMeasurement,
    StabilizedPoint,
)
from willitfit.measurement_model import measure_between

logger = logging.getLogger(__name__)

PartialMeasurement = Union[DoorMeasurement, SpaceMeasurement]


@dataclass(frozen=True)
class PairRule:
    anchor: ProtocolStep
    dimension: str
    kind: MeasurementKind
    check_level: bool = False


PAIR_RULES: Dict[ProtocolStep, PairRule] = {
    ProtocolStep.DOOR_BOTTOM_RIGHT: PairRule(
        ProtocolStep.DOOR_BOTTOM_LEFT, "width", MeasurementKind.HORIZONTAL, check_level=True
    ),
    ProtocolStep.DOOR_TOP_LEFT: PairRule(
        ProtocolStep.DOOR_BOTTOM_LEFT, "height", MeasurementKind.VERTICAL
    ),
    ProtocolStep.SPACE_WIDTH_RIGHT: PairRule(
        ProtocolStep.SPACE_WIDTH_LEFT, "width", MeasurementKind.HORIZONTAL
    ),
    ProtocolStep.SPACE_DEPTH_BACK: PairRule(
        ProtocolStep.SPACE_DEPTH_FRONT, "depth", MeasurementKind.HORIZONTAL
    ),
    ProtocolStep.SPACE_HEIGHT_CEILING: PairRule(
        ProtocolStep.SPACE_HEIGHT_FLOOR, "height", MeasurementKind.VERTICAL
    ),
}


# ─── Effects ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PointStored:
    step: ProtocolStep


@dataclass(frozen=True)
class MeasurementRecorded:
    result: MeasurementResult


@dataclass(frozen=True)
class ConsistencyRejected:
    message: str
    difference_cm: float
    reset_to: ProtocolStep


@dataclass(frozen=True)
class FlowCompleted:
    measurement: Optional[PartialMeasurement]


FlowEffect = Union[PointStored, MeasurementRecorded, ConsistencyRejected, FlowCompleted]


# ─── State ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FlowState:
    mode: MeasurementMode
    step: ProtocolStep
    measurement: Optional[PartialMeasurement]
    anchors: Dict[ProtocolStep, StabilizedPoint] = field(default_factory=dict)
    consistency_error: Optional[str] = None
    is_complete: bool = False


def initial_state(mode: MeasurementMode) -> FlowState:
    steps = PROTOCOLS[mode]
    if mode is MeasurementMode.DOOR:
        measurement: Optional[PartialMeasurement] = DoorMeasurement()
    elif mode is MeasurementMode.SPACE:
        measurement = SpaceMeasurement()
    else:
        measurement = None
    return FlowState(
        mode=mode,
        step=steps[0] if steps else ProtocolStep.COMPLETE,
        measurement=measurement,
        is_complete=not steps,
    )


def next_step(mode: MeasurementMode, step: ProtocolStep) -> ProtocolStep:
    steps = PROTOCOLS[mode]
    index = steps.index(step)
    return steps[index + 1] if index + 1 < len(steps) else ProtocolStep.COMPLETE


def _anchor_still_needed(mode: MeasurementMode, after: ProtocolStep, anchor: ProtocolStep) -> bool:
    steps = PROTOCOLS[mode]
    remaining = steps[steps.index(after) + 1:]
    return any(s in PAIR_RULES and PAIR_RULES[s].anchor is anchor for s in remaining)


def level_error_message(difference_cm: float) -> str:
    return (f"Bottom points not level ({int(difference_cm)}cm difference). "
            "Re-tap both corners on flat floor.")


def advance(
    state: FlowState,
    point: StabilizedPoint,
    config: Optional[MeasurementConfig] = None,
) -> Tuple[FlowState, List[FlowEffect]]:
    """Apply one stabilized point to the current step."""
    if config is None:
        config = MeasurementConfig()

    step = state.step
    if state.is_complete or step is ProtocolStep.COMPLETE:
        return state, []

    rule = PAIR_RULES.get(step)
    if rule is None:
        anchors = dict(state.anchors)
        anchors[step] = point
        return (
            replace(state, step=next_step(state.mode, step), anchors=anchors,
                    consistency_error=None),
            [PointStored(step)],
        )

    start = state.anchors.get(rule.anchor)
    if start is None:
        logger.warning("No stored %s point for %s; point ignored", rule.anchor.key, step.key)
        return state, []

    if rule.check_level:
        dy_m = abs(float(point.position[1]) - float(start.position[1]))
        if dy_m > config.level_tolerance_m:
            difference_cm = dy_m * M_TO_CM
            message = level_error_message(difference_cm)
            anchors = {k: v for k, v in state.anchors.items() if k is not rule.anchor}
            return (
                replace(state, step=rule.anchor, anchors=anchors, consistency_error=message),
                [ConsistencyRejected(message, difference_cm, rule.anchor)],
            )

    result = measure_between(start, point, rule.dimension, rule.kind, config)
    measurement = replace(state.measurement, **{rule.dimension: result})
    following = next_step(state.mode, step)
    effects: List[FlowEffect] = [MeasurementRecorded(result)]

    if following is ProtocolStep.COMPLETE:
        effects.append(FlowCompleted(measurement))
        return (
            replace(state, step=following, measurement=measurement, anchors={},
                    consistency_error=None, is_complete=True),
            effects,
        )

    anchors = dict(state.anchors)
    if not _anchor_still_needed(state.mode, step, rule.anchor):
        anchors.pop(rule.anchor, None)
    return (
        replace(state, step=following, measurement=measurement, anchors=anchors,
                consistency_error=None),
        effects,
    )


# ─── Stateful adapter ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FlowSnapshot:
    current_step: ProtocolStep
    measurement: Optional[PartialMeasurement]
    consistency_error: Optional[str]
    is_complete: bool
    effects: Tuple[FlowEffect, ...] = ()


class MeasurementFlowController:
    """Owns the FlowState of one measurement run."""

    def __init__(
        self,
        mode: MeasurementMode = MeasurementMode.DOOR,
        config: Optional[MeasurementConfig] = None,
    ):
        self.config = config or MeasurementConfig()
        self.config.validate()
        self._state = initial_state(mode)

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def current_mode(self) -> MeasurementMode:
        return self._state.mode

    @property
    def current_step(self) -> ProtocolStep:
        return self._state.step

    @property
    def measurement(self) -> Optional[PartialMeasurement]:
        return self._state.measurement

    @property
    def is_complete(self) -> bool:
        return self._state.is_complete

    @property
    def consistency_error(self) -> Optional[str]:
        return self._state.consistency_error

    def snapshot(self, effects: Tuple[FlowEffect, ...] = ()) -> FlowSnapshot:
        return FlowSnapshot(
            current_step=self._state.step,
            measurement=self._state.measurement,
            consistency_error=self._state.consistency_error,
            is_complete=self._state.is_complete,
            effects=effects,
        )

    def start_flow(self, mode: MeasurementMode) -> FlowSnapshot:
        self._state = initial_state(mode)
        logger.info("Started %s flow at step %s", mode.value, self._state.step.key)
        return self.snapshot()

    def reset(self) -> FlowSnapshot:
        self._state = initial_state(self._state.mode)
        return self.snapshot()

    def submit_point(self, point: StabilizedPoint) -> FlowSnapshot:
        previous = self._state.step
        self._state, effects = advance(self._state, point, self.config)
        for effect in effects:
            if isinstance(effect, MeasurementRecorded):
                logger.info(
                    "Measured %s = %.1fcm (+/- %.1fcm, confidence %.2f)",
                    effect.result.dimension, effect.result.value_cm,
                    effect.result.uncertainty_cm, effect.result.confidence_score,
                )
            elif isinstance(effect, ConsistencyRejected):
                logger.warning("Rejected %s: %s", previous.key, effect.message)
            elif isinstance(effect, FlowCompleted):
                logger.info("%s flow complete", self._state.mode.value)
        return self.snapshot(tuple(effects))

    def clear_consistency_error(self) -> None:
        if self._state.consistency_error is not None:
            self._state = replace(self._state, consistency_error=None)
