"""
Per-run measurement session.

Glue between a sensing session, the point sampler, the flow controller
and the verdict engine, shaped for a UI layer to poll: one tap starts one
sampling run, a completed run feeds the controller, and the verdict is
computed as soon as the protocol completes.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from willitfit.config import FitConfig
from willitfit.contracts import (
    DoorMeasurement,
    MeasurementIncompleteError,
    MeasurementMode,
    ProtocolStep,
    Product,
    ScreenPoint,
    TrackingQuality,
    Verdict,
)
from willitfit.flow_controller import MeasurementFlowController, PartialMeasurement
from willitfit.sampling import (
    PointSampler,
    SamplingComplete,
    SamplingEvent,
    SamplingFailed,
    SamplingOutcome,
    SamplingProgress,
    SamplingTask,
    SensingSession,
)
from willitfit.verdict_engine import evaluate, suggest_rotation

logger = logging.getLogger(__name__)


class SamplingStatus(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    FAILED = "failed"


@dataclass(frozen=True)
class SamplingState:
    status: SamplingStatus = SamplingStatus.IDLE
    progress: float = 0.0
    reason: Optional[str] = None


class MeasurementSession:
    """State for one product being measured in one mode."""

    def __init__(
        self,
        sensing: SensingSession,
        product: Product,
        mode: MeasurementMode = MeasurementMode.DOOR,
        config: Optional[FitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or FitConfig()
        self.config.validate()
        self.sensing = sensing
        self.product = product
        self.mode = mode
        self.controller = MeasurementFlowController(mode, self.config.measurement)
        self.sampler = PointSampler(sensing, self.config.sampling, clock=clock)
        # Never held while calling into the sampler: its worker delivers
        # events under the task lock and then takes this one.
        self._lock = threading.RLock()
        self._sampling_state = SamplingState()
        self._verdict: Optional[Verdict] = None
        self._task: Optional[SamplingTask] = None

    # ── Read side ───────────────────────────────────────────────────────────

    @property
    def current_step(self) -> ProtocolStep:
        return self.controller.current_step

    @property
    def measurement(self) -> Optional[PartialMeasurement]:
        return self.controller.measurement

    @property
    def is_complete(self) -> bool:
        return self.controller.is_complete

    @property
    def sampling_state(self) -> SamplingState:
        return self._sampling_state

    @property
    def verdict(self) -> Optional[Verdict]:
        return self._verdict

    @property
    def rotation_may_help(self) -> bool:
        measurement = self.controller.measurement
        if not isinstance(measurement, DoorMeasurement):
            return False
        return suggest_rotation(measurement, self.product, self.config.verdict)

    def evaluate(self) -> Verdict:
        """Verdict for the completed run."""
        measurement = self.controller.measurement
        if not self.controller.is_complete or measurement is None:
            raise MeasurementIncompleteError(
                f"{self.mode.value} measurement is not complete "
                f"(current step: {self.controller.current_step.key})"
            )
        return evaluate(measurement, self.product, self.config.verdict)

    # ── Commands ────────────────────────────────────────────────────────────

    def handle_tap(self, anchor: ScreenPoint) -> Optional[SamplingTask]:
        """Start sampling for the current step; None when the tap is ignored."""
        with self._lock:
            if self._sampling_state.status is SamplingStatus.SAMPLING:
                return None
            if self.controller.is_complete:
                return None
            if self.sensing.tracking_quality() is not TrackingQuality.GOOD:
                logger.debug("Tap ignored: tracking is not good")
                return None
            self.controller.clear_consistency_error()
            step = self.controller.current_step
            self._sampling_state = SamplingState(SamplingStatus.SAMPLING, 0.0)

        task = self.sampler.start_sampling(
            anchor, step.alignment, step.requires_plane_hit, self._on_sampling_event
        )
        self._task = task
        return task

    def wait_for_sampling(self, timeout: Optional[float] = None) -> Optional[SamplingOutcome]:
        if self._task is None:
            return None
        return self._task.join(timeout)

    def cancel_sampling(self) -> None:
        self.sampler.cancel()
        with self._lock:
            self._sampling_state = SamplingState()

    def retry_current_point(self) -> None:
        with self._lock:
            self._sampling_state = SamplingState()

    def reset_measurement(self) -> None:
        self.sampler.cancel()
        with self._lock:
            self.controller.reset()
            self.controller.start_flow(self.mode)
            self._verdict = None
            self._sampling_state = SamplingState()

    def _on_sampling_event(self, event: SamplingEvent) -> None:
        with self._lock:
            if isinstance(event, SamplingProgress):
                self._sampling_state = SamplingState(SamplingStatus.SAMPLING, event.fraction)
            elif isinstance(event, SamplingFailed):
                self._sampling_state = SamplingState(SamplingStatus.FAILED, reason=event.reason)
            elif isinstance(event, SamplingComplete):
                snapshot = self.controller.submit_point(event.point)
                if snapshot.consistency_error is not None:
                    self._sampling_state = SamplingState(
                        SamplingStatus.FAILED, reason=snapshot.consistency_error
                    )
                else:
                    self._sampling_state = SamplingState()
                if snapshot.is_complete and snapshot.measurement is not None:
                    self._verdict = evaluate(
                        snapshot.measurement, self.product, self.config.verdict
                    )
