"""
Time-windowed point sampling against a sensing session.

A tap does not trust a single hit test. For a fixed window the anchor is
hit-tested at ~60 Hz, bad ticks are skipped, and the accepted samples are
reduced to a per-axis median plus a stability spread (the largest distance
of any sample from that median). The run yields progress events and ends
with exactly one terminal event, unless it is cancelled, in which case it
ends silently.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from willitfit.config import SamplingConfig
from willitfit.contracts import (
    M_TO_CM,
    HitQuality,
    PlaneAlignment,
    ScreenPoint,
    StabilizedPoint,
    TrackingQuality,
    Vec3,
)

logger = logging.getLogger(__name__)


class SensingSession(ABC):
    """What the sampler needs from the spatial tracking subsystem."""

    @abstractmethod
    def tracking_quality(self) -> TrackingQuality:
        """Current tracking state. Polled once per sample tick."""
        ...

    @abstractmethod
    def priority_hit_test(
        self,
        anchor: ScreenPoint,
        alignment: PlaneAlignment,
        strict: bool,
    ) -> Optional[Tuple[Vec3, HitQuality]]:
        """Best hit under a screen anchor, or None.

        In strict mode only hits inside reconstructed plane geometry count.
        """
        ...


class SamplingFailureKind(Enum):
    NO_PLANE = "no_plane"
    TRACKING_LOST = "tracking_lost"
    PLANE_UNRELIABLE = "plane_unreliable"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    UNSTABLE = "unstable"
    SENSING_ERROR = "sensing_error"
    LISTENER_ERROR = "listener_error"


@dataclass(frozen=True)
class SamplingProgress:
    fraction: float


@dataclass(frozen=True)
class SamplingComplete:
    point: StabilizedPoint


@dataclass(frozen=True)
class SamplingFailed:
    kind: SamplingFailureKind
    reason: str
    spread_cm: Optional[float] = None


SamplingEvent = Union[SamplingProgress, SamplingComplete, SamplingFailed]
SamplingOutcome = Union[SamplingComplete, SamplingFailed]


@dataclass(frozen=True)
class PointSample:
    position: Vec3
    hit_quality: HitQuality
    timestamp: float


def _surface_name(alignment: PlaneAlignment) -> str:
    return "floor" if alignment is PlaneAlignment.HORIZONTAL else "wall"


def primary_hit_quality(qualities: Sequence[HitQuality]) -> HitQuality:
    """Most frequent quality; ties go to the one seen first."""
    if not qualities:
        return HitQuality.ESTIMATED_SURFACE
    return Counter(qualities).most_common(1)[0][0]


def stabilize_samples(
    samples: Sequence[PointSample],
    config: SamplingConfig,
    tracking_confidence: float,
) -> Union[StabilizedPoint, SamplingFailed]:
    """Reduce accepted samples to one point, or fail when they scatter too much."""
    positions = np.array([s.position for s in samples], dtype=float)  # (N, 3)
    median = np.median(positions, axis=0)
    spread_cm = float(np.max(np.linalg.norm(positions - median, axis=1))) * M_TO_CM

    if spread_cm > config.max_stability_spread_cm:
        return SamplingFailed(
            kind=SamplingFailureKind.UNSTABLE,
            reason=f"Position unstable (+/- {spread_cm:.1f}cm). Hold steadier.",
            spread_cm=spread_cm,
        )

    return StabilizedPoint(
        position=(float(median[0]), float(median[1]), float(median[2])),
        hit_quality=primary_hit_quality([s.hit_quality for s in samples]),
        stability_spread_cm=spread_cm,
        tracking_confidence=tracking_confidence,
        sample_count=len(samples),
    )


def sampling_events(
    sensing: SensingSession,
    anchor: ScreenPoint,
    alignment: PlaneAlignment,
    require_plane: bool = False,
    config: Optional[SamplingConfig] = None,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] = time.sleep,
    cancel_event: Optional[threading.Event] = None,
) -> Iterator[SamplingEvent]:
    """Run one sampling window, yielding progress and a terminal event.

    Args:
        sensing: Source of tracking state and hit tests.
        anchor: Screen-space tap location.
        alignment: Plane alignment filter for hit tests.
        require_plane: Only accept hits inside reconstructed planes.
        config: Window, rate and acceptance thresholds.
        clock: Seconds, monotonic.
        sleep: Called between ticks with the interval in seconds.
        cancel_event: When set, the run stops at the next tick boundary
            without yielding a terminal event.
    """
    if config is None:
        config = SamplingConfig()

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    # Fail fast instead of burning the whole window on a missing plane.
    if require_plane and sensing.priority_hit_test(anchor, alignment, True) is None:
        surface = _surface_name(alignment)
        yield SamplingFailed(
            kind=SamplingFailureKind.NO_PLANE,
            reason=f"No {surface} plane detected. Scan the {surface} slowly, then tap again.",
        )
        return

    samples: List[PointSample] = []
    bad_frames = 0
    last_quality = TrackingQuality.STOPPED
    window = config.window_s
    start = clock()

    while clock() - start < window:
        if cancelled():
            logger.debug("Sampling cancelled after %d samples", len(samples))
            return

        last_quality = sensing.tracking_quality()
        if last_quality is not TrackingQuality.GOOD:
            bad_frames += 1
            if bad_frames > config.max_bad_tracking_frames:
                yield SamplingFailed(
                    kind=SamplingFailureKind.TRACKING_LOST,
                    reason="Tracking lost. Hold phone steadier and ensure good lighting.",
                )
                return
        else:
            bad_frames = 0
            hit = sensing.priority_hit_test(anchor, alignment, require_plane)
            if hit is not None:
                position, quality = hit
                if not (require_plane and quality is HitQuality.ESTIMATED_SURFACE):
                    samples.append(PointSample(
                        position=(float(position[0]), float(position[1]), float(position[2])),
                        hit_quality=quality,
                        timestamp=clock(),
                    ))

        fraction = (clock() - start) / window
        yield SamplingProgress(min(max(fraction, 0.0), 1.0))

        sleep(config.sample_interval_s)
        if cancelled():
            logger.debug("Sampling cancelled after %d samples", len(samples))
            return

    if len(samples) < config.min_samples:
        if require_plane:
            surface = _surface_name(alignment)
            yield SamplingFailed(
                kind=SamplingFailureKind.PLANE_UNRELIABLE,
                reason=f"Could not detect {surface} plane reliably. Scan the {surface} more slowly.",
            )
        else:
            yield SamplingFailed(
                kind=SamplingFailureKind.INSUFFICIENT_SAMPLES,
                reason=(f"Not enough samples ({len(samples)}/{config.min_samples}). "
                        "Try better lighting."),
            )
        return

    result = stabilize_samples(samples, config, last_quality.confidence)
    if isinstance(result, SamplingFailed):
        yield result
    else:
        yield SamplingComplete(result)


class SamplingTask:
    """One sampling run on a worker thread.

    Events go to the listener from the worker thread. Once cancel() has
    returned the listener is never called again for this task.
    """

    def __init__(
        self,
        make_events: Callable[[threading.Event], Iterator[SamplingEvent]],
        listener: Callable[[SamplingEvent], None],
    ):
        self._cancel_event = threading.Event()
        self._lock = threading.RLock()
        self._cancelled = False
        self._events = make_events(self._cancel_event)
        self._listener = listener
        self.outcome: Optional[SamplingOutcome] = None
        self._thread = threading.Thread(target=self._run, name="point-sampler", daemon=True)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def start(self) -> "SamplingTask":
        self._thread.start()
        return self

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._cancel_event.set()

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> Optional[SamplingOutcome]:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
        return self.outcome

    def _deliver(self, event: SamplingEvent) -> Optional[Exception]:
        """Hand one event to the listener; returns what the listener raised, if anything."""
        with self._lock:
            if self._cancelled:
                return None
            if not isinstance(event, SamplingProgress):
                self.outcome = event
            try:
                self._listener(event)
            except Exception as exc:
                logger.exception("Sampling listener failed on %s", type(event).__name__)
                return exc
            return None

    def _run(self) -> None:
        while True:
            try:
                event = next(self._events)
            except StopIteration:
                return
            except Exception as exc:
                logger.exception("Sensing failed during sampling")
                self._deliver(SamplingFailed(
                    kind=SamplingFailureKind.SENSING_ERROR,
                    reason=f"Sampling error ({exc}). Try again.",
                ))
                return

            error = self._deliver(event)
            if error is not None:
                self._events.close()
                # If this delivery fails too it is only logged.
                self._deliver(SamplingFailed(
                    kind=SamplingFailureKind.LISTENER_ERROR,
                    reason=f"Could not process sample ({error}). Try again.",
                ))
                return


class PointSampler:
    """Owns at most one in-flight sampling task."""

    def __init__(
        self,
        sensing: SensingSession,
        config: Optional[SamplingConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sensing = sensing
        self.config = config or SamplingConfig()
        self.config.validate()
        self.clock = clock
        self._task: Optional[SamplingTask] = None

    @property
    def current_task(self) -> Optional[SamplingTask]:
        return self._task

    def start_sampling(
        self,
        anchor: ScreenPoint,
        alignment: PlaneAlignment,
        require_plane: bool,
        listener: Callable[[SamplingEvent], None],
    ) -> SamplingTask:
        """Start a run at anchor, cancelling any run already in flight."""
        self.cancel()
        logger.info(
            "Sampling at (%.1f, %.1f) alignment=%s require_plane=%s",
            anchor[0], anchor[1], alignment.value, require_plane,
        )

        def make_events(cancel_event: threading.Event) -> Iterator[SamplingEvent]:
            return sampling_events(
                self.sensing, anchor, alignment, require_plane, self.config,
                clock=self.clock,
                sleep=cancel_event.wait,
                cancel_event=cancel_event,
            )

        def log_and_forward(event: SamplingEvent) -> None:
            if isinstance(event, SamplingComplete):
                logger.info(
                    "Sampling complete: %d samples, spread %.2fcm, %s",
                    event.point.sample_count, event.point.stability_spread_cm,
                    event.point.hit_quality.key,
                )
            elif isinstance(event, SamplingFailed):
                logger.warning("Sampling failed (%s): %s", event.kind.value, event.reason)
            listener(event)

        self._task = SamplingTask(make_events, log_and_forward).start()
        return self._task

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
