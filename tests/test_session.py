"""Tests for session module (threaded sampling end to end)."""
import pytest

from willitfit.catalog import DEFAULT_PRODUCTS
from willitfit.config import FitConfig, SamplingConfig
from willitfit.contracts import (
    MeasurementIncompleteError,
    MeasurementMode,
    ProtocolStep,
    TrackingQuality,
    VerdictKind,
)
from willitfit.sampling import SamplingComplete, SamplingFailed, SamplingFailureKind
from willitfit.session import MeasurementSession, SamplingStatus

TAP = (540.0, 1200.0)
FAST = FitConfig(sampling=SamplingConfig(window_ms=60, sample_interval_ms=2, min_samples=3))
SLOW = FitConfig(sampling=SamplingConfig(window_ms=5000, sample_interval_ms=5, min_samples=3))


def _tap_at(session, sensing, position):
    """Point the sensing at one position and run a full tap."""
    sensing.positions = [position]
    task = session.handle_tap(TAP)
    assert task is not None
    return session.wait_for_sampling(timeout=5.0)


class TestDoorSession:

    def test_full_door_run_produces_verdict(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, MeasurementMode.DOOR, FAST)

        assert session.current_step is ProtocolStep.DOOR_BOTTOM_LEFT
        assert isinstance(_tap_at(session, sensing, (0.0, 0.0, 0.0)), SamplingComplete)
        assert session.current_step is ProtocolStep.DOOR_BOTTOM_RIGHT
        _tap_at(session, sensing, (1.0, 0.0, 0.0))
        assert session.measurement.width.value_cm == pytest.approx(100.0)
        _tap_at(session, sensing, (0.0, 2.1, 0.0))

        assert session.is_complete
        assert session.sampling_state.status is SamplingStatus.IDLE
        assert session.verdict.kind is VerdictKind.PASS
        assert session.evaluate() == session.verdict
        assert not session.rotation_may_help

    def test_floor_taps_are_strict(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        _tap_at(session, sensing, (0.0, 0.0, 0.0))
        assert all(strict for _, strict in sensing.hit_calls)

    def test_uneven_floor_surfaces_consistency_error(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        _tap_at(session, sensing, (0.0, 0.0, 0.0))
        _tap_at(session, sensing, (1.0, 0.05, 0.0))

        state = session.sampling_state
        assert state.status is SamplingStatus.FAILED
        assert "5cm difference" in state.reason
        assert session.current_step is ProtocolStep.DOOR_BOTTOM_LEFT

        _tap_at(session, sensing, (0.0, 0.05, 0.0))
        assert session.sampling_state.status is SamplingStatus.IDLE
        assert session.controller.consistency_error is None

    def test_sampling_failure_is_reported(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing(strict_upfront_hit=False)
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        outcome = _tap_at(session, sensing, (0.0, 0.0, 0.0))

        assert isinstance(outcome, SamplingFailed)
        assert outcome.kind is SamplingFailureKind.NO_PLANE
        assert session.sampling_state.status is SamplingStatus.FAILED
        assert session.current_step is ProtocolStep.DOOR_BOTTOM_LEFT

        session.retry_current_point()
        assert session.sampling_state.status is SamplingStatus.IDLE

    def test_error_while_handling_point_does_not_block_taps(
        self, scripted_sensing, cabinet_product, monkeypatch
    ):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, config=FAST)

        def broken_submit(point):
            raise RuntimeError("controller exploded")

        monkeypatch.setattr(session.controller, "submit_point", broken_submit)
        outcome = _tap_at(session, sensing, (0.0, 0.0, 0.0))

        assert isinstance(outcome, SamplingFailed)
        assert outcome.kind is SamplingFailureKind.LISTENER_ERROR
        assert session.sampling_state.status is SamplingStatus.FAILED
        assert "controller exploded" in session.sampling_state.reason

        monkeypatch.undo()
        _tap_at(session, sensing, (0.0, 0.0, 0.0))
        assert session.current_step is ProtocolStep.DOOR_BOTTOM_RIGHT

    def test_rotation_hint(self, scripted_sensing):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, DEFAULT_PRODUCTS["tv-65"], config=FAST)
        for position in ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 2.1, 0.0)):
            _tap_at(session, sensing, position)
        assert session.verdict.kind is VerdictKind.PASS
        assert session.rotation_may_help


class TestTapHandling:

    def test_tap_ignored_while_sampling(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing(positions=[(0.0, 0.0, 0.0)])
        session = MeasurementSession(sensing, cabinet_product, config=SLOW)
        first = session.handle_tap(TAP)
        assert first is not None
        assert session.sampling_state.status is SamplingStatus.SAMPLING
        assert session.handle_tap(TAP) is None

        session.cancel_sampling()
        first.join(timeout=5.0)
        assert first.cancelled
        assert session.sampling_state.status is SamplingStatus.IDLE
        assert session.current_step is ProtocolStep.DOOR_BOTTOM_LEFT

    def test_tap_ignored_without_good_tracking(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing(
            positions=[(0.0, 0.0, 0.0)], tracking=TrackingQuality.DEGRADED,
        )
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        assert session.handle_tap(TAP) is None
        assert session.sampling_state.status is SamplingStatus.IDLE
        assert sensing.hit_calls == []

    def test_tap_ignored_when_complete(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        for position in ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 2.1, 0.0)):
            _tap_at(session, sensing, position)
        assert session.handle_tap(TAP) is None

    def test_reset_measurement(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, config=FAST)
        for position in ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 2.1, 0.0)):
            _tap_at(session, sensing, position)
        session.reset_measurement()

        assert session.current_step is ProtocolStep.DOOR_BOTTOM_LEFT
        assert session.verdict is None
        assert not session.is_complete
        assert session.measurement.width is None


class TestSpaceSession:

    def test_full_space_run(self, scripted_sensing, cabinet_product):
        sensing = scripted_sensing()
        session = MeasurementSession(sensing, cabinet_product, MeasurementMode.SPACE, FAST)
        for position in (
            (-1.0, 1.0, 0.0), (1.5, 1.0, 0.0),
            (0.0, 1.0, -1.0), (0.0, 1.0, 0.8),
            (0.0, 0.0, 0.0), (0.0, 2.4, 0.0),
        ):
            _tap_at(session, sensing, position)

        assert session.is_complete
        assert session.measurement.depth.value_cm == pytest.approx(180.0)
        assert session.verdict.kind is VerdictKind.PASS
        assert not session.rotation_may_help


class TestEvaluate:

    def test_incomplete_raises(self, scripted_sensing, cabinet_product):
        session = MeasurementSession(scripted_sensing(), cabinet_product, config=FAST)
        with pytest.raises(MeasurementIncompleteError):
            session.evaluate()

    def test_virtual_placement_has_no_verdict(self, scripted_sensing, cabinet_product):
        session = MeasurementSession(
            scripted_sensing(), cabinet_product, MeasurementMode.VIRTUAL_PLACEMENT, FAST,
        )
        assert session.is_complete
        assert session.handle_tap(TAP) is None
        assert session.verdict is None
        with pytest.raises(MeasurementIncompleteError):
            session.evaluate()
