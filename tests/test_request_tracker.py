import pytest

from vrf_lottery.lottery.errors import RequestMismatch
from vrf_lottery.lottery.models import Phase
from vrf_lottery.lottery.request_tracker import RandomnessRequestTracker
from vrf_lottery.lottery.timeout import draw_timed_out, interval_elapsed, seconds_until


def test_accepts_only_outstanding_request_while_drawing():
    tracker = RandomnessRequestTracker()
    tracker.record(11)

    tracker.validate(11, Phase.DRAWING)
    with pytest.raises(RequestMismatch) as excinfo:
        tracker.validate(12, Phase.DRAWING)
    assert excinfo.value.outstanding == 11

    with pytest.raises(RequestMismatch):
        tracker.validate(11, Phase.FAILED)


def test_cleared_tracker_rejects_everything():
    tracker = RandomnessRequestTracker()
    with pytest.raises(RequestMismatch):
        tracker.validate(1, Phase.DRAWING)

    tracker.record(1)
    assert tracker.clear() == 1
    assert tracker.outstanding is None
    with pytest.raises(RequestMismatch):
        tracker.validate(1, Phase.DRAWING)


def test_timeout_predicates():
    assert not draw_timed_out(now=1599, drawing_started_at=1000, draw_timeout=600)
    assert draw_timed_out(now=1600, drawing_started_at=1000, draw_timeout=600)
    assert interval_elapsed(now=130, last_timestamp=100, interval=30)
    assert not interval_elapsed(now=129, last_timestamp=100, interval=30)
    assert seconds_until(now=1500, since=1000, duration=600) == 100
    assert seconds_until(now=2000, since=1000, duration=600) == 0
