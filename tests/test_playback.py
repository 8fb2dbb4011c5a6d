import math

import pytest

from cogbox.errors import SnapshotError
from cogbox.playback.controller import PlaybackController, format_clock
from cogbox.playback.models import PlaybackStatus


def _controller(n=100, **kwargs):
    return PlaybackController(n, snapshot_source=lambda cursor: {"cursor": cursor}, **kwargs)


def test_initial_state():
    c = _controller()
    assert c.status == PlaybackStatus.IDLE
    assert c.current_cursor() == 1
    assert c.bounds() == (1, 100)
    assert c.state.running is False


def test_transitions():
    c = _controller(speed=10)
    c.start()
    assert c.running
    c.tick()
    assert c.current_cursor() == 11
    c.pause()
    assert c.status == PlaybackStatus.PAUSED
    assert c.tick() is None
    assert c.current_cursor() == 11
    c.start()
    c.tick()
    assert c.current_cursor() == 21
    c.reset()
    assert c.status == PlaybackStatus.IDLE
    assert c.current_cursor() == 1


def test_pause_when_idle_stays_idle():
    c = _controller()
    c.pause()
    assert c.status == PlaybackStatus.IDLE


def test_idle_ticks_do_nothing():
    c = _controller()
    assert c.tick() is None
    assert c.current_cursor() == 1


def test_wraps_instead_of_overshooting():
    c = _controller(speed=10)
    c.seek(95)
    c.start()
    assert c.tick() == {"cursor": 1}
    assert c.current_cursor() == 1


@pytest.mark.parametrize("bound,speed", [(100, 10), (100, 1), (7, 3), (6, 3), (10, 100), (10800, 50)])
def test_loop_wraps_once_after_ceil_ticks(bound, speed):
    c = _controller(n=bound, speed=speed, allowed_speeds=(1, 3, 10, 50, 100))
    c.start()
    ticks = math.ceil(bound / speed)
    seen = []
    for _ in range(ticks):
        c.tick()
        seen.append(c.current_cursor())
    assert seen[-1] == 1
    assert seen.count(1) == 1
    assert max(seen) <= bound


def test_duration_bound_caps_upper_bound():
    c = _controller(n=20000, duration_bound=10800)
    assert c.bounds() == (1, 10800)
    c = _controller(n=50, duration_bound=10800)
    assert c.bounds() == (1, 50)


@pytest.mark.parametrize("value", [7, "abc", None, 2.5, True, 0, -10])
def test_unsupported_speed_falls_back_to_one(value):
    c = _controller()
    c.set_speed(50)
    assert c.set_speed(value) == 1
    assert c.speed == 1


def test_speed_from_string():
    c = _controller()
    assert c.set_speed("100") == 100


def test_seek_is_clamped():
    c = _controller()
    assert c.seek(500) == 100
    assert c.seek(-3) == 1
    assert c.seek("42") == 42
    assert c.seek("later") == 1


def test_data_error_keeps_previous_snapshot():
    def source(cursor):
        if cursor == 21:
            raise SnapshotError("bad row")
        return {"cursor": cursor}

    c = PlaybackController(100, snapshot_source=source, speed=10)
    c.start()
    assert c.tick() == {"cursor": 11}
    assert c.tick() == {"cursor": 11}
    assert c.current_cursor() == 21
    assert c.running
    assert c.tick() == {"cursor": 31}


def test_info_clock_and_progress():
    c = _controller(n=10800, speed=50)
    c.seek(5400)
    info = c.info()
    assert info.clock == "01:30:00"
    assert info.progress_pct == 50.0
    assert info.remaining == "00:01:48"
    assert info.allowed_speeds == [1, 10, 50, 100]


def test_format_clock():
    assert format_clock(0) == "00:00:00"
    assert format_clock(3661) == "01:01:01"
