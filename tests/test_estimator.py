from player.estimator import MAX_REFRESH_INTERVAL_MS, MIN_REFRESH_INTERVAL_MS, PositionEstimator

from conftest import ScriptedSource


def make(source=None, clock=None, **kw):
    kw.setdefault("retry_delay_ms", 1)
    if clock is not None:
        kw["clock"] = clock
    return PositionEstimator(source=source, **kw)


def test_estimate_advances_with_clock(clock):
    est = make(clock=clock)
    assert est.estimate_now() == 0

    est.resync(1000)
    assert est.estimate_now() == 1000
    clock.advance(0.25)
    assert est.estimate_now() == 1250


def test_estimate_never_negative(clock):
    est = make(clock=clock)
    est.resync(-500)
    assert est.estimate_now() == 0


def test_plain_read_resyncs(clock):
    source = ScriptedSource([4200])
    est = make(source, clock)
    assert est.request_resync()
    assert est.estimate.position_ms == 4200
    assert not est.in_flight


def test_overlapping_reads_are_dropped():
    source = ScriptedSource(auto=False)
    est = make(source)

    assert est.request_resync()
    assert est.in_flight
    assert not est.request_resync()
    assert source.requests == 1

    source.reply(100)
    assert est.estimate.position_ms == 100
    assert est.request_resync()


def test_failed_read_keeps_last_estimate(clock):
    source = ScriptedSource([3000, None])
    est = make(source, clock)
    est.request_resync()
    clock.advance(1)
    est.request_resync()
    assert est.estimate.position_ms == 3000
    assert est.estimate_now() == 4000


def test_raising_source_counts_as_unknown():
    class Broken:
        def request_position(self, callback):
            raise RuntimeError("bus gone")

    est = make(Broken())
    assert est.request_resync()
    assert est.estimate is None
    assert not est.in_flight


def test_drift_waits_for_fresh_value(qtbot):
    source = ScriptedSource([5000, 5000, 5000, 5000, 1200])
    est = make(source)
    est.request_resync()

    with qtbot.waitSignal(est.corrected, timeout=2000) as blocker:
        assert est.correct_drift(200000)

    assert blocker.args == [1200]
    assert est.estimate.position_ms == 1200
    assert source.requests == 5
    assert not est.correcting


def test_drift_gives_up_after_bound(qtbot):
    source = ScriptedSource(default=5000)
    est = make(source, max_attempts=3)
    est.request_resync()

    with qtbot.waitSignal(est.corrected, timeout=2000) as blocker:
        est.correct_drift(200000)

    assert blocker.args == [5000]
    assert source.requests == 1 + 3


def test_drift_retries_near_track_end(qtbot):
    source = ScriptedSource([199800, 800])
    est = make(source)

    with qtbot.waitSignal(est.corrected, timeout=2000) as blocker:
        est.correct_drift(200000)

    assert blocker.args == [800]


def test_drift_retries_while_length_unknown(qtbot):
    source = ScriptedSource(default=700)
    est = make(source, max_attempts=2)

    with qtbot.waitSignal(est.corrected, timeout=2000):
        est.correct_drift(0)

    assert source.requests == 2


def test_drift_failure_aborts(qtbot):
    source = ScriptedSource([5000, None])
    est = make(source)
    est.request_resync()

    with qtbot.assertNotEmitted(est.corrected, wait=20):
        est.correct_drift(200000)

    assert not est.correcting
    assert est.estimate.position_ms == 5000


def test_second_correction_is_dropped():
    source = ScriptedSource(auto=False)
    est = make(source)
    assert est.correct_drift(100000)
    assert not est.correct_drift(100000)
    assert source.requests == 1


def test_correction_supersedes_tick_read():
    source = ScriptedSource(auto=False)
    est = make(source)
    corrected = []
    est.corrected.connect(corrected.append)

    est.request_resync()
    est.correct_drift(200000)
    assert source.requests == 2

    source.reply(999)   # late plain read
    assert est.estimate is None
    source.reply(3000)
    assert corrected == [3000]
    assert est.estimate.position_ms == 3000


def test_cancel_ignores_late_reply():
    source = ScriptedSource(auto=False)
    est = make(source)
    est.correct_drift(200000)
    est.cancel()

    source.reply(3000)
    assert est.estimate is None
    assert not est.correcting
    assert not est.in_flight


def test_tick_start_stop_and_reschedule(qtbot):
    est = make(ScriptedSource(default=0), refresh_interval_ms=60)
    assert not est.ticking

    est.start_ticking()
    assert est.ticking
    with qtbot.waitSignal(est.ticked, timeout=1000):
        pass

    est.set_refresh_interval(10000)
    assert est.ticking
    assert est.refresh_interval_ms == MAX_REFRESH_INTERVAL_MS

    est.set_refresh_interval(1)
    assert est.refresh_interval_ms == MIN_REFRESH_INTERVAL_MS

    est.stop_ticking()
    assert not est.ticking
    est.set_refresh_interval(100)
    assert not est.ticking


def test_dispose_stops_everything():
    source = ScriptedSource(auto=False)
    est = make(source)
    est.start_ticking()
    est.correct_drift(100000)
    est.dispose()

    assert not est.ticking
    assert not est.correcting
    assert est.source is None
