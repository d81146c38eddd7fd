from attestor.scheduler import Scheduler


def test_run_now_executes_cycle():
    calls = []
    scheduler = Scheduler()
    scheduler.cycle_function = lambda: calls.append(1) or [1]

    assert scheduler.run_now() is True
    assert calls == [1]


def test_overlapping_cycle_is_skipped():
    calls = []
    scheduler = Scheduler()
    scheduler.cycle_function = lambda: calls.append(1)

    scheduler._execution_lock.acquire()
    try:
        assert scheduler.is_cycle_running() is True
        assert scheduler.run_now() is False
    finally:
        scheduler._execution_lock.release()

    assert calls == []
    assert scheduler.is_cycle_running() is False


def test_cycle_errors_are_contained():
    def failing_cycle():
        raise RuntimeError("boom")

    scheduler = Scheduler()
    scheduler.cycle_function = failing_cycle
    assert scheduler.run_now() is True
    # Lock is released after a failure
    assert scheduler.is_cycle_running() is False


def test_invalid_start_arguments():
    scheduler = Scheduler()
    assert scheduler.start(lambda: None, interval_seconds=0) is False
    assert scheduler.start("not callable", interval_seconds=10) is False
    assert scheduler.is_running is False


def test_start_and_stop():
    scheduler = Scheduler()
    assert scheduler.start(lambda: None, interval_seconds=3600) is True
    try:
        assert scheduler.start(lambda: None, interval_seconds=3600) is False
        status = scheduler.get_status()
        assert status["is_running"] is True
        assert status["interval_seconds"] == 3600
        assert status["next_run_time"] is not None
    finally:
        assert scheduler.stop() is True

    assert scheduler.is_running is False
    assert scheduler.get_status()["next_run_time"] is None
    assert scheduler.stop() is False
