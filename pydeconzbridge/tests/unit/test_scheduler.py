import threading
import time
from concurrent.futures import Future

import pytest

from pydeconzbridge.scheduler import DeferredTask, Scheduler, completed, copy_future_state


@pytest.fixture(name="real_scheduler")
def fixture_real_scheduler():
    s = Scheduler("test-scheduler")
    yield s
    s.shutdown()


def test_execute_runs_on_scheduler_thread(real_scheduler):
    name = real_scheduler.execute(lambda: threading.current_thread().name).result(timeout=1)
    assert name.startswith("test-scheduler")


def test_schedule_runs_after_delay(real_scheduler):
    done = threading.Event()
    real_scheduler.schedule(done.set, 0.05)
    assert done.wait(timeout=2)


def test_cancelled_task_never_runs(real_scheduler):
    counter = []
    handle = real_scheduler.schedule(lambda: counter.append(1), 0.05)
    handle.cancel()
    time.sleep(0.2)
    assert counter == []


def test_then_chains_callback(real_scheduler):
    source = Future()
    outcome = real_scheduler.then(source, lambda f: f.result() * 2)
    source.set_result(21)
    assert outcome.result(timeout=1) == 42


def test_then_propagates_callback_error(real_scheduler):
    def broken(_):
        raise KeyError("x")
    outcome = real_scheduler.then(completed(1), broken)
    with pytest.raises(KeyError):
        outcome.result(timeout=1)


def test_deferred_task_replaces_previous(real_scheduler):
    counter = []
    deferred = DeferredTask(real_scheduler)
    first = deferred.schedule(lambda: counter.append("first"), 0.05)
    deferred.schedule(lambda: counter.append("second"), 0.05)
    assert first.cancelled
    time.sleep(0.3)
    assert counter == ["second"]


def test_closed_deferred_task_refuses_work(real_scheduler):
    counter = []
    deferred = DeferredTask(real_scheduler)
    deferred.schedule(lambda: counter.append(1), 0.05)
    deferred.close()
    assert deferred.schedule(lambda: counter.append(2), 0.01) is None
    time.sleep(0.2)
    assert counter == []
    assert not deferred.pending
    deferred.reopen()
    deferred.schedule(lambda: counter.append(3), 0.01)
    time.sleep(0.2)
    assert counter == [3]


def test_pending_clears_after_run(real_scheduler):
    deferred = DeferredTask(real_scheduler)
    done = threading.Event()
    deferred.schedule(done.set, 0.01)
    assert deferred.pending
    assert done.wait(timeout=2)
    real_scheduler.execute(lambda: None).result(timeout=1)
    assert not deferred.pending


def test_copy_future_state():
    source = Future()
    source.set_exception(ValueError("x"))
    destination = Future()
    copy_future_state(source, destination)
    assert isinstance(destination.exception(), ValueError)
