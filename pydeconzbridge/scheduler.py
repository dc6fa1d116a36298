# pyDeconzBridge - Scheduler
# -*- coding: utf-8 -*-
"""
 Deferred work for a bridge

 Scheduler runs callables one at a time on a single worker thread, either
 right away (execute) or after a delay (schedule). Every bridge owns one
 Scheduler, so its callbacks never run concurrently with each other.

 DeferredTask is the single pending timer of a bridge: scheduling a new
 action cancels the previous one, and once closed it refuses new work
 until reopened.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

# Wait between retries (API key approval, full state, websocket)
POLL_FREQUENCY_SEC = 10


def copy_future_state(source: Future, destination: Future):
    """Resolve destination with the outcome of the (finished) source future"""
    if destination.done():
        return
    if source.cancelled():
        destination.cancel()
        return
    exc = source.exception()
    if exc is not None:
        destination.set_exception(exc)
    else:
        destination.set_result(source.result())


def completed(value: Any = None) -> Future:
    future = Future()
    future.set_result(value)
    return future


class ScheduledHandle:
    """A cancellable reference to one scheduled action"""

    def __init__(self, func: Callable[[], Any], delay: float):
        self.func = func
        self.delay = delay
        self.cancelled = False
        self.fired = False
        self.timer: Optional[threading.Timer] = None

    def cancel(self):
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()

    def run(self):
        # The timer may have fired before cancel() was observed
        if self.cancelled:
            log.debug(f"Skipping cancelled task {self.func}")
            return None
        self.fired = True
        return self.func()


class Scheduler:
    def __init__(self, name: str = "pydeconzbridge"):
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def _run(self, func: Callable, *args):
        try:
            return func(*args)
        except Exception as exc:
            log.error(f"{self.name}: task {func} failed: {exc}")
            raise

    def execute(self, func: Callable, *args) -> Future:
        """Run func on the scheduler thread as soon as possible"""
        return self._executor.submit(self._run, func, *args)

    def schedule(self, func: Callable[[], Any], delay: float) -> ScheduledHandle:
        """Run func on the scheduler thread after delay seconds"""
        handle = ScheduledHandle(func, delay)

        def fire():
            if not handle.cancelled:
                self.execute(handle.run)

        handle.timer = threading.Timer(delay, fire)
        handle.timer.daemon = True
        handle.timer.start()
        return handle

    def then(self, source: Future, callback: Callable[[Future], Any]) -> Future:
        """
        Run callback(source) on the scheduler thread once source is done.
        Returns a future for the callback's own result.
        """
        outcome = Future()

        def relay(done: Future):
            inner = self.execute(callback, done)
            inner.add_done_callback(lambda f: copy_future_state(f, outcome))

        source.add_done_callback(relay)
        return outcome

    def shutdown(self):
        self._executor.shutdown(wait=False)


class DeferredTask:
    """Owns the single pending timer of a bridge"""

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._lock = threading.Lock()
        self._handle: Optional[ScheduledHandle] = None
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            handle = self._handle
            return handle is not None and not handle.cancelled and not handle.fired

    def schedule(self, func: Callable[[], Any], delay: float) -> Optional[ScheduledHandle]:
        with self._lock:
            if self._closed:
                log.debug(f"Deferred task closed - not scheduling {func}")
                return None
            if self._handle is not None:
                self._handle.cancel()
            self._handle = self.scheduler.schedule(func, delay)
            return self._handle

    def cancel(self):
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def close(self):
        """Cancel the pending action and refuse new ones until reopen()"""
        with self._lock:
            self._closed = True
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def reopen(self):
        with self._lock:
            self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed
