"""Shared test fixtures: stub collaborators and a manually advanced scheduler."""
import json
from concurrent.futures import Future

import pytest

from pydeconzbridge import FULL_STATE_CACHE_EXPIRE, DeconzBridge
from pydeconzbridge.cache import ExpiringCacheAsync
from pydeconzbridge.exceptions import TransportFailure
from pydeconzbridge.models import HttpResult
from pydeconzbridge.scheduler import ScheduledHandle, Scheduler

FULL_STATE = {
    "config": {
        "name": "deCONZ-GW",
        "apiversion": "1.16.0",
        "swversion": "2.05.80",
        "fwversion": "0x26580700",
        "uuid": "a65d80a1-975a-4598-8d5a-2547bc6f2ddc",
        "zigbeechannel": 15,
        "ipaddress": "10.0.0.5",
        "websocketport": 8088,
    },
    "sensors": {"1": {"name": "Daylight", "type": "Daylight"}},
    "lights": {},
    "groups": {},
}


class ManualScheduler(Scheduler):
    """Runs work inline; delayed work runs when the test advances the clock"""

    def __init__(self):
        self.name = "manual"
        self.now = 0.0
        self.tasks = []

    def execute(self, func, *args):
        future = Future()
        try:
            future.set_result(func(*args))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def schedule(self, func, delay):
        handle = ScheduledHandle(func, delay)
        self.tasks.append((self.now + delay, handle))
        return handle

    def pending(self):
        return [handle for _, handle in self.tasks if not handle.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.tasks if t[0] <= target and not t[1].cancelled]
            if not due:
                break
            task = min(due, key=lambda t: t[0])
            self.tasks.remove(task)
            self.now = task[0]
            task[1].run()
        self.now = target
        self.tasks = [t for t in self.tasks if not t[1].cancelled]

    def shutdown(self):
        pass


class StubHttp:
    """Queued responses per method; an empty queue leaves the request hanging"""

    def __init__(self):
        self.queues = {"get": [], "post": []}
        self.calls = []
        self.hanging = []

    def reply(self, method, status=200, body=""):
        if not isinstance(body, str):
            body = json.dumps(body)
        self.queues[method].append(HttpResult(status, body))

    def fail(self, method, exc=None):
        self.queues[method].append(exc or TransportFailure("Connection refused"))

    def get(self, url, timeout):
        self.calls.append(("get", url, None, timeout))
        return self._next("get")

    def post(self, url, body, timeout):
        self.calls.append(("post", url, body, timeout))
        return self._next("post")

    def count(self, method):
        return len([c for c in self.calls if c[0] == method])

    def _next(self, method):
        future = Future()
        if not self.queues[method]:
            self.hanging.append(future)
            return future
        item = self.queues[method].pop(0)
        if isinstance(item, Exception):
            future.set_exception(item)
        else:
            future.set_result(item)
        return future

    def close(self):
        pass


class StubWebSocket:
    def __init__(self):
        self.listener = None
        self.started = []
        self.closed = 0
        self.connected = False

    def register_listener(self, listener):
        self.listener = listener

    def is_connected(self):
        return self.connected

    def start(self, address):
        self.started.append(address)

    def close(self):
        self.closed += 1
        self.connected = False


@pytest.fixture(name="scheduler")
def fixture_scheduler():
    return ManualScheduler()


@pytest.fixture(name="http")
def fixture_http():
    return StubHttp()


@pytest.fixture(name="websocket")
def fixture_websocket():
    return StubWebSocket()


@pytest.fixture(name="make_bridge")
def fixture_make_bridge(tmp_path, http, websocket, scheduler):
    bridges = []

    def make(**kwargs):
        kwargs.setdefault("host", "10.0.0.5")
        kwargs.setdefault("cachefile", str(tmp_path / ".deconz"))
        bridge = DeconzBridge(http=http, websocket=websocket, scheduler=scheduler, **kwargs)
        # cache ages with the manual clock
        bridge._full_state_cache = ExpiringCacheAsync(FULL_STATE_CACHE_EXPIRE, clock=lambda: scheduler.now)
        bridges.append(bridge)
        return bridge

    yield make
    for bridge in bridges:
        bridge.dispose()


@pytest.fixture(name="bridge")
def fixture_bridge(make_bridge):
    return make_bridge(apikey="ABCDEF1234")


@pytest.fixture(name="full_state")
def fixture_full_state():
    return json.loads(json.dumps(FULL_STATE))
