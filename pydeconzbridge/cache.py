# pyDeconzBridge - Expiring Async Cache
# -*- coding: utf-8 -*-
"""
 Single value cache with expiry and request de-duplication

 The cache is in one of three states:

    EMPTY    - nothing cached, the next get_value() starts a refresh
    PENDING  - a refresh is running; every caller gets the same future
    FRESH    - a value younger than `expiry` seconds; returned as is

 A refresh that fails leaves the cache EMPTY and hands the failure to
 every waiter of that refresh. Safe to call from any thread.
"""
import logging
import threading
import time
from concurrent.futures import Future
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from pydeconzbridge.scheduler import completed

log = logging.getLogger(__name__)

T = TypeVar("T")


class CacheState(Enum):
    EMPTY = "empty"
    PENDING = "pending"
    FRESH = "fresh"


class ExpiringCacheAsync(Generic[T]):
    def __init__(self, expiry: float, clock: Callable[[], float] = time.perf_counter):
        if expiry <= 0:
            raise ValueError("Cache expiry must be positive")
        self.expiry = expiry
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._expires_at = 0.0
        self._has_value = False
        self._pending: Optional[Future] = None

    @property
    def state(self) -> CacheState:
        with self._lock:
            if self._pending is not None:
                return CacheState.PENDING
            if self._has_value and self._clock() < self._expires_at:
                return CacheState.FRESH
            return CacheState.EMPTY

    def get_value(self, refresh: Callable[[], "Future[T]"]) -> "Future[T]":
        """
        Return the cached value, the running refresh or a new refresh.

        Args:
            refresh: callable returning a Future for a fresh value. Called at
                     most once per expiry window, never concurrently.
        """
        with self._lock:
            if self._pending is not None:
                log.debug("Joining running cache refresh")
                return self._pending
            if self._has_value and self._clock() < self._expires_at:
                log.debug("Returning cached value")
                return completed(self._value)
            pending = Future()
            self._pending = pending

        try:
            source = refresh()
        except Exception as exc:
            source = Future()
            source.set_exception(exc)
        source.add_done_callback(lambda done: self._complete(pending, done))
        return pending

    def _complete(self, pending: Future, source: Future):
        exc = source.exception() if not source.cancelled() else None
        with self._lock:
            if source.cancelled() or exc is not None:
                self._has_value = False
                self._value = None
            else:
                self._value = source.result()
                self._has_value = True
                self._expires_at = self._clock() + self.expiry
            if self._pending is pending:
                self._pending = None
        # Resolve outside the lock, waiters may call get_value() again
        if source.cancelled():
            pending.set_exception(RuntimeError("cache refresh cancelled"))
        elif exc is not None:
            pending.set_exception(exc)
        else:
            pending.set_result(source.result())

    def invalidate_value(self):
        with self._lock:
            self._has_value = False
            self._value = None

    def get_last_known_value(self) -> Optional[T]:
        with self._lock:
            return self._value
