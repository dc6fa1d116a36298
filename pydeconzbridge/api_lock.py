# pyDeconzBridge - Lock Helpers
# -*- coding: utf-8 -*-
"""
 Lock acquisition with exponential backoff

 Used by ConfigStore.save() so concurrent writers of the cache file wait
 briefly instead of blocking forever; acquire_lock_with_backoff raises
 TimeoutError when the lock stays busy.
"""
import logging
import random
import threading
import time
from contextlib import contextmanager

log = logging.getLogger(__name__)


def acquire_with_exponential_backoff(
    lock: threading.Lock,
    timeout: float,
    initial_delay: float = 0.05,
    factor: int = 2,
    max_delay: float = 1,
    jitter: float = 0.05
) -> bool:
    """
    Attempts to acquire a lock using exponential backoff with jitter.

    The lock is polled without blocking. Between attempts the caller sleeps
    for a delay that doubles (by `factor`) up to `max_delay`, plus a little
    random jitter so competing writers do not retry in lock-step.

    Args:
        lock (threading.Lock): The lock instance to acquire.
        timeout (float): Total time (in seconds) to keep trying.
        initial_delay (float, optional): First delay between attempts. Defaults to 0.05.
        factor (int, optional): Delay multiplier after each failed attempt. Defaults to 2.
        max_delay (float, optional): Upper bound for a single delay. Defaults to 1.
        jitter (float, optional): Maximum random delay added to each sleep. Defaults to 0.05.

    Returns:
        bool: True if the lock was acquired within the timeout, otherwise False.
    """
    start_time = time.perf_counter()
    delay = initial_delay

    elapsed = 0.0
    while elapsed < timeout:
        if lock.acquire(blocking=False):
            return True
        remaining_time = timeout - elapsed
        sleep_time = min(delay, remaining_time) + random.uniform(0, jitter)
        time.sleep(sleep_time)
        delay = min(delay * factor, max_delay)
        log.debug(f"Waiting for {lock}")
        elapsed = time.perf_counter() - start_time

    return False


@contextmanager
def acquire_lock_with_backoff(lock: threading.Lock, timeout: float, **backoff_kwargs):
    """
    Context manager for acquiring a lock using exponential backoff with jitter.
    Raises TimeoutError if the lock is not acquired in the given timeout.
    """
    if not acquire_with_exponential_backoff(lock, timeout, **backoff_kwargs):
        raise TimeoutError("Unable to acquire lock within the specified timeout.")
    try:
        yield
    finally:
        lock.release()
