"""Overlap guard shared by the beat tick and the on-demand trigger.

Celery beat owns the clock. Every path into a cycle goes through
``CycleScheduler.trigger`` so a tick that lands while a cycle is running is
dropped instead of running alongside it. The Flask host and the Celery worker
are separate processes, so the guard has two layers: a thread lock for this
process and a ``CycleLock`` (Redis in production) that both processes share.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

import redis
from redis.exceptions import LockError

from .models import CycleReport

LOGGER = logging.getLogger(__name__)

CYCLE_LOCK_NAME = "skillup:notifications:inactivity-cycle"


class SchedulerShutDown(RuntimeError):
    """Raised when a trigger arrives after shutdown was requested."""


class CycleLockUnavailable(RuntimeError):
    """Raised when the shared cycle lock cannot be reached."""


class CycleLock(Protocol):
    def acquire(self) -> bool: ...
    def release(self) -> None: ...


class LocalCycleLock:
    """Non-blocking lock for callers that share one process."""

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()


class RedisCycleLock:
    """Redis lock held for the length of one cycle, shared by web and worker.

    ``ttl`` only matters if a holder dies mid-cycle; it must be longer than
    the slowest expected cycle.
    """

    def __init__(self, redis_url: str, name: str = CYCLE_LOCK_NAME, ttl: int = 6 * 60 * 60, client=None):
        self.name = name
        self.ttl = ttl
        self._client = client or redis.from_url(redis_url)
        self._held = None

    def acquire(self) -> bool:
        lock = self._client.lock(self.name, timeout=self.ttl)
        try:
            acquired = lock.acquire(blocking=False)
        except redis.RedisError as exc:
            raise CycleLockUnavailable(f"cycle lock unavailable: {exc}") from exc
        if acquired:
            self._held = lock
        return bool(acquired)

    def release(self) -> None:
        lock, self._held = self._held, None
        if lock is None:
            return
        try:
            lock.release()
        except LockError:
            LOGGER.warning("Inactivity cycle lock expired before the cycle finished")
        except redis.RedisError:
            LOGGER.exception("Could not release inactivity cycle lock")


def build_cycle_lock(settings) -> Optional[CycleLock]:
    if not settings.lock_url:
        return None
    return RedisCycleLock(settings.lock_url, ttl=settings.lock_ttl)


class CycleScheduler:
    def __init__(self, runner, cycle_lock: Optional[CycleLock] = None):
        self.runner = runner
        self.cycle_lock = cycle_lock
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._closed = False

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self, source: str = "manual") -> Optional[CycleReport]:
        """Run one cycle now, or return None if one is already in flight anywhere."""
        if self._closed:
            raise SchedulerShutDown("scheduler is shutting down")
        if not self._lock.acquire(blocking=False):
            LOGGER.warning("Skipping %s inactivity tick: previous cycle still running", source)
            return None
        try:
            if self.cycle_lock is not None and not self.cycle_lock.acquire():
                LOGGER.warning("Skipping %s inactivity tick: a cycle is running in another process", source)
                return None
            try:
                LOGGER.info("Running inactivity cycle (%s)", source)
                return self.runner.run_cycle(cancel_event=self._cancel)
            finally:
                if self.cycle_lock is not None:
                    self.cycle_lock.release()
        finally:
            self._lock.release()

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Stop accepting ticks and ask the in-flight cycle to stop at the next user."""
        self._closed = True
        self._cancel.set()
        LOGGER.info("Inactivity scheduler shutting down")
        if wait and self._lock.acquire(timeout=-1 if timeout is None else timeout):
            self._lock.release()
