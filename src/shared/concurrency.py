"""
Thread synchronization helpers for the in-memory indexes.

- OneShotInitializer: runs an initialization body at most once successfully,
  no matter how many threads ask for it concurrently.
- ReadWriteLock: many readers or one writer, writers preferred.
"""
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Callable, Iterator, Optional


class OneShotInitializer:
    """
    Exactly-once initialization gate.

    The first caller runs the body. Callers arriving while it runs wait for the
    same attempt and observe its outcome: they return on success and re-raise
    the same exception on failure. A failed attempt is not remembered, so the
    next call after it starts a fresh attempt.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._initialized = False
        self._attempt: Optional[Future] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def run_once(self, init_fn: Callable[[], None]) -> None:
        """Run init_fn unless a previous call already completed it successfully."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return
            attempt = self._attempt
            owner = attempt is None
            if owner:
                attempt = Future()
                self._attempt = attempt

        if not owner:
            attempt.result()
            return

        try:
            init_fn()
        except BaseException as exc:
            with self._lock:
                self._attempt = None
            attempt.set_exception(exc)
            raise

        with self._lock:
            self._initialized = True
            self._attempt = None
        attempt.set_result(None)


class ReadWriteLock:
    """Reader/writer lock; a waiting writer blocks new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()
