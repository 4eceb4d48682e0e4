"""Fire-and-forget execution of training jobs.

A spawned task must outlive the request that started it and must not be cut
short when that request returns.
"""
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ThreadSpawner:
    """Runs each task on its own non-daemon thread, so interpreter shutdown waits for it."""

    def __init__(self, name_prefix: str = "TrainJob"):
        self.name_prefix = name_prefix
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def __call__(self, fn: Callable[[], None], name: str | None = None) -> threading.Thread:
        thread = threading.Thread(target=self._run, args=(fn,), name=name or f"{self.name_prefix}-{len(self._threads) + 1}")
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()
        return thread

    @staticmethod
    def _run(fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception as e:
            # last line of defence; job runners record their own failures
            logger.error(f"Background task crashed: {e}", exc_info=True)

    def join_all(self, timeout: float | None = None) -> None:
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)


class InlineSpawner:
    """Runs the task immediately in the caller's thread."""

    def __call__(self, fn: Callable[[], None], name: str | None = None) -> None:
        fn()


default_spawner = ThreadSpawner()


def spawn_background_task(fn: Callable[[], None], name: str | None = None):
    return default_spawner(fn, name=name)
