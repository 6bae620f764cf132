"""
Fire-and-forget work dispatch.

Callers submit a job and never wait for it; each job's failure is logged here
and never propagates back to the submitter. Jobs must open their own DB session.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from core.config import logger, BACKGROUND_MODE, BACKGROUND_WORKERS


def _job_name(fn: Callable) -> str:
    return getattr(fn, "__name__", repr(fn))


def _run_logged(fn: Callable, *args, **kwargs) -> None:
    try:
        fn(*args, **kwargs)
    except Exception as ex:
        logger.exception(f"[background] Job {_job_name(fn)} failed: {ex}")


class InlineDispatcher:
    """Runs the job immediately on submit. Used by tests and BACKGROUND_MODE=inline."""

    def submit(self, fn: Callable, *args, **kwargs) -> None:
        _run_logged(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        pass


class ThreadPoolDispatcher:
    def __init__(self, max_workers: int = 4):
        self._max_workers = max(1, int(max_workers))
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="portal-bg",
                )
            return self._executor

    def submit(self, fn: Callable, *args, **kwargs) -> None:
        try:
            self._get_executor().submit(_run_logged, fn, *args, **kwargs)
        except RuntimeError as ex:
            # Executor already shut down (app stopping); the caller must still not fail
            logger.warning(f"[background] Dropped job {_job_name(fn)}: {ex}")

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)


def _build_default():
    if BACKGROUND_MODE == "inline":
        return InlineDispatcher()
    return ThreadPoolDispatcher(max_workers=BACKGROUND_WORKERS)


_dispatcher = _build_default()


def get_dispatcher():
    """FastAPI dependency; tests override it with an InlineDispatcher."""
    return _dispatcher


def shutdown_dispatcher(wait: bool = True) -> None:
    _dispatcher.shutdown(wait=wait)
