"""
Profile refresh task queue.

Recording a signal enqueues a refresh task keyed by the actor's id. Tasks
run on a bounded worker pool, never block the write that triggered them,
and coalesce: a refresh requested while one is running for the same user
runs once more afterwards instead of queueing duplicates. Failures are
logged, kept for inspection and can be retried.
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from match_engine.utils.time_utils import utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedRefresh:
    """Last failure of a refresh task for one user."""

    user_id: str
    attempts: int
    error: str
    failed_at: datetime


class ProfileRefreshQueue:
    """
    Fire-and-forget refresh scheduler.

    Example usage:
        queue = ProfileRefreshQueue(aggregator.refresh)
        queue.enqueue("user-1")
        queue.wait(timeout=5)
    """

    def __init__(
        self,
        handler: Callable[[str], Any],
        max_workers: int = 2,
        max_attempts: int = 3,
        executor: Optional[Executor] = None,
    ) -> None:
        """
        Args:
            handler: Called with a user id; its exceptions are captured
            max_workers: Pool size when no executor is supplied
            max_attempts: retry_failed() gives up on a user after this many
            executor: Externally owned executor to run tasks on
        """
        self.handler = handler
        self.max_attempts = max_attempts
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='profile-refresh'
        )
        self._cond = threading.Condition()
        self._inflight: Set[str] = set()
        self._rerun: Set[str] = set()
        self._failures: Dict[str, FailedRefresh] = {}
        self.completed = 0

    def enqueue(self, user_id: str) -> bool:
        """
        Schedule a refresh for user_id without waiting for it.

        Returns:
            True if a new task was submitted, False if it was coalesced
            into one already running
        """
        with self._cond:
            if user_id in self._inflight:
                self._rerun.add(user_id)
                return False
            self._inflight.add(user_id)

        try:
            self._executor.submit(self._run, user_id)
        except RuntimeError as e:
            # Executor shut down; drop the task but keep it retryable
            with self._cond:
                self._inflight.discard(user_id)
                self._record_failure(user_id, e)
                self._cond.notify_all()
            logger.error(f"Could not schedule profile refresh for {user_id}: {e}")
            return False
        return True

    def _run(self, user_id: str) -> None:
        while True:
            try:
                self.handler(user_id)
            except Exception as e:
                logger.exception(f"Profile refresh failed for {user_id}")
                with self._cond:
                    self._record_failure(user_id, e)
            else:
                with self._cond:
                    self._failures.pop(user_id, None)
                    self.completed += 1

            with self._cond:
                if user_id in self._rerun:
                    self._rerun.discard(user_id)
                    continue
                self._inflight.discard(user_id)
                self._cond.notify_all()
                return

    def _record_failure(self, user_id: str, error: Exception) -> None:
        previous = self._failures.get(user_id)
        self._failures[user_id] = FailedRefresh(
            user_id=user_id,
            attempts=(previous.attempts if previous else 0) + 1,
            error=str(error) or type(error).__name__,
            failed_at=utc_now(),
        )

    @property
    def failures(self) -> Dict[str, FailedRefresh]:
        with self._cond:
            return dict(self._failures)

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._inflight)

    def retry_failed(self) -> int:
        """Re-enqueue failed users below max_attempts. Returns how many."""
        with self._cond:
            retryable = [
                f.user_id for f in self._failures.values()
                if f.attempts < self.max_attempts
            ]
        return sum(1 for user_id in retryable if self.enqueue(user_id))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no refresh is in flight. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._inflight, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
