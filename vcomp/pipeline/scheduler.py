from collections import deque
from typing import Callable, Deque, List, Optional, Set
from vcomp.config.models import MAX_PARALLEL_LIMIT


class Scheduler:
    """FIFO admission of waiting jobs up to a parallelism limit.

    The limit is read through `max_parallel` on every admission so a settings
    change takes effect on the next pass. Callers serialize access (the
    JobManager lock); the scheduler itself keeps no lock.
    """

    def __init__(self, max_parallel: Callable[[], int]):
        self._max_parallel = max_parallel
        self._waiting: Deque[str] = deque()
        self._running: Set[str] = set()

    @property
    def limit(self) -> int:
        return max(1, min(MAX_PARALLEL_LIMIT, int(self._max_parallel())))

    @property
    def running_count(self) -> int:
        return len(self._running)

    def waiting(self) -> List[str]:
        return list(self._waiting)

    def enqueue(self, job_id: str):
        self._waiting.append(job_id)

    def remove_waiting(self, job_id: str) -> bool:
        try:
            self._waiting.remove(job_id)
        except ValueError:
            return False
        return True

    def has_capacity(self) -> bool:
        return len(self._running) < self.limit

    def admit_next(self) -> Optional[str]:
        """Pops the oldest waiting job and reserves a slot for it, if one is free."""
        if not self._waiting or not self.has_capacity():
            return None
        job_id = self._waiting.popleft()
        self._running.add(job_id)
        return job_id

    def release(self, job_id: str) -> bool:
        if job_id in self._running:
            self._running.remove(job_id)
            return True
        return False

    def clear(self):
        self._waiting.clear()
        self._running.clear()
