"""
paced_pool.py
=============
Bounded thread pool that spaces out request starts.

Every task waits for its start slot before running; slots are handed out
`interval` seconds apart across the whole pool, and at most `max_workers`
tasks run at once. A failing task becomes a failed TaskOutcome, it never
stops the others.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class TaskOutcome:
    key: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self):
        return self.error is None


class PacedPool:
    def __init__(self, max_workers=4, interval=0.5, clock=time.monotonic, sleep=time.sleep):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.max_workers = max_workers
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = None

    def _wait_for_slot(self):
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)

    def _run(self, fn, item):
        self._wait_for_slot()
        return fn(item)

    def map(self, fn, items, key=None, on_progress: Optional[Callable[[int, int], None]] = None,
            weight: Optional[Callable] = None):
        """Run fn(item) for every item; return {key(item): TaskOutcome}.

        Outcomes come back in item order. on_progress(completed, total) is
        called on the calling thread after each task finishes. With *weight*,
        progress counts weight(item) per task instead of one.
        """
        items = list(items)
        key = key or (lambda item: item)
        weight = weight or (lambda item: 1)
        total = sum(weight(item) for item in items)
        outcomes = {}
        if not items:
            return outcomes

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="Worker") as executor:
            future_to_item = {executor.submit(self._run, fn, item): item for item in items}
            done = 0
            for future in as_completed(future_to_item):
                item = future_to_item[future]
                try:
                    outcomes[key(item)] = TaskOutcome(key(item), value=future.result())
                except Exception as e:
                    outcomes[key(item)] = TaskOutcome(key(item), error=e)
                done += weight(item)
                if on_progress:
                    on_progress(done, total)

        return {key(item): outcomes[key(item)] for item in items}
