from __future__ import annotations
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Deque, Dict, Optional, Set
import logging
import threading

logger = logging.getLogger(__name__)


class KeyedDispatcher:
    """Background work queue: FIFO per key, parallel across keys.

    Each key has its own pending queue. At most one pool task drains a given
    key at a time, so jobs for that key run in submission order while other
    keys use the remaining workers.
    """

    def __init__(self, max_workers: int = 4, thread_name_prefix: str = "glance-save"):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._pending: Dict[str, Deque[Callable[[], object]]] = {}
        self._draining: Set[str] = set()
        self._outstanding = 0
        self._closed = False
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, key: str, fn: Callable[..., object], *args, **kwargs):
        job = partial(fn, *args, **kwargs)
        with self._lock:
            if self._closed:
                raise RuntimeError("dispatcher is shut down")
            self._pending.setdefault(key, deque()).append(job)
            self._outstanding += 1
            if key in self._draining:
                return
            self._draining.add(key)
        try:
            self._executor.submit(self._drain, key)
        except RuntimeError:
            # Executor shut down underneath us: drop everything queued for key
            # so flush() does not wait on jobs that will never run.
            with self._lock:
                dropped = self._pending.pop(key, deque())
                self._draining.discard(key)
                self._outstanding -= len(dropped)
                if self._outstanding == 0:
                    self._idle.notify_all()
            raise

    def _drain(self, key: str):
        while True:
            with self._lock:
                queue = self._pending.get(key)
                if not queue:
                    self._pending.pop(key, None)
                    self._draining.discard(key)
                    return
                job = queue.popleft()
            try:
                job()
            except Exception:
                logger.exception("Background annotation job for %s failed", key)
            finally:
                with self._lock:
                    self._outstanding -= 1
                    if self._outstanding == 0:
                        self._idle.notify_all()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted job has finished. False if timeout expired first."""
        with self._lock:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self, wait: bool = True):
        with self._lock:
            self._closed = True
        if wait:
            self.flush()
        self._executor.shutdown(wait=wait)
