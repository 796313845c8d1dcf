from __future__ import annotations

import asyncio
import queue
import threading
import time
from typing import Any, Callable, Optional, Protocol, Tuple

from topicbus.core import log

Task = Tuple[Callable[..., Any], Tuple[Any, ...]]


class Scheduler(Protocol):
    """Runs ``fn(*args)`` later, after the current call stack returns.

    Tasks run in the order they were scheduled.
    """

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None: ...


class ThreadScheduler:
    """
    FIFO worker thread. Started lazily on first ``call_soon``.

    A task that raises is logged; the worker keeps going.
    """

    def __init__(self, name: str = "topicbus.scheduler", daemon: bool = True, join_timeout: float = 2.0):
        self.name = name
        self.daemon = daemon
        self.join_timeout = float(join_timeout)
        self.l = log.get(name)
        self._q: "queue.Queue[Optional[Task]]" = queue.Queue()
        self._th: threading.Thread | None = None
        self._prev: threading.Thread | None = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            # a stopped worker still drains up to its sentinel; one consumer at a time
            prev, self._prev = self._prev, None
            if prev is not None and prev.is_alive() and prev is not threading.current_thread():
                prev.join(timeout=self.join_timeout)
            self._running = True
            self._th = threading.Thread(target=self._loop, name="TopicBusScheduler", daemon=self.daemon)
            self._th.start()
        self.l.info("scheduler start (daemon=%s)", self.daemon)

    def stop(self, timeout: float = 1.0) -> None:
        """Run what is already queued, then stop the worker."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            th = self._th
            self._th = None
            self._prev = th
            self._q.put(None)
        if th and th is not threading.current_thread():
            th.join(timeout=timeout)
        self.l.info("scheduler stop")

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        if not self._running:
            self.start()
        self._q.put((fn, args))

    def flush(self, timeout: float = 2.0) -> bool:
        """Wait until every task queued so far has run. False on timeout."""
        if not self._running:
            return self._q.unfinished_tasks == 0
        done = threading.Event()
        self._q.put((done.set, ()))
        return done.wait(timeout)

    def pending(self) -> int:
        return self._q.qsize()

    def _loop(self) -> None:
        while True:
            task = self._q.get()
            try:
                if task is None:
                    return
                fn, args = task
                t0 = time.perf_counter()
                fn(*args)
                dt_ms = (time.perf_counter() - t0) * 1000.0
                self.l.debug("task %s done in %.3fms", getattr(fn, "__name__", fn), dt_ms)
            except Exception as e:
                self.l.error("scheduled task failed: %s", e, exc_info=True)
            finally:
                self._q.task_done()


class AsyncioScheduler:
    """
    Schedules on an asyncio event loop: the one given, else the running one.

    Called with neither, it binds a private loop and keeps using it; its
    tasks run whenever that loop is run (``scheduler.loop.run_until_complete``).
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self.l = log.get("topicbus.scheduler.asyncio")

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            self._loop = asyncio.new_event_loop()
            self.l.warning("no running event loop; bound a private loop for deferred tasks")
            return self._loop

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        loop = self.loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.call_soon(fn, *args)
        else:
            loop.call_soon_threadsafe(fn, *args)
