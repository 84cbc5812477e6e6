"""
AuthSentry Background Scheduler

Runs deferred and periodic maintenance work on daemon threads.

Provides:
- call_later(): one-shot delayed callbacks (threading.Timer), cancellable
- every(): fixed-interval loops driven by threading.Event for prompt shutdown
- start()/stop(): coordinated lifecycle

Callback exceptions are logged and never kill a loop.

Author: AuthSentry Project
License: GNU GPL v3
"""

import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional


class ScheduledTask:
    """Handle returned by call_later(). Pass to cancel()."""

    def __init__(self, task_id: int, name: str, timer: threading.Timer):
        self.task_id = task_id
        self.name = name
        self.timer = timer

    @property
    def active(self) -> bool:
        return self.timer.is_alive()

    def __repr__(self):
        return f"ScheduledTask(id={self.task_id}, name={self.name!r})"


class _IntervalLoop:
    """Fixed-interval loop state for every()."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.thread: Optional[threading.Thread] = None


class BackgroundScheduler:
    """
    Timer and interval task runner.

    One-shot timers run as soon as they are scheduled. Interval loops
    only run between start() and stop().
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._running = False
        self._ids = itertools.count(1)
        self._timers: Dict[int, ScheduledTask] = {}
        self._loops: List[_IntervalLoop] = []

    @property
    def running(self) -> bool:
        return self._running

    def call_later(self, delay: float, callback: Callable[[], None],
                   name: Optional[str] = None) -> ScheduledTask:
        """
        Run callback once after delay seconds.

        Args:
            delay: Seconds to wait (negative values run immediately)
            callback: Zero-argument callable
            name: Label used in log messages

        Returns:
            ScheduledTask handle
        """
        task_id = next(self._ids)
        name = name or getattr(callback, '__name__', 'task')

        def _fire():
            with self._lock:
                self._timers.pop(task_id, None)
            self._run_callback(name, callback)

        timer = threading.Timer(max(0.0, delay), _fire)
        timer.daemon = True
        task = ScheduledTask(task_id, name, timer)

        with self._lock:
            self._timers[task_id] = task
        timer.start()

        self.logger.debug(f"Scheduled {name} in {delay:.2f}s (task {task_id})")
        return task

    def cancel(self, task: Optional[ScheduledTask]) -> bool:
        """
        Cancel a pending call_later() task.

        Returns:
            True if the task was still pending
        """
        if task is None:
            return False

        with self._lock:
            pending = self._timers.pop(task.task_id, None)

        task.timer.cancel()
        return pending is not None

    def every(self, interval: float, callback: Callable[[], None], name: str):
        """
        Run callback every interval seconds while the scheduler is running.

        The first run happens one interval after start().
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        loop = _IntervalLoop(name, interval, callback)
        with self._lock:
            self._loops.append(loop)
            running = self._running

        if running:
            self._start_loop(loop)

    def start(self):
        """Start all registered interval loops."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop_event.clear()
            loops = list(self._loops)

        for loop in loops:
            self._start_loop(loop)

        self.logger.info(f"Scheduler started ({len(loops)} interval task(s))")

    def stop(self, timeout: float = 5.0):
        """
        Stop interval loops and cancel pending timers.

        Args:
            timeout: Seconds to wait for each loop thread to finish
        """
        with self._lock:
            self._running = False
            self._stop_event.set()
            timers = list(self._timers.values())
            self._timers.clear()
            loops = list(self._loops)

        for task in timers:
            task.timer.cancel()

        for loop in loops:
            thread = loop.thread
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=timeout)
                if thread.is_alive():
                    self.logger.warning(f"Interval task {loop.name} did not stop within {timeout}s")
            loop.thread = None

        self.logger.info("Scheduler stopped")

    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def _start_loop(self, loop: _IntervalLoop):
        thread = threading.Thread(
            target=self._run_loop, args=(loop,),
            name=f"authsentry-{loop.name}", daemon=True,
        )
        loop.thread = thread
        thread.start()

    def _run_loop(self, loop: _IntervalLoop):
        # Event.wait() returns True as soon as stop() is called
        while not self._stop_event.wait(timeout=loop.interval):
            self._run_callback(loop.name, loop.callback)

    def _run_callback(self, name: str, callback: Callable[[], None]):
        try:
            callback()
        except Exception as e:
            self.logger.error(f"Scheduled task {name} failed: {e}", exc_info=True)
