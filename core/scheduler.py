# core/scheduler.py
import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from core.constants import SCHEDULER_MIN_SLEEP_SECONDS

logger = logging.getLogger(__name__)


def next_aligned_fire(now: float, interval: timedelta) -> float:
    """
    Returns the next wall-clock aligned fire time after `now`.

    Alignment is on whole epoch seconds, so with a 5 s interval a tick at
    `...02.3` is followed by one at `...05.3`.

    Args:
        now (float): The current time as epoch seconds.
        interval (timedelta): The cadence interval, a whole number of seconds.

    Raises:
        ValueError: If the interval is shorter than a second or fractional.
    """
    if interval < timedelta(seconds=1) or interval % timedelta(seconds=1):
        raise ValueError(f"Interval must be a whole number of seconds, got {interval}")
    interval_seconds = int(interval.total_seconds())
    return now - (int(now) % interval_seconds) + interval_seconds


class DualIntervalScheduler:
    """
    Runs two tasks on independent, wall-clock aligned cadences in the calling thread.

    Both cadences are due immediately on start. Each loop iteration runs every
    due task (status before statistics), then sleeps until the earlier of the
    two next fire times, but never less than `SCHEDULER_MIN_SLEEP_SECONDS`.
    Tasks run synchronously, so a slow task delays the other cadence.

    The loop ends when `app_state.running` is cleared or the stop event is set.
    Exceptions from either task, or from `health_check`, propagate out of
    `run()` unchanged.
    """
    def __init__(self, status_interval: timedelta, statistics_interval: timedelta,
                 status_task: Callable[[], None], statistics_task: Callable[[], None],
                 stop_event: threading.Event, is_running: Callable[[], bool] = lambda: True,
                 health_check: Optional[Callable[[], None]] = None,
                 clock: Callable[[], float] = time.time):
        self.status_interval = status_interval
        self.statistics_interval = statistics_interval
        self.status_task = status_task
        self.statistics_task = statistics_task
        self.stop_event = stop_event
        self.is_running = is_running
        self.health_check = health_check
        self.clock = clock

        now = clock()
        self.next_status = now
        self.next_statistics = now

    def _should_stop(self) -> bool:
        # A failed health check must win over a stop request; both set the event.
        if self.health_check:
            self.health_check()
        return not self.is_running() or self.stop_event.is_set()

    def run_once(self) -> float:
        """
        Runs every cadence that is due and returns the number of seconds to sleep.
        """
        now = self.clock()
        if now >= self.next_status:
            self.next_status = next_aligned_fire(now, self.status_interval)
            logger.debug("Status tick.")
            self.status_task()

        if now >= self.next_statistics:
            self.next_statistics = next_aligned_fire(now, self.statistics_interval)
            logger.info("Statistics tick.")
            self.statistics_task()

        sleep_for = min(self.next_status, self.next_statistics) - self.clock()
        return max(sleep_for, SCHEDULER_MIN_SLEEP_SECONDS)

    def run(self) -> None:
        logger.info(
            f"Scheduler started (status every {self.status_interval}, "
            f"statistics every {self.statistics_interval})."
        )
        while not self._should_stop():
            sleep_for = self.run_once()
            self.stop_event.wait(timeout=sleep_for)
        logger.info("Scheduler stopped.")
