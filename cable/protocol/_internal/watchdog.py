# cable/protocol/_internal/watchdog.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


class HeartbeatCell:
    """Last heartbeat timestamp (client clock, seconds). Written by RX, read by the watchdog."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[float] = None

    def record(self, ts_s: float) -> None:
        with self._lock:
            self._value = float(ts_s)

    def last(self) -> Optional[float]:
        with self._lock:
            return self._value


class HealthWatchdog(threading.Thread):
    """
    Periodic liveness check.

    Every `interval_s` compares clock() against the last heartbeat. Before the first
    heartbeat nothing is checked. Once the age exceeds `timeout_s`, on_timeout() is
    called exactly once and the thread exits.
    """

    def __init__(
        self,
        heartbeat: HeartbeatCell,
        *,
        interval_s: float,
        timeout_s: float,
        on_timeout: Callable[[float], None],
        clock: Callable[[], float],
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(daemon=True, name="cable-watchdog")
        if not interval_s > 0 or not timeout_s > 0:
            raise ValueError(f"interval_s and timeout_s must be > 0 (got {interval_s}, {timeout_s})")
        self.heartbeat = heartbeat
        self.interval_s = float(interval_s)
        self.timeout_s = float(timeout_s)
        self._on_timeout = on_timeout
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self._fired = False
        self._fire_lock = threading.Lock()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            try:
                if self.tick():
                    return
            except Exception:
                self._log.exception("WATCHDOG_EXCEPTION")

    def tick(self) -> bool:
        """One health check. Returns True if the connection was declared lost."""
        last = self.heartbeat.last()
        if last is None or self._stop_event.is_set():
            return False

        age_s = self._clock() - last
        if age_s <= self.timeout_s:
            return False

        with self._fire_lock:
            if self._fired:
                return False
            self._fired = True

        self._log.warning("WATCHDOG_TIMEOUT age_s=%.3f timeout_s=%.3f", age_s, self.timeout_s)
        self._stop_event.set()
        self._on_timeout(age_s)
        return True

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()
