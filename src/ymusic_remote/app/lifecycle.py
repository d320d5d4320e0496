"""Lifecycle tracking - grace windows after launch and after connect."""

from __future__ import annotations

import time
from collections.abc import Callable

from ymusic_remote.config import LifecycleConfig

Clock = Callable[[], float]


class GraceWindow:
    """A fixed-length window that expires lazily when read.

    No timers are involved: activity is computed from the clock on every
    read, and a read past the deadline deactivates the window.
    """

    def __init__(self, duration: float, clock: Clock = time.monotonic) -> None:
        self._duration = duration
        self._clock = clock
        self._active = False
        self._started_at = 0.0

    @property
    def duration(self) -> float:
        return self._duration

    def open(self) -> None:
        self._active = True
        self._started_at = self._clock()

    def close(self) -> None:
        self._active = False

    def is_active(self) -> bool:
        if not self._active:
            return False
        if self._clock() - self._started_at > self._duration:
            self._active = False
            return False
        return True


class LifecycleTracker:
    """Tracks whether the target was recently launched or connected.

    Failures inside either window are expected (the page is still rendering)
    and callers use this to widen retry budgets and silence error reports.
    """

    def __init__(self, config: LifecycleConfig, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._launch = GraceWindow(config.launch_grace_period, clock)
        self._connect = GraceWindow(config.launch_grace_period, clock)
        self._connected_at: float | None = None

    def mark_launched(self) -> None:
        self._launch.open()

    def mark_connected(self) -> None:
        self._connect.open()
        self._connected_at = self._clock()

    def reset_launch(self) -> None:
        self._launch.close()

    def reset_connect(self) -> None:
        self._connect.close()

    def is_in_launch_grace(self) -> bool:
        return self._launch.is_active()

    def is_in_connect_grace(self) -> bool:
        return self._connect.is_active()

    def is_in_any_grace(self) -> bool:
        # Evaluate both so each window gets its lazy expiry applied.
        launch = self.is_in_launch_grace()
        connect = self.is_in_connect_grace()
        return launch or connect

    def time_since_connect(self) -> float:
        """Seconds since the last mark_connected(), or 0.0 if never connected."""
        if self._connected_at is None:
            return 0.0
        return self._clock() - self._connected_at
