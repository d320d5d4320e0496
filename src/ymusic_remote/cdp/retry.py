"""Retrying executor - bounded retries for queries that race the page render."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from ymusic_remote.config import RetryConfig

if TYPE_CHECKING:
    from ymusic_remote.app.lifecycle import LifecycleTracker
    from ymusic_remote.cdp.session import RemoteSession
    from ymusic_remote.telemetry import TelemetryClient

logger = structlog.get_logger()

T = TypeVar("T")


class RetryingExecutor:
    """Runs an operation until it yields a value or the attempt budget is spent."""

    def __init__(
        self,
        policy: RetryConfig,
        tracker: LifecycleTracker,
        session: RemoteSession,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._policy = policy
        self._tracker = tracker
        self._session = session
        self._sleep = sleep
        self._telemetry = telemetry

    @property
    def policy(self) -> RetryConfig:
        return self._policy

    def budget(self, max_attempts: int | None = None) -> int:
        """Attempts allowed for a call starting now."""
        base = max_attempts if max_attempts is not None else self._policy.max_attempts
        if self._tracker.is_in_any_grace():
            return max(base, self._policy.grace_min_attempts)
        return base

    async def retry(
        self,
        operation: Callable[[], Awaitable[T | None]],
        name: str,
        max_attempts: int | None = None,
        initial_delay: float | None = None,
    ) -> T | None:
        """Run operation, retrying on None or on error.

        The budget is fixed when the call starts. Delays double after each
        failed attempt, starting at initial_delay.

        Args:
            operation: Zero-argument coroutine factory
            name: Operation name for diagnostics
            max_attempts: Override of the policy's attempt count
            initial_delay: Override of the policy's first delay, in seconds

        Returns:
            The first non-None result, or None once the budget is spent
        """
        attempts = self.budget(max_attempts)
        delay = initial_delay if initial_delay is not None else self._policy.initial_delay
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
                if result is not None:
                    return result
            except Exception as exc:
                last_error = exc

            if attempt < attempts:
                wait = delay * 2 ** (attempt - 1)
                logger.info(
                    "ui_operation_retrying",
                    operation=name,
                    attempt=attempt,
                    attempts=attempts,
                    delay=wait,
                )
                await self._sleep(wait)

        if self._tracker.is_in_any_grace():
            logger.debug("ui_operation_failed_in_grace", operation=name, attempts=attempts)
            return None

        status = "connected" if self._session.is_connected else "disconnected"
        since_connect_ms = int(self._tracker.time_since_connect() * 1000)
        logger.error(
            "ui_operation_failed",
            operation=name,
            attempts=attempts,
            cdp_status=status,
            ms_since_connect=since_connect_ms,
            error=str(last_error) if last_error else None,
            hint="DOM selectors may be outdated if the session is connected",
        )
        if self._telemetry is not None:
            self._telemetry.report_error(
                f"{name} failed after {attempts} attempts (cdp {status}, "
                f"{since_connect_ms}ms since connect)",
                last_error,
            )
        return None
