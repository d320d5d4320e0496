"""Reconnect supervisor - background reconnection after an unexpected loss."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from ymusic_remote.config import ReconnectConfig
from ymusic_remote.errors import ControllerError, reconnect_exhausted_error

if TYPE_CHECKING:
    from ymusic_remote.cdp.session import LossEvent, RemoteSession
    from ymusic_remote.telemetry import TelemetryClient

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[Any]]


class ReconnectSupervisor:
    """Re-establishes the session after a loss event, within a fixed budget.

    At most one reconnection loop runs at a time. Once the attempt budget is
    used up the supervisor stays idle until reset_attempts() is called after a
    successful caller-initiated connect.
    """

    def __init__(
        self,
        session: RemoteSession,
        config: ReconnectConfig,
        *,
        sleep: SleepFn = asyncio.sleep,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._sleep = sleep
        self._telemetry = telemetry
        self._attempts = 0
        self._in_progress = False
        self._watch_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        self.on_loss: Callable[[LossEvent], None] | None = None
        self.on_reconnected: Callable[[], None] | None = None
        self.on_exhausted: Callable[[ControllerError], None] | None = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self._config.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay before the given attempt, in seconds."""
        if self._config.exponential_backoff:
            return self._config.initial_delay * attempt
        return self._config.initial_delay

    def reset_attempts(self) -> None:
        self._attempts = 0

    async def start(self) -> None:
        """Subscribe to session losses and start reacting to them."""
        if self._watch_task is not None:
            return
        queue = self._session.subscribe_loss()
        self._watch_task = asyncio.create_task(self._watch_loop(queue))
        logger.info("reconnect_supervisor_started")

    async def stop(self) -> None:
        """Stop watching and abandon any reconnection in progress."""
        for task in (self._watch_task, self._reconnect_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self._watch_task is not None:
            self._session.unsubscribe_loss()
        self._watch_task = None
        self._reconnect_task = None
        self._in_progress = False
        logger.info("reconnect_supervisor_stopped")

    def trigger(self) -> asyncio.Task[None] | None:
        """Start a reconnection loop unless one is running or the budget is spent.

        Returns:
            The loop task, or None when the trigger was a no-op
        """
        if self._in_progress:
            logger.debug("reconnect_already_in_progress")
            return None
        if self.exhausted:
            logger.warning("reconnect_budget_spent", attempts=self._attempts)
            return None
        self._in_progress = True
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())
        return self._reconnect_task

    async def _watch_loop(self, queue: asyncio.Queue[LossEvent]) -> None:
        while True:
            event = await queue.get()
            logger.info("reconnect_loss_received", reason=event.reason, port=event.port)
            self._notify(self.on_loss, event)
            self.trigger()

    async def _reconnect_loop(self) -> None:
        try:
            while self._attempts < self._config.max_attempts:
                self._attempts += 1
                delay = self.delay_for(self._attempts)
                logger.info(
                    "reconnect_attempt",
                    attempt=self._attempts,
                    max_attempts=self._config.max_attempts,
                    delay=delay,
                )
                await self._sleep(delay)
                try:
                    await self._session.connect()
                except Exception as exc:
                    logger.warning(
                        "reconnect_attempt_failed", attempt=self._attempts, error=str(exc)
                    )
                    continue

                logger.info("reconnected", attempt=self._attempts)
                self._attempts = 0
                self._notify(self.on_reconnected)
                return

            error = reconnect_exhausted_error(self._attempts)
            logger.error("reconnect_exhausted", attempts=self._attempts)
            if self._telemetry is not None:
                self._telemetry.report_error(error.message, error)
            self._notify(self.on_exhausted, error)
        finally:
            self._in_progress = False

    @staticmethod
    def _notify(hook: Callable[..., None] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception("reconnect_hook_failed")
