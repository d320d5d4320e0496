"""Music controller - composes session, launcher and retries into player operations."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from ymusic_remote.app.launcher import DesktopLauncher, TargetLauncher
from ymusic_remote.app.lifecycle import Clock, LifecycleTracker
from ymusic_remote.cdp.commands import Command
from ymusic_remote.cdp.reconnect import ReconnectSupervisor
from ymusic_remote.cdp.retry import RetryingExecutor
from ymusic_remote.cdp.session import LossEvent, RemoteSession
from ymusic_remote.config import Settings
from ymusic_remote.dom import scripts
from ymusic_remote.dom import selectors as sel
from ymusic_remote.dom.models import (
    ActionResult,
    LikeState,
    MuteState,
    PlaybackState,
    TrackInfo,
    TrackInfoResult,
    TrackTime,
    TrackTimeResult,
    UiReady,
)
from ymusic_remote.errors import (
    ControllerError,
    app_not_found_error,
    launch_failed_error,
)
from ymusic_remote.telemetry import TelemetryClient, collect_installation_info
from ymusic_remote.utils.single_flight import SingleFlight

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


class ControllerState(Enum):
    """Top-level readiness of the controller."""

    NOT_READY = "not_ready"
    LAUNCHING = "launching"
    CONNECTING = "connecting"
    UI_WARMUP = "ui_warmup"
    READY = "ready"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class MusicController:
    """Remote control for one Yandex Music instance.

    Construct one per process and share it. Call start() once, then
    ensure_ready() before user-initiated actions; queries never raise and
    report failure as False or None.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session: RemoteSession | None = None,
        launcher: TargetLauncher | None = None,
        telemetry: TelemetryClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._settings = settings
        self._session = session or RemoteSession(settings.cdp)
        self._launcher: TargetLauncher = launcher or DesktopLauncher(
            settings.lifecycle, host=settings.cdp.host
        )
        self._telemetry = telemetry
        self._sleep = sleep
        self._tracker = LifecycleTracker(settings.lifecycle, clock)
        self._supervisor = ReconnectSupervisor(
            self._session, settings.reconnect, sleep=sleep, telemetry=telemetry
        )
        self._retry = RetryingExecutor(
            settings.retry, self._tracker, self._session, sleep=sleep, telemetry=telemetry
        )
        self._ready_flight: SingleFlight[bool] = SingleFlight()
        self._state = ControllerState.NOT_READY
        self._last_error: ControllerError | None = None

        self._supervisor.on_loss = self._on_loss
        self._supervisor.on_reconnected = self._on_reconnected
        self._supervisor.on_exhausted = self._on_exhausted

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def session(self) -> RemoteSession:
        return self._session

    @property
    def tracker(self) -> LifecycleTracker:
        return self._tracker

    @property
    def supervisor(self) -> ReconnectSupervisor:
        return self._supervisor

    @property
    def retry_executor(self) -> RetryingExecutor:
        return self._retry

    @property
    def last_error(self) -> ControllerError | None:
        return self._last_error

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    # Lifecycle

    async def start(self) -> None:
        """Watch for connection loss and try to attach to a running app.

        The initial connect is best effort: the app may simply not be running.
        """
        await self._supervisor.start()
        try:
            await self.connect()
            self._set_state(ControllerState.READY)
        except ControllerError as exc:
            logger.info("initial_connect_skipped", code=exc.code, reason=exc.message)
        if self._telemetry is not None:
            self._telemetry.report_installation(
                collect_installation_info(self.is_connected, self._settings.app_path)
            )

    async def stop(self) -> None:
        await self._supervisor.stop()
        await self._session.disconnect()
        self._set_state(ControllerState.NOT_READY)

    async def connect(self) -> None:
        """Connect the session and open the connect grace window.

        Raises:
            ControllerError: If the endpoint cannot be reached
        """
        await self._session.connect()
        self._supervisor.reset_attempts()
        self._tracker.mark_connected()

    async def disconnect(self) -> None:
        await self._session.disconnect()
        self._set_state(ControllerState.NOT_READY)

    async def ensure_ready(self) -> bool:
        """Make sure the app is running and connected, launching it if needed.

        Concurrent callers share one attempt. A UI that is slow to render does
        not fail the call.

        Returns:
            True when connected, False if launch or connect failed
        """
        if self._session.is_connected:
            return True
        return await self._ready_flight.run(self._bring_up)

    async def set_port(self, port: int) -> bool:
        """Switch to another debugging port and reconnect.

        Returns:
            False when the port is unchanged or the new port cannot be reached
        """
        if not self._session.set_port(port):
            return False

        await self._session.disconnect()
        self._supervisor.reset_attempts()
        self._set_state(ControllerState.NOT_READY)
        try:
            await self.connect()
        except ControllerError as exc:
            logger.error("port_switch_connect_failed", port=port, code=exc.code)
            self._last_error = exc
            return False

        logger.info("port_switch_connected", port=port)
        self._set_state(ControllerState.READY)
        return True

    def status(self) -> dict[str, Any]:
        """Snapshot of connection and lifecycle state."""
        host, port = self._session.endpoint
        return {
            "state": self._state.value,
            "host": host,
            "port": port,
            "connected": self._session.is_connected,
            "in_launch_grace": self._tracker.is_in_launch_grace(),
            "in_connect_grace": self._tracker.is_in_connect_grace(),
            "reconnect_attempts": self._supervisor.attempts,
            "reconnect_in_progress": self._supervisor.in_progress,
            "last_error": self._last_error.to_dict() if self._last_error else None,
        }

    # Player controls

    async def toggle_playback(self) -> bool:
        return await self._run_action(scripts.toggle_playback(), "toggle_playback")

    async def next_track(self) -> bool:
        return await self._run_action(scripts.click_button(sel.NEXT_TRACK_BUTTON), "next_track")

    async def previous_track(self) -> bool:
        return await self._run_action(
            scripts.click_button(sel.PREVIOUS_TRACK_BUTTON), "previous_track"
        )

    async def like_track(self) -> bool:
        return await self._run_action(scripts.click_button(sel.LIKE_BUTTON), "like_track")

    async def dislike_track(self) -> bool:
        return await self._run_action(scripts.click_button(sel.DISLIKE_BUTTON), "dislike_track")

    async def toggle_mute(self) -> bool:
        return await self._run_action(scripts.toggle_mute(), "toggle_mute")

    # Player state

    async def is_playing(self) -> bool:
        result = await self._query(scripts.is_playing(), PlaybackState, "is_playing")
        return result.is_playing if result else False

    async def is_liked(self) -> bool:
        result = await self._query(scripts.is_liked(), LikeState, "is_liked")
        if result is not None:
            logger.debug("like_state", is_liked=result.is_liked, method=result.debug)
        return result.is_liked if result else False

    async def is_muted(self) -> bool:
        result = await self._query(scripts.is_muted(), MuteState, "is_muted")
        return result.is_muted if result else False

    # Track info

    async def get_track_info(self) -> TrackInfo | None:
        """Current track metadata, retried while the player bar renders."""
        return await self._retry.retry(self._fetch_track_info, "get_track_info")

    async def get_track_time(self) -> TrackTime | None:
        result = await self._query(scripts.track_time(), TrackTimeResult, "get_track_time")
        if result is None:
            return None
        track_time = result.to_track_time()
        if track_time is None:
            self._report_miss("get_track_time", result.message or "unknown error")
        return track_time

    # Internals

    async def _bring_up(self) -> bool:
        if self._session.is_connected:
            self._set_state(ControllerState.READY)
            return True

        logger.info("app_not_connected_launching")
        self._tracker.mark_launched()
        self._set_state(ControllerState.LAUNCHING)
        try:
            await self._launch_target()
            self._set_state(ControllerState.CONNECTING)
            await self.connect()
        except ControllerError as exc:
            self._tracker.reset_launch()
            self._last_error = exc
            self._set_state(ControllerState.FAILED)
            logger.error("ensure_ready_failed", code=exc.code, message=exc.message)
            if self._telemetry is not None:
                self._telemetry.report_error(exc.message, exc)
            return False

        self._set_state(ControllerState.UI_WARMUP)
        await self._wait_for_ui_ready()
        self._last_error = None
        self._set_state(ControllerState.READY)
        return True

    async def _launch_target(self) -> None:
        custom_path = self._settings.app_path
        path = await self._launcher.detect_path(custom_path)
        if path is None:
            searched = [str(custom_path)] if custom_path else []
            searched.extend(str(p) for p in self._launcher.candidate_paths())
            raise app_not_found_error(searched)

        port = self._session.port
        if not await self._launcher.launch(path, port):
            raise launch_failed_error("launch command failed", str(path))

        lifecycle = self._settings.lifecycle
        ready = await self._launcher.wait_for_port_ready(
            port, lifecycle.port_ready_max_attempts, lifecycle.port_ready_interval
        )
        if not ready:
            raise launch_failed_error(
                f"debugging port {port} did not open after "
                f"{lifecycle.port_ready_max_attempts} attempts",
                str(path),
            )

    async def _wait_for_ui_ready(self) -> bool:
        lifecycle = self._settings.lifecycle
        try:
            async with asyncio.timeout(lifecycle.ui_ready_timeout):
                while True:
                    try:
                        result = await self._session.execute(scripts.ui_ready(), UiReady)
                        if result.ready:
                            logger.info("ui_ready")
                            return True
                    except ControllerError:
                        pass
                    await self._sleep(lifecycle.ui_ready_interval)
        except TimeoutError:
            pass

        logger.warning("ui_ready_timeout", timeout=lifecycle.ui_ready_timeout)
        return False

    async def _fetch_track_info(self) -> TrackInfo | None:
        result: TrackInfoResult = await self._session.execute(scripts.track_info(), TrackInfoResult)
        info = result.to_track_info()
        if info is not None:
            logger.info("track_info_retrieved", title=info.title, artist=info.artist)
            return info
        logger.debug(
            "track_info_incomplete", message=result.message, diagnostics=result.diagnostics
        )
        return None

    async def _run_action(self, command: Command, action: str) -> bool:
        logger.info("action_started", action=action)
        if self._telemetry is not None:
            self._telemetry.track_action(action)
        try:
            result: ActionResult = await self._session.execute(command, ActionResult)
        except ControllerError as exc:
            self._report_miss(action, str(exc))
            return False

        if result.success:
            logger.info("action_done", action=action, message=result.message)
            return True
        self._report_miss(action, result.message or "unknown error")
        return False

    async def _query(self, command: Command, model: type[M], name: str) -> M | None:
        try:
            result: M = await self._session.execute(command, model)
        except ControllerError as exc:
            self._report_miss(name, str(exc))
            return None
        return result

    def _report_miss(self, operation: str, reason: str) -> None:
        if self._tracker.is_in_any_grace():
            logger.debug("operation_failed_in_grace", operation=operation, reason=reason)
        else:
            logger.warning("operation_failed", operation=operation, reason=reason)

    def _set_state(self, state: ControllerState) -> None:
        if state is not self._state:
            logger.debug("controller_state", old=self._state.value, new=state.value)
            self._state = state

    def _on_loss(self, event: LossEvent) -> None:
        self._tracker.reset_connect()
        self._set_state(ControllerState.RECONNECTING)

    def _on_reconnected(self) -> None:
        self._tracker.mark_connected()
        self._last_error = None
        self._set_state(ControllerState.READY)

    def _on_exhausted(self, error: ControllerError) -> None:
        self._last_error = error
        self._set_state(ControllerState.FAILED)
