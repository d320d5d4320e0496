"""Tests for MusicController."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import (
    FakeClock,
    FakeConnector,
    FakeTransport,
    RecordingSleep,
    evaluate_response,
    exception_response,
)

APP_PATH = Path("/Applications/Яндекс Музыка.app")


def _launcher(found: Path | None = APP_PATH, launched: bool = True, ready: bool = True):
    launcher = MagicMock()
    launcher.candidate_paths = MagicMock(return_value=[APP_PATH])
    launcher.detect_path = AsyncMock(return_value=found)
    launcher.launch = AsyncMock(return_value=launched)
    launcher.wait_for_port_ready = AsyncMock(return_value=ready)
    return launcher


def _build(
    connector: FakeConnector,
    clock: FakeClock,
    launcher: MagicMock | None = None,
    telemetry: MagicMock | None = None,
    settings: Any = None,
):
    from ymusic_remote.cdp.session import RemoteSession
    from ymusic_remote.config import Settings
    from ymusic_remote.controller import MusicController

    settings = settings or Settings()
    session = RemoteSession(settings.cdp, connector=connector)
    return MusicController(
        settings,
        session=session,
        launcher=launcher or _launcher(),
        telemetry=telemetry,
        sleep=RecordingSleep(clock),
        clock=clock,
    )


async def _settle(condition: Callable[[], bool]) -> None:
    for _ in range(100):
        if condition():
            return
        await asyncio.sleep(0)


def _quick_warmup(timeout: float = 0.05, interval: float = 0.01):
    from ymusic_remote.config import LifecycleConfig, Settings

    lifecycle = LifecycleConfig(ui_ready_timeout=timeout, ui_ready_interval=interval)
    return Settings(lifecycle=lifecycle)


def _ui_ready(transport: FakeTransport) -> None:
    transport.responses["Runtime.evaluate"] = evaluate_response({"ready": True})


class TestEnsureReady:
    """Tests for ensure_ready()."""

    @pytest.mark.asyncio
    async def test_connected_is_noop(self, connector: FakeConnector, fake_clock: FakeClock) -> None:
        """Should return True without launching or touching grace windows."""
        launcher = _launcher()
        controller = _build(connector, fake_clock, launcher)
        await controller.connect()
        fake_clock.advance(60)

        assert await controller.ensure_ready() is True

        launcher.detect_path.assert_not_awaited()
        launcher.launch.assert_not_awaited()
        assert len(connector.calls) == 1
        assert controller.tracker.is_in_launch_grace() is False
        assert controller.tracker.is_in_connect_grace() is False

    @pytest.mark.asyncio
    async def test_launches_and_connects(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        launcher = _launcher()
        controller = _build(connector, fake_clock, launcher)
        _ui_ready(fake_transport)

        assert await controller.ensure_ready() is True

        launcher.launch.assert_awaited_once_with(APP_PATH, 9222)
        launcher.wait_for_port_ready.assert_awaited_once_with(9222, 15, 1.0)
        assert controller.state.value == "ready"
        assert controller.is_connected is True
        assert controller.tracker.is_in_launch_grace() is True
        assert controller.tracker.is_in_connect_grace() is True

    @pytest.mark.asyncio
    async def test_slow_ui_does_not_fail(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        """Should report ready even when the player bar never appears."""
        controller = _build(connector, fake_clock, settings=_quick_warmup())
        fake_transport.responses["Runtime.evaluate"] = evaluate_response({"ready": False})

        assert await controller.ensure_ready() is True

        assert controller.state.value == "ready"

    @pytest.mark.asyncio
    async def test_warmup_bounded_by_time(self, fake_clock: FakeClock) -> None:
        """Should stop waiting for the UI once the timeout passes, even mid-request."""

        class SlowPage(FakeTransport):
            async def send(
                self, method: str, params: dict[str, Any] | None = None
            ) -> dict[str, Any]:
                if method == "Runtime.evaluate":
                    await asyncio.sleep(1.0)
                return await super().send(method, params)

        connector = FakeConnector()
        connector.default = SlowPage()
        controller = _build(connector, fake_clock, settings=_quick_warmup(timeout=0.1))

        started = time.monotonic()
        assert await controller.ensure_ready() is True
        elapsed = time.monotonic() - started

        assert elapsed < 0.6
        assert controller.state.value == "ready"

        assert controller.state.value == "ready"

    @pytest.mark.asyncio
    async def test_port_never_opens(self, connector: FakeConnector, fake_clock: FakeClock) -> None:
        """Should fail, clear the launch window and record the error."""
        launcher = _launcher(ready=False)
        controller = _build(connector, fake_clock, launcher)

        assert await controller.ensure_ready() is False

        assert controller.state.value == "failed"
        assert controller.last_error is not None
        assert controller.last_error.code == "ERR_LAUNCH_FAILED"
        assert controller.tracker.is_in_launch_grace() is False
        assert connector.calls == []

    @pytest.mark.asyncio
    async def test_app_not_found(self, connector: FakeConnector, fake_clock: FakeClock) -> None:
        telemetry = MagicMock()
        controller = _build(connector, fake_clock, _launcher(found=None), telemetry)

        assert await controller.ensure_ready() is False

        assert controller.last_error is not None
        assert controller.last_error.code == "ERR_APP_NOT_FOUND"
        assert controller.last_error.context == {"searched": [str(APP_PATH)]}
        telemetry.report_error.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_refused_after_launch(
        self, connector: FakeConnector, fake_clock: FakeClock
    ) -> None:
        connector.outcomes = [ConnectionRefusedError()]
        controller = _build(connector, fake_clock)

        assert await controller.ensure_ready() is False

        assert controller.last_error is not None
        assert controller.last_error.code == "ERR_CONNECTION_REFUSED"
        assert controller.is_connected is False

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_launch(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        """Should launch once for concurrent callers."""
        launcher = _launcher()
        controller = _build(connector, fake_clock, launcher)
        _ui_ready(fake_transport)
        connector.gate = asyncio.Event()

        first = asyncio.create_task(controller.ensure_ready())
        second = asyncio.create_task(controller.ensure_ready())
        await _settle(lambda: len(connector.calls) > 0)
        connector.gate.set()

        assert await asyncio.gather(first, second) == [True, True]
        launcher.launch.assert_awaited_once()
        assert len(connector.calls) == 1


class TestSetPort:
    """Tests for set_port()."""

    @pytest.mark.asyncio
    async def test_unchanged_port(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        """Should return False without disconnecting."""
        controller = _build(connector, fake_clock)
        await controller.connect()

        assert await controller.set_port(9222) is False

        assert fake_transport.closed is False
        assert controller.is_connected is True
        assert len(connector.calls) == 1

    @pytest.mark.asyncio
    async def test_switches_port(self, fake_clock: FakeClock) -> None:
        old, new = FakeTransport(), FakeTransport()
        connector = FakeConnector()
        connector.outcomes = [old, new]
        controller = _build(connector, fake_clock)
        await controller.connect()

        assert await controller.set_port(9333) is True

        assert old.closed is True
        assert connector.calls[-1] == ("localhost", 9333)
        assert controller.session.port == 9333
        assert controller.state.value == "ready"

    @pytest.mark.asyncio
    async def test_unreachable_new_port(self, fake_clock: FakeClock) -> None:
        connector = FakeConnector()
        connector.outcomes = [FakeTransport(), ConnectionRefusedError()]
        controller = _build(connector, fake_clock)
        await controller.connect()

        assert await controller.set_port(9333) is False

        assert controller.is_connected is False
        assert controller.session.port == 9333
        assert controller.last_error is not None
        assert controller.last_error.code == "ERR_CONNECTION_REFUSED"


class TestPlayerOperations:
    """Tests for actions and state queries."""

    @pytest.mark.asyncio
    async def test_action_success(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        telemetry = MagicMock()
        controller = _build(connector, fake_clock, telemetry=telemetry)
        await controller.connect()
        fake_transport.responses["Runtime.evaluate"] = evaluate_response(
            {"success": True, "message": "Clicked next track button"}
        )

        assert await controller.next_track() is True

        method, params = fake_transport.sent[-1]
        assert method == "Runtime.evaluate"
        assert params is not None
        assert "NEXT_TRACK_BUTTON" in params["expression"]
        telemetry.track_action.assert_called_once_with("next_track")

    @pytest.mark.asyncio
    async def test_action_reports_missing_element(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.connect()
        fake_transport.responses["Runtime.evaluate"] = evaluate_response(
            {"success": False, "message": "Like button not found"}
        )

        assert await controller.like_track() is False

    @pytest.mark.asyncio
    async def test_remote_throw_does_not_reconnect(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        """Should return False and leave the connection alone."""
        controller = _build(connector, fake_clock)
        await controller.start()
        fake_transport.responses["Runtime.evaluate"] = exception_response(
            "TypeError: Cannot read properties of null"
        )

        assert await controller.toggle_playback() is False

        assert controller.is_connected is True
        assert controller.supervisor.in_progress is False
        assert len(connector.calls) == 1
        await controller.stop()

    @pytest.mark.asyncio
    async def test_action_when_disconnected(
        self, connector: FakeConnector, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)

        assert await controller.toggle_mute() is False
        assert connector.calls == []

    @pytest.mark.asyncio
    async def test_queries(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.connect()
        fake_transport.responses["Runtime.evaluate"] = evaluate_response(
            {"isPlaying": True, "isLiked": True, "isMuted": False, "debug": "svg-method"}
        )

        assert await controller.is_playing() is True
        assert await controller.is_liked() is True
        assert await controller.is_muted() is False

    @pytest.mark.asyncio
    async def test_query_failure_is_false(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.connect()
        fake_transport.responses["Runtime.evaluate"] = evaluate_response("not an object")

        assert await controller.is_playing() is False

    @pytest.mark.asyncio
    async def test_track_info_retried_until_complete(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        """Should retry while the player bar is still incomplete."""
        controller = _build(connector, fake_clock)
        await controller.connect()
        responses = iter(
            [
                evaluate_response({"success": False, "message": "Track info incomplete"}),
                evaluate_response({"success": False, "message": "Player bar not found"}),
                evaluate_response(
                    {
                        "success": True,
                        "coverUrl": "https://avatars.yandex.net/a/100x100",
                        "title": "Song",
                        "artist": "Band",
                    }
                ),
            ]
        )
        fake_transport.responses["Runtime.evaluate"] = lambda params: next(responses)

        info = await controller.get_track_info()

        assert info is not None
        assert info.title == "Song"
        assert info.cover_url == "https://avatars.yandex.net/a/400x400"

    @pytest.mark.asyncio
    async def test_track_time(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.connect()
        fake_transport.responses["Runtime.evaluate"] = evaluate_response(
            {
                "success": True,
                "currentTime": "0:42",
                "totalTime": "4:10",
                "progressValue": 42,
                "progressMax": 250,
                "progressPercent": 16.8,
            }
        )

        track_time = await controller.get_track_time()

        assert track_time is not None
        assert track_time.total_time == "4:10"


class TestReconnectHooks:
    """Tests for state changes driven by the reconnect supervisor."""

    @pytest.mark.asyncio
    async def test_loss_then_reconnect(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.start()
        assert controller.state.value == "ready"
        states: list[str] = []
        original = controller._set_state

        def record(state: Any) -> None:
            states.append(state.value)
            original(state)

        controller._set_state = record  # type: ignore[method-assign]

        fake_transport.drop()
        await _settle(lambda: len(connector.calls) == 2 and controller.state.value == "ready")

        assert states == ["reconnecting", "ready"]
        assert controller.is_connected is True
        assert controller.supervisor.attempts == 0
        await controller.stop()

    @pytest.mark.asyncio
    async def test_exhaustion_fails(
        self, connector: FakeConnector, fake_transport: FakeTransport, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.start()
        connector.outcomes = [ConnectionRefusedError()] * 3

        fake_transport.drop()
        await _settle(lambda: controller.state.value == "failed")

        assert controller.state.value == "failed"
        assert controller.last_error is not None
        assert controller.last_error.code == "ERR_RECONNECT_EXHAUSTED"
        assert controller.tracker.is_in_connect_grace() is False
        await controller.stop()


class TestStatus:
    """Tests for start() and status()."""

    @pytest.mark.asyncio
    async def test_start_without_app(self, fake_clock: FakeClock) -> None:
        """Should not raise when nothing listens on the port."""
        connector = FakeConnector()
        connector.outcomes = [ConnectionRefusedError()]
        telemetry = MagicMock()
        controller = _build(connector, fake_clock, telemetry=telemetry)

        await controller.start()

        status = controller.status()
        assert status["connected"] is False
        assert status["state"] == "not_ready"
        assert (status["host"], status["port"]) == ("localhost", 9222)
        info = telemetry.report_installation.call_args.args[0]
        assert info["yandex_music_connected"] is False
        await controller.stop()

    @pytest.mark.asyncio
    async def test_status_after_connect(
        self, connector: FakeConnector, fake_clock: FakeClock
    ) -> None:
        controller = _build(connector, fake_clock)
        await controller.connect()

        status = controller.status()

        assert status["connected"] is True
        assert status["in_connect_grace"] is True
        assert status["in_launch_grace"] is False
        assert status["reconnect_attempts"] == 0
        assert status["last_error"] is None
