"""Telemetry - fire-and-forget error, installation and action reports."""

from __future__ import annotations

import asyncio
import platform
import sys
import traceback
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import httpx
import structlog

from ymusic_remote import __version__
from ymusic_remote.config import TelemetryConfig

logger = structlog.get_logger()

ERROR_REPORT_PATH = "/report-error.php"
INSTALLATION_REPORT_PATH = "/report-installation.php"
ACTION_TRACKING_PATH = "/count-action.php"


def collect_installation_info(connected: bool, app_path: Path | None) -> dict[str, Any]:
    """Describe this host for an installation report."""
    return {
        "platform": sys.platform,
        "os_version": platform.version(),
        "os_release": platform.release(),
        "controller_version": __version__,
        "python_version": platform.python_version(),
        "yandex_music_connected": connected,
        "yandex_music_path": str(app_path) if app_path else None,
    }


class TelemetryClient:
    """Sends reports in the background without ever raising.

    Disabled when no endpoint is configured. Every payload carries the
    installation id handed in at construction.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        installation_id: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._installation_id = installation_id
        self._client = client
        self._owns_client = client is None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._config.endpoint)

    @property
    def installation_id(self) -> str:
        return self._installation_id

    def report_error(self, message: str, error: BaseException | None = None) -> None:
        """Report an error. Returns immediately."""
        error_message = message
        stack_trace = None
        if error is not None:
            detail = str(error) or type(error).__name__
            if detail not in message:
                error_message = f"{message}: {detail}"
            if error.__traceback__ is not None:
                stack_trace = "".join(traceback.format_exception(error))
        payload = {
            "installation_id": self._installation_id,
            "error_message": error_message,
            "stack_trace": stack_trace,
        }
        self._schedule(self._post(ERROR_REPORT_PATH, payload))

    def report_installation(self, info: dict[str, Any]) -> None:
        payload = {**info, "installation_id": self._installation_id}
        self._schedule(self._post(INSTALLATION_REPORT_PATH, payload))

    def track_action(self, name: str) -> None:
        params = {"id": name, "installation_id": self._installation_id}
        self._schedule(self._get(ACTION_TRACKING_PATH, params))

    async def flush(self) -> None:
        """Wait for reports already in flight."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.flush()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        if not self.enabled:
            coro.close()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("telemetry_skipped_no_loop")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout)
        return self._client

    def _url(self, path: str) -> str:
        return f"{str(self._config.endpoint).rstrip('/')}{path}"

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        try:
            await self._get_client().post(self._url(path), json=payload)
        except httpx.HTTPError as exc:
            logger.debug("telemetry_send_failed", path=path, error=str(exc))

    async def _get(self, path: str, params: dict[str, str]) -> None:
        try:
            await self._get_client().get(self._url(path), params=params)
            logger.debug("telemetry_action_sent", action=params.get("id"))
        except httpx.HTTPError as exc:
            logger.debug("telemetry_send_failed", path=path, error=str(exc))
