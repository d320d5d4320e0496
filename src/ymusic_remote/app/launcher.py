"""Target launcher - find, restart and wait for the desktop app."""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

import structlog

from ymusic_remote.cdp.transport import probe_endpoint
from ymusic_remote.config import LifecycleConfig

logger = structlog.get_logger()

MACOS_APP_PATH = Path("/Applications/Яндекс Музыка.app")
MACOS_PROCESS_NAME = "Яндекс Музыка"
WINDOWS_EXECUTABLES = ("Яндекс Музыка.exe", "YandexMusic.exe")

ProbeFn = Callable[..., Awaitable[bool]]


class TargetLauncher(Protocol):
    """What the controller needs from a launcher."""

    def candidate_paths(self) -> list[Path]: ...

    async def detect_path(self, custom_path: Path | None = None) -> Path | None: ...

    async def launch(self, path: Path, debug_port: int) -> bool: ...

    async def wait_for_port_ready(self, port: int, max_attempts: int, interval: float) -> bool: ...


def debug_port_flag(port: int) -> str:
    return f"--remote-debugging-port={port}"


class DesktopLauncher:
    """Launches Yandex Music with the remote debugging port open.

    macOS and Windows installations are auto-detected. Elsewhere only an
    explicit executable path is accepted.
    """

    def __init__(
        self,
        config: LifecycleConfig,
        *,
        host: str = "localhost",
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        probe: ProbeFn = probe_endpoint,
        probe_timeout: float = 1.0,
    ) -> None:
        self._config = config
        self._host = host
        self._platform = platform or sys.platform
        self._environ = os.environ if environ is None else environ
        self._sleep = sleep
        self._probe = probe
        self._probe_timeout = probe_timeout

    @property
    def platform(self) -> str:
        return self._platform

    def candidate_paths(self) -> list[Path]:
        """Default install locations for the current platform."""
        if self._platform == "darwin":
            return [MACOS_APP_PATH]
        if self._platform != "win32":
            return []

        local = Path(self._environ.get("LOCALAPPDATA", "")) / "Programs"
        program_files = Path(self._environ.get("ProgramFiles", "C:\\Program Files"))
        program_files_x86 = Path(self._environ.get("ProgramFiles(x86)", "C:\\Program Files (x86)"))
        install_dirs = [
            local / "YandexMusic",
            program_files / "YandexMusic",
            program_files_x86 / "YandexMusic",
            local / "Yandex Music",
        ]
        return [directory / name for directory in install_dirs for name in WINDOWS_EXECUTABLES]

    async def detect_path(self, custom_path: Path | None = None) -> Path | None:
        """Return the app path, preferring a valid custom path.

        Args:
            custom_path: Explicit executable or bundle path, checked first

        Returns:
            Existing path, or None if nothing was found
        """
        if custom_path is not None:
            if custom_path.exists():
                logger.info("custom_app_path_valid", path=str(custom_path))
                return custom_path
            logger.warning("custom_app_path_invalid", path=str(custom_path))

        candidates = self.candidate_paths()
        if not candidates:
            logger.warning("platform_unsupported", platform=self._platform)
            return None

        for candidate in candidates:
            if candidate.exists():
                logger.info("app_found", path=str(candidate))
                return candidate

        logger.error("app_not_found", searched=[str(c) for c in candidates])
        return None

    async def launch(self, path: Path, debug_port: int) -> bool:
        """Kill any running instance, then start the app with the debug port.

        Returns:
            True once the launch command was issued successfully
        """
        logger.info("app_launching", path=str(path), port=debug_port, platform=self._platform)
        await self.kill_existing()

        flag = debug_port_flag(debug_port)
        try:
            if self._platform == "darwin":
                await asyncio.to_thread(
                    subprocess.run,
                    ["open", "-a", str(path), "--args", flag],
                    check=True,
                    capture_output=True,
                    text=True,
                )
            else:
                await asyncio.to_thread(self._spawn_detached, [str(path), flag])
        except subprocess.CalledProcessError as exc:
            reason = (exc.stderr or exc.stdout or str(exc)).strip()
            logger.error("app_launch_failed", path=str(path), error=reason)
            return False
        except OSError as exc:
            logger.error("app_launch_failed", path=str(path), error=str(exc))
            return False

        logger.info("app_launch_command_sent", path=str(path), port=debug_port)
        return True

    async def kill_existing(self) -> None:
        """Terminate a running instance. It is fine if none is running."""
        commands = self._kill_commands()
        if not commands:
            return
        logger.info("app_killing_existing", platform=self._platform)
        for argv in commands:
            try:
                await asyncio.to_thread(
                    subprocess.run,
                    argv,
                    check=False,
                    capture_output=True,
                    text=True,
                )
            except OSError as exc:
                logger.warning("app_kill_failed", command=argv[0], error=str(exc))
        await self._sleep(self._config.kill_process_wait)

    async def wait_for_port_ready(self, port: int, max_attempts: int, interval: float) -> bool:
        """Poll the debugging endpoint until it answers or attempts run out."""
        for attempt in range(1, max_attempts + 1):
            await self._sleep(interval)
            logger.debug(
                "port_ready_waiting", port=port, attempt=attempt, max_attempts=max_attempts
            )
            if await self._probe(self._host, port, timeout=self._probe_timeout):
                logger.info("port_ready", port=port, attempt=attempt)
                return True

        logger.error("port_ready_timeout", port=port, attempts=max_attempts)
        return False

    def _kill_commands(self) -> list[list[str]]:
        if self._platform == "darwin":
            return [["pkill", "-f", MACOS_PROCESS_NAME]]
        if self._platform == "win32":
            return [["taskkill", "/F", "/IM", name] for name in WINDOWS_EXECUTABLES]
        return []

    def _spawn_detached(self, argv: list[str]) -> None:
        if self._platform == "win32":
            flags = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0
            )
            subprocess.Popen(
                argv,
                creationflags=flags,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return
        subprocess.Popen(
            argv,
            start_new_session=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
