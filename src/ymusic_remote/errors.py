"""Error model - Actionable errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ControllerError(Exception):
    """
    Base error with context and remediation guidance.

    Every failure the controller surfaces carries a stable code so callers can
    tell "the app is still warming up" apart from "the app is broken".
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }


# Specific error constructors for common cases


def connection_refused_error(host: str, port: int) -> ControllerError:
    """Create error for an unreachable debugging endpoint."""
    return ControllerError(
        code="ERR_CONNECTION_REFUSED",
        message=f"Failed to connect to Yandex Music on {host}:{port}",
        context={"host": host, "port": port},
        remediation=(
            f"Ensure the app is running with --remote-debugging-port={port} "
            "or let the controller launch it."
        ),
    )


def transport_error(operation: str, reason: str) -> ControllerError:
    """Create error for a connect or transport failure other than refusal."""
    return ControllerError(
        code="ERR_TRANSPORT",
        message=f"Transport failure during {operation}: {reason}",
        context={"operation": operation, "reason": reason},
        remediation="Check the debugging endpoint is reachable and retry.",
    )


def not_connected_error(operation: str = "execute") -> ControllerError:
    """Create error for a command issued with no live session."""
    return ControllerError(
        code="ERR_NOT_CONNECTED",
        message=f"Not connected: cannot {operation}",
        context={"operation": operation},
        remediation="Call ensure_ready() or connect() before issuing commands.",
    )


def remote_exception_error(description: str) -> ControllerError:
    """Create error for an exception thrown inside the target page."""
    return ControllerError(
        code="ERR_REMOTE_EXCEPTION",
        message=f"Remote evaluation threw: {description}",
        context={"description": description},
        remediation="The UI may still be loading; retry, or check DOM selectors are current.",
    )


def decode_error(operation: str, reason: str, value: Any = None) -> ControllerError:
    """Create error for a response that does not match the expected shape."""
    return ControllerError(
        code="ERR_DECODE",
        message=f"Unexpected response for {operation}: {reason}",
        context={"operation": operation, "reason": reason, "value": value},
        remediation="DOM selectors or the protocol response may have changed.",
    )


def reconnect_exhausted_error(attempts: int) -> ControllerError:
    """Create error for a reconnection loop that used up its budget."""
    return ControllerError(
        code="ERR_RECONNECT_EXHAUSTED",
        message=f"Reconnection failed after {attempts} attempts",
        context={"attempts": attempts},
        remediation="Restart Yandex Music or trigger any action to relaunch it.",
    )


def launch_failed_error(reason: str, path: str | None = None) -> ControllerError:
    """Create error for a target process that could not be started."""
    return ControllerError(
        code="ERR_LAUNCH_FAILED",
        message=f"Failed to launch Yandex Music: {reason}",
        context={"reason": reason, "path": path},
        remediation="Verify the executable path and that no other instance blocks the port.",
    )


def app_not_found_error(searched: list[str]) -> ControllerError:
    """Create error for a missing application installation."""
    return ControllerError(
        code="ERR_APP_NOT_FOUND",
        message="Yandex Music not found",
        context={"searched": searched},
        remediation=(
            "Install from https://music.yandex.ru/download/ or set a custom path "
            "with --app-path / YMUSIC_REMOTE_APP_PATH."
        ),
    )


def invalid_config_error(source: str, reason: str) -> ControllerError:
    """Create error for an unreadable or invalid configuration."""
    return ControllerError(
        code="ERR_INVALID_CONFIG",
        message=f"Invalid configuration in {source}: {reason}",
        context={"source": source, "reason": reason},
        remediation="Fix the config file or environment override and retry.",
    )
