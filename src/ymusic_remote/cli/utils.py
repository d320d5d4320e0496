"""Shared CLI helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import typer

from ymusic_remote.config import Settings
from ymusic_remote.controller import MusicController
from ymusic_remote.errors import ControllerError, launch_failed_error, not_connected_error
from ymusic_remote.installation import load_installation_id
from ymusic_remote.telemetry import TelemetryClient

T = TypeVar("T")


@dataclass
class CliState:
    """Per-invocation state stored on the Typer context."""

    settings: Settings
    config_path: Path | None = None


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def render_error(error: ControllerError) -> NoReturn:
    typer.echo(f"{error.code}: {error.message}", err=True)
    if error.remediation:
        typer.echo(f"Hint: {error.remediation}", err=True)
    raise typer.Exit(code=1)


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.obj
    if not isinstance(state, CliState):
        raise typer.BadParameter("CLI state not initialized")
    return state


async def _with_controller(
    settings: Settings,
    body: Callable[[MusicController], Awaitable[T]],
    *,
    ensure_ready: bool,
    require_connection: bool,
) -> T:
    telemetry = TelemetryClient(settings.telemetry, load_installation_id(settings.state_dir))
    controller = MusicController(settings, telemetry=telemetry)
    try:
        await controller.start()
        if ensure_ready and not await controller.ensure_ready():
            raise controller.last_error or launch_failed_error("app did not become ready")
        if require_connection and not controller.is_connected:
            raise not_connected_error("query the player")
        return await body(controller)
    finally:
        await controller.stop()
        await telemetry.aclose()


def run_with_controller(
    ctx: typer.Context,
    body: Callable[[MusicController], Awaitable[T]],
    *,
    ensure_ready: bool = False,
    require_connection: bool = False,
) -> T:
    """Run body against a started controller, rendering controller errors."""
    settings = get_state(ctx).settings
    try:
        return asyncio.run(
            _with_controller(
                settings,
                body,
                ensure_ready=ensure_ready,
                require_connection=require_connection,
            )
        )
    except ControllerError as exc:
        render_error(exc)
