"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path

import typer

from ymusic_remote.cli.utils import (
    CliState,
    format_json,
    get_state,
    render_error,
    run_with_controller,
)
from ymusic_remote.config import load_settings, save_port
from ymusic_remote.controller import MusicController
from ymusic_remote.errors import ControllerError
from ymusic_remote.log import configure_logging

app = typer.Typer(
    name="ymusic-remote",
    help="Remote control for the Yandex Music desktop app",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Debugging endpoint host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Debugging endpoint port"),
    app_path: Path | None = typer.Option(None, "--app-path", help="Yandex Music executable"),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
    log_level: str = typer.Option("warning", "--log-level", help="debug|info|warning|error"),
) -> None:
    """Remote control for the Yandex Music desktop app."""
    try:
        configure_logging(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from None

    try:
        settings = load_settings(config).with_overrides(host=host, port=port, app_path=app_path)
    except ControllerError as exc:
        render_error(exc)
    ctx.obj = CliState(settings=settings, config_path=config)


@app.command()
def version() -> None:
    """Show version information."""
    from ymusic_remote import __version__

    typer.echo(f"ymusic-remote v{__version__}")


def _action(
    ctx: typer.Context,
    operation: Callable[[MusicController], Awaitable[bool]],
    done: str,
) -> None:
    ok = run_with_controller(ctx, operation, ensure_ready=True)
    if not ok:
        typer.echo("Action failed: control not found in the player", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ {done}")


@app.command("play-pause")
def play_pause(ctx: typer.Context) -> None:
    """Toggle playback."""
    _action(ctx, lambda c: c.toggle_playback(), "Playback toggled")


@app.command("next")
def next_track(ctx: typer.Context) -> None:
    """Skip to the next track."""
    _action(ctx, lambda c: c.next_track(), "Next track")


@app.command("previous")
def previous_track(ctx: typer.Context) -> None:
    """Go back to the previous track."""
    _action(ctx, lambda c: c.previous_track(), "Previous track")


@app.command()
def like(ctx: typer.Context) -> None:
    """Like the current track."""
    _action(ctx, lambda c: c.like_track(), "Liked")


@app.command()
def dislike(ctx: typer.Context) -> None:
    """Dislike the current track."""
    _action(ctx, lambda c: c.dislike_track(), "Disliked")


@app.command()
def mute(ctx: typer.Context) -> None:
    """Toggle mute."""
    _action(ctx, lambda c: c.toggle_mute(), "Mute toggled")


@app.command()
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show connection status and player state."""

    async def _collect(controller: MusicController) -> dict[str, object]:
        data: dict[str, object] = dict(controller.status())
        if controller.is_connected:
            data["playing"] = await controller.is_playing()
            data["liked"] = await controller.is_liked()
            data["muted"] = await controller.is_muted()
        return data

    data = run_with_controller(ctx, _collect)
    if json_output:
        typer.echo(format_json(data))
        return

    typer.echo(
        f"{data['host']}:{data['port']}  state={data['state']} connected={data['connected']}"
    )
    if data["connected"]:
        typer.echo(f"playing={data['playing']} liked={data['liked']} muted={data['muted']}")


@app.command()
def track(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show the current track."""
    info = run_with_controller(ctx, lambda c: c.get_track_info(), require_connection=True)
    if info is None:
        typer.echo("Track info not available", err=True)
        raise typer.Exit(code=1)
    if json_output:
        typer.echo(format_json(info.model_dump()))
        return
    typer.echo(f"{info.artist} - {info.title}")
    typer.echo(f"Cover: {info.cover_url}")


@app.command("time")
def track_time(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show the playback position."""
    position = run_with_controller(ctx, lambda c: c.get_track_time(), require_connection=True)
    if position is None:
        typer.echo("Track time not available", err=True)
        raise typer.Exit(code=1)
    if json_output:
        typer.echo(format_json(position.model_dump()))
        return
    typer.echo(
        f"{position.current_time} / {position.total_time} ({position.progress_percent:.0f}%)"
    )


@app.command("set-port")
def set_port(
    ctx: typer.Context,
    port: int = typer.Argument(..., min=1, max=65535, help="Debugging port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Switch to another debugging port and remember it."""
    state = get_state(ctx)
    changed = port != state.settings.cdp.port

    async def _switch(controller: MusicController) -> bool:
        if changed:
            await controller.set_port(port)
        return controller.is_connected

    connected = run_with_controller(ctx, _switch)
    if changed:
        try:
            save_port(port, state.config_path)
        except ControllerError as exc:
            render_error(exc)

    data = {"port": port, "changed": changed, "connected": connected}
    if json_output:
        typer.echo(format_json(data))
        return
    if not changed:
        typer.echo(f"Port unchanged ({port})")
    else:
        typer.echo(f"✓ Port set to {port} (connected={connected})")


@app.command()
def watch(
    ctx: typer.Context,
    interval: float = typer.Option(1.0, "--interval", help="Seconds between updates"),
    count: int = typer.Option(0, "--count", help="Stop after N updates (0 = until interrupted)"),
) -> None:
    """Print the current track and position until interrupted."""

    async def _watch(controller: MusicController) -> None:
        shown = 0
        while count == 0 or shown < count:
            info = await controller.get_track_info()
            position = await controller.get_track_time()
            if info is None:
                typer.echo("-")
            elif position is None:
                typer.echo(f"{info.artist} - {info.title}")
            else:
                typer.echo(
                    f"{info.artist} - {info.title}  "
                    f"{position.current_time} / {position.total_time}"
                )
            shown += 1
            if count == 0 or shown < count:
                await asyncio.sleep(interval)

    try:
        run_with_controller(ctx, _watch, ensure_ready=True)
    except KeyboardInterrupt:
        raise typer.Exit(code=0) from None


if __name__ == "__main__":
    app()
