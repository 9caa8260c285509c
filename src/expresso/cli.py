"""Typer CLI entrypoints for expresso."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import typer

from expresso import __version__
from expresso.config import ConfigError, Settings, initialize_config, load_settings
from expresso.errors import (
    ExpressoError,
    HelperTimeout,
    LocationNotFoundError,
    ManifestError,
    error_summary,
)
from expresso.kernel.debug_log import DebugLogWriter
from expresso.kernel.diagnostics import Diagnostics, console_threshold
from expresso.manifest import resolve_manifest
from expresso.native.transport import NativeMessagingTransport
from expresso.repl import FrameEcho, run_repl
from expresso.ui.alfred import render_alfred
from expresso.ui.render import render_locations, render_notice, render_status
from expresso.xvpn.client import ExpressVPNClient
from expresso.xvpn.resolve import resolve_connect_args

EventSink = Callable[[str, Dict[str, Any]], None]

app = typer.Typer(
    no_args_is_help=True,
    help="Control ExpressVPN through its browser helper.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo("expresso v{0}".format(__version__))
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity, can be repeated"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only output necessary information and errors"),
    timeout: Optional[int] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Override the connect/disconnect timeout (in milliseconds)",
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config.toml"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print the version of this program",
    ),
) -> None:
    ctx.obj = {
        "verbose": verbose,
        "quiet": quiet,
        "timeout": timeout,
        "config": config,
    }


def _options(ctx: typer.Context) -> Dict[str, Any]:
    return dict(ctx.obj or {})


def _load(ctx: typer.Context) -> Settings:
    options = _options(ctx)
    settings = load_settings(options.get("config"))
    timeout = options.get("timeout")
    if timeout is not None and int(timeout) > 0:
        settings.connect_timeout_ms = int(timeout)
        settings.disconnect_timeout_ms = int(timeout)
    return settings


def _diagnostics(ctx: typer.Context, settings: Settings) -> Diagnostics:
    options = _options(ctx)
    writer = DebugLogWriter(
        logs_dir=settings.logs_dir,
        enabled=settings.logs_enabled,
        max_file_bytes=settings.logs_max_file_bytes,
        max_files=settings.logs_max_files,
    )
    return Diagnostics(
        writer=writer,
        threshold=console_threshold(int(options.get("verbose") or 0), bool(options.get("quiet"))),
    )


def _build_client(settings: Settings, event_sink: EventSink) -> ExpressVPNClient:
    manifest = resolve_manifest(settings.manifest_name, extra_dirs=settings.manifest_dirs)
    event_sink(
        "client.manifest.loaded",
        {"name": manifest.name, "helper": str(manifest.path), "manifest": str(manifest.manifest_path)},
    )
    transport = NativeMessagingTransport(
        manifest,
        max_message_bytes=settings.max_message_bytes,
        event_sink=event_sink,
    )
    return ExpressVPNClient(transport, config=settings.client_config(), event_sink=event_sink)


@contextmanager
def _client_session(
    settings: Settings,
    event_sink: EventSink,
    refresh_status: bool = True,
) -> Iterator[ExpressVPNClient]:
    client = _build_client(settings, event_sink)
    try:
        client.start()
        client.wait_for_connection()
        if refresh_status:
            client.refresh_status()
        yield client
    finally:
        client.close()


def _fail(message: str, code: int) -> int:
    typer.echo(render_notice("error", message), err=True)
    return code


def _execute(ctx: typer.Context, action: Callable[[ExpressVPNClient, Settings], int]) -> int:
    try:
        settings = _load(ctx)
    except ConfigError as exc:
        return _fail(str(exc), 2)

    try:
        with _client_session(settings, _diagnostics(ctx, settings)) as client:
            return action(client, settings)
    except (ManifestError, LocationNotFoundError) as exc:
        return _fail(error_summary(exc), 2)
    except HelperTimeout as exc:
        return _fail(str(exc), 1)
    except ExpressoError as exc:
        return _fail(error_summary(exc), 1)


@app.command("init")
def init_cmd(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
) -> None:
    """Write a config file with the default settings."""
    try:
        path = initialize_config(_options(ctx).get("config"), force=force)
    except ConfigError as exc:
        raise typer.Exit(code=_fail(str(exc), 2))
    typer.echo(render_notice("success", "Initialized config at: {0}".format(path)))


@app.command("status")
def status_cmd(ctx: typer.Context) -> None:
    """Show the current VPN status."""

    def action(client: ExpressVPNClient, _settings: Settings) -> int:
        render_status(client.latest_status, stream=sys.stdout, app_version=client.app_version)
        return 0

    raise typer.Exit(code=_execute(ctx, action))


@app.command("locations")
def locations_cmd(ctx: typer.Context) -> None:
    """List all available VPN locations."""

    def action(client: ExpressVPNClient, _settings: Settings) -> int:
        render_locations(client.refresh_locations(), stream=sys.stdout)
        return 0

    raise typer.Exit(code=_execute(ctx, action))


@app.command("connect")
def connect_cmd(
    ctx: typer.Context,
    location: Optional[str] = typer.Argument(
        None,
        help="Location to connect to, either location id, country or keyword",
    ),
) -> None:
    """Connect to a VPN location."""

    def action(client: ExpressVPNClient, settings: Settings) -> int:
        catalog = client.refresh_locations()
        args, description = resolve_connect_args(location, catalog)
        typer.echo(render_notice("info", "Connecting to {0}".format(description)), err=True)
        client.connect(args, timeout=settings.connect_timeout_ms / 1000.0)
        status = client.refresh_status()
        typer.echo("Connected to '{0}'".format(status.current_location.name))
        return 0

    raise typer.Exit(code=_execute(ctx, action))


@app.command("disconnect")
def disconnect_cmd(ctx: typer.Context) -> None:
    """Disconnect from the current VPN location."""

    def action(client: ExpressVPNClient, settings: Settings) -> int:
        client.disconnect(timeout=settings.disconnect_timeout_ms / 1000.0)
        typer.echo("Disconnected")
        return 0

    raise typer.Exit(code=_execute(ctx, action))


@app.command("alfred")
def alfred_cmd(
    ctx: typer.Context,
    locations: bool = typer.Option(False, "--locations", help="Output all locations for the Alfred workflow"),
) -> None:
    """Output the main options for the Alfred workflow."""

    def action(client: ExpressVPNClient, _settings: Settings) -> int:
        catalog = client.refresh_locations()
        typer.echo(render_alfred(client.latest_status, catalog, all_locations=locations))
        return 0

    raise typer.Exit(code=_execute(ctx, action))


@app.command("repl")
def repl_cmd(ctx: typer.Context) -> None:
    """Interactively exchange raw JSON messages with the helper."""
    try:
        settings = _load(ctx)
    except ConfigError as exc:
        raise typer.Exit(code=_fail(str(exc), 2))

    sink = FrameEcho(sys.stdout, downstream=_diagnostics(ctx, settings))
    try:
        with _client_session(settings, sink, refresh_status=False) as client:
            code = run_repl(client.call_raw)
    except ManifestError as exc:
        code = _fail(error_summary(exc), 2)
    except HelperTimeout as exc:
        code = _fail(str(exc), 1)
    except ExpressoError as exc:
        code = _fail(error_summary(exc), 1)
    raise typer.Exit(code=code)


def run() -> None:
    app()
