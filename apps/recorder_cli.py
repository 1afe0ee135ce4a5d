from __future__ import annotations

import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from apps.ui_api.main import create_app
from config.paths import Paths, get_paths
from core.errors import ConfigurationError
from core.schedule import next_opening
from recording.coordinator import Coordinator
from recording.event_writer import EventLog
from sdk.config import AppConfig, load_config
from sdk.notifier import build_notifier


app = typer.Typer(add_completion=False, no_args_is_help=True)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Configuration document (default: $SHOWREC_CONFIG or ./config.json)",
)


def _load(config: Optional[Path]) -> AppConfig:
    try:
        return load_config(config)
    except ConfigurationError as exc:
        typer.echo(f"[showrec] {exc}", err=True)
        raise typer.Exit(code=2)


def _serve_api(coordinator: Coordinator, paths: Paths, host: str, port: int) -> uvicorn.Server:
    server = uvicorn.Server(
        uvicorn.Config(create_app(coordinator, paths), host=host, port=port, log_level="warning")
    )
    threading.Thread(target=server.run, name="status-api", daemon=True).start()
    return server


@app.command()
def run(
    config: Optional[Path] = ConfigOption,
    api_port: Optional[int] = typer.Option(None, help="Serve the status API on this port"),
    api_host: str = typer.Option("127.0.0.1", help="Status API bind address"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not echo log lines to the console"),
) -> None:
    """Watch the schedule and record every window as it opens."""

    cfg = _load(config)

    # Resolve all directories via centralized config
    paths = get_paths(cfg.output_directory, force_refresh=True)
    try:
        paths.verify_writeable()
    except OSError as exc:
        typer.echo(f"[showrec] {exc}", err=True)
        raise typer.Exit(code=1)

    log = EventLog.open(paths.log_file, paths.events_file, echo=not quiet)
    notifier = build_notifier(cfg)
    coordinator = Coordinator.from_config(cfg, paths, log, notifier)

    # Graceful shutdown
    stop_event = threading.Event()

    def _stop(*_object: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    coordinator.start()
    server = _serve_api(coordinator, paths, api_host, api_port) if api_port else None

    typer.echo(f"[showrec] Recording into {paths.output_root}")
    typer.echo("Press Ctrl+C to stop.")

    try:
        while not stop_event.is_set():
            stop_event.wait(0.25)
    finally:
        if server is not None:
            server.should_exit = True
        coordinator.stop(cancel_jobs=True)
        notifier.close()
        log.close()


@app.command()
def check(config: Optional[Path] = ConfigOption) -> None:
    """Validate the configuration and list each window's next opening."""

    cfg = _load(config)
    now = datetime.now()
    typer.echo(f"[showrec] {len(cfg.sources)} source(s), output: {cfg.output_directory}")
    for source in cfg.sources:
        typer.echo(f"{source.name}  {source.capture_url}")
        if not source.windows:
            typer.echo("  (no windows)")
        for window in source.windows:
            opens = next_opening(now, window)
            typer.echo(
                f"  {window.day_name:<9} {window.start:%H:%M}-{window.end:%H:%M}"
                f"  next: {opens:%Y-%m-%d %H:%M}"
            )


if __name__ == "__main__":
    app()
