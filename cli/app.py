from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer
import uvicorn

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_health, render_latest, render_readings, render_statistics


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the environmental sensor hub.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Sensor hub base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    if ctx.invoked_subcommand == "serve":
        return
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the latest stored reading and the live values."""
    render_latest(_get_state(ctx).client.latest())


@app.command("recent")
def recent_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Argument(None, help="Number of readings (default 100)."),
) -> None:
    """List the most recent readings, newest first."""
    render_readings(_get_state(ctx).client.recent(limit))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    hours: Optional[int] = typer.Argument(None, help="Window length in hours (default 24)."),
) -> None:
    """Show average, minimum and maximum per metric."""
    render_statistics(_get_state(ctx).client.statistics(hours))


@app.command("range")
def range_command(
    ctx: typer.Context,
    start: str = typer.Option(..., "--start", help="ISO-8601 start timestamp."),
    end: str = typer.Option(..., "--end", help="ISO-8601 end timestamp."),
) -> None:
    """List readings recorded between two timestamps."""
    render_readings(_get_state(ctx).client.reading_range(start, end))


@app.command("cleanup")
def cleanup_command(
    ctx: typer.Context,
    days: Optional[int] = typer.Argument(None, help="Retention in days (default 30)."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete readings older than the retention window."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm(
            f"Permanently delete readings older than {days or 30} days?",
            abort=True,
        )
    payload = state.client.cleanup(days)
    typer.secho(payload.get("message", "Cleanup finished."), fg=typer.colors.GREEN)


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Show service liveness and connectivity."""
    render_health(_get_state(ctx).client.health())


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
) -> None:
    """Run the ingestion service and HTTP API."""
    uvicorn.run("app.main:app", host=host, port=port, log_config=None)
