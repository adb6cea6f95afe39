from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _fmt(value: Optional[float]) -> str:
    return "--" if value is None else f"{value:.2f}"


def _reading_line(reading: Dict[str, Any]) -> str:
    return (
        f"#{reading.get('id')} {reading.get('timestamp')} "
        f"temp={_fmt(reading.get('temperature'))} "
        f"humidity={_fmt(reading.get('humidity'))} "
        f"air_quality={_fmt(reading.get('air_quality'))}"
    )


def render_latest(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    reading = payload.get("data")
    if reading:
        typer.echo(_reading_line(reading))
    else:
        typer.echo("No readings stored yet.")

    realtime = payload.get("realtime") or {}
    typer.echo()
    echo_heading("Realtime Values")
    echo_key_values(
        [
            ("temperature", _fmt(realtime.get("temperature"))),
            ("humidity", _fmt(realtime.get("humidity"))),
            ("air_quality", _fmt(realtime.get("air_quality"))),
            ("last_update", realtime.get("last_update") or "never"),
        ]
    )


def render_readings(payload: Dict[str, Any]) -> None:
    echo_heading(f"Readings ({payload.get('count', 0)})")
    readings = payload.get("data") or []
    if not readings:
        typer.echo("No readings found.")
        return
    for reading in readings:
        typer.echo(f"  - {_reading_line(reading)}")


def render_statistics(payload: Dict[str, Any]) -> None:
    echo_heading(f"Statistics for the last {payload.get('period')}")
    stats = payload.get("statistics") or {}
    typer.echo(f"total_records: {stats.get('total_records', 0)}")
    for label, prefix in (
        ("temperature", "temp"),
        ("humidity", "humidity"),
        ("air_quality", "air_quality"),
    ):
        typer.echo(
            f"{label}: avg={_fmt(stats.get(f'avg_{prefix}'))} "
            f"min={_fmt(stats.get(f'min_{prefix}'))} "
            f"max={_fmt(stats.get(f'max_{prefix}'))}"
        )


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Service Health")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("mqtt", payload.get("mqtt")),
            ("database", payload.get("database")),
            ("records", payload.get("records")),
            ("uptime", payload.get("uptime")),
            ("device_status", payload.get("device_status") or "unknown"),
        ]
    )
    ingestion = payload.get("ingestion") or {}
    if ingestion:
        typer.echo("ingestion:")
        for key, value in ingestion.items():
            typer.echo(f"  - {key}: {value}")
