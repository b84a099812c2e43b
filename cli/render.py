from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_ts(value: Any) -> Any:
    if not isinstance(value, (int, float)):
        return value
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="seconds")


def render_summary(payload: Dict[str, Any]) -> None:
    echo_heading("Readings")
    echo_key_values([("count", payload.get("count"))])

    latest = payload.get("latest")
    typer.echo()
    echo_heading("Latest")
    if latest:
        echo_key_values(
            [
                ("distance", latest.get("distance")),
                ("motor", latest.get("motor")),
                ("received_at", _format_ts(latest.get("ts"))),
            ]
        )
    else:
        typer.echo("No readings recorded.")


def render_email_status(payload: Dict[str, Any]) -> None:
    status = payload.get("emailSystem")
    echo_heading("Email System")
    typer.secho(
        f"status: {status}",
        fg=typer.colors.GREEN if status == "OK" else typer.colors.RED,
    )
    config = payload.get("config") or {}
    if config:
        echo_key_values(
            [
                ("service", config.get("service")),
                ("from", config.get("from")),
                ("to", config.get("to")),
            ]
        )
    if payload.get("message"):
        echo_key_values([("message", payload.get("message"))])
