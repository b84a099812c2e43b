from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_email_status, render_summary
from models.records import MotorState


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the smart drainage monitor.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    distance: float = typer.Argument(..., min=0, help="Distance to the water surface in cm."),
    motor: MotorState = typer.Argument(..., case_sensitive=False, help="Pump motor state."),
) -> None:
    """Post a single reading, as the sensor node would."""
    state = _get_state(ctx)
    state.client.send_reading(distance, motor.value)
    typer.secho(
        f"Reading accepted. distance={distance:g} motor={motor.value}",
        fg=typer.colors.GREEN,
    )


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show how many readings are stored and the latest one."""
    state = _get_state(ctx)
    render_summary(state.client.get_summary())


@app.command("email-check")
def email_check_command(ctx: typer.Context) -> None:
    """Verify that the server can reach its SMTP relay."""
    state = _get_state(ctx)
    payload = state.client.check_email()
    render_email_status(payload)
    if payload.get("emailSystem") != "OK":
        raise typer.Exit(code=1)


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to HOST env)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (defaults to PORT env)."),
) -> None:
    """Run the monitor HTTP server."""
    import uvicorn

    from settings import get_settings

    settings = get_settings()
    bind_host = host or settings.host
    bind_port = port or settings.port
    typer.echo(f"Server running at http://{bind_host}:{bind_port}")
    uvicorn.run("app.main:app", host=bind_host, port=bind_port, log_config=None)
