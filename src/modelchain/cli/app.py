"""
Root Typer application for the modelchain CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from modelchain.core.logging import configure_logging
from modelchain.core.settings import get_settings

app = Typer(
    name="modelchain",
    help="modelchain - inspect step registries and operation pipelines.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from modelchain import __version__

        typer.echo(f"modelchain {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override MODELCHAIN_LOG_LEVEL."),
) -> None:
    """modelchain CLI - list registered steps, describe pipeline documents."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json,
        service=settings.service_name,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from modelchain.cli.pipeline import app as pipeline_app  # noqa: E402
from modelchain.cli.steps import app as steps_app  # noqa: E402

app.add_typer(steps_app, name="steps", help="Registered steps.")
app.add_typer(pipeline_app, name="pipeline", help="Pipeline documents.")
