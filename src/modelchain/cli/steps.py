"""
CLI: ``modelchain steps`` - registered step listings.
"""

from __future__ import annotations

import typer

from modelchain.cli.utils import fail, load_registry, output_rows
from modelchain.core.errors import InvalidConfigError
from modelchain.execution.scope import Scope

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_steps(
    scope: str | None = typer.Option(None, "--scope", "-s", help="privileged | restricted | dual"),
    loader: list[str] = typer.Option([], "--loader", "-l", help="Extra loader, package.module:function"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered steps and the scope table they live in."""
    try:
        wanted = Scope.parse(scope) if scope else None
    except InvalidConfigError as e:
        fail(e.message)
    registry = load_registry(loader)
    visible = {(s, n) for s, n in registry.list_steps(wanted)}
    rows = [d for d in registry.describe() if (d["scope"], d["name"]) in visible]
    output_rows(rows, as_json=json_out, title="Registered steps")
