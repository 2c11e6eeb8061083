"""
CLI utility helpers - output formatting and registry loading.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from modelchain.core.errors import ModelchainError
from modelchain.execution.registry import StepRegistry, get_default_registry

console = Console()
err_console = Console(stderr=True)


# ── Registry helper ──────────────────────────────────────────────────────


def load_registry(loaders: list[str] | None = None) -> StepRegistry:
    """Default registry plus application loaders (``package.module:function``)."""
    registry = get_default_registry()
    for loader in loaders or []:
        registry.add_loader(loader)
    run_async(registry.ensure_ready())
    return registry


def run_async(coro: Any) -> Any:
    """Run a coroutine, turning engine errors into a clean CLI failure."""
    try:
        return asyncio.run(coro)
    except ModelchainError as e:
        fail(e.message)


def fail(message: str) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_rows(rows: list[Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of records as JSON or a Rich table."""
    if as_json:
        console.print_json(json.dumps([_to_dict(r) for r in rows], default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    _print_table(rows, title=title)


def _print_table(items: list[Any], *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*("" if v is None else str(v) for v in d.values()))
    console.print(table)
