"""
CLI: ``modelchain pipeline`` - inspect pipeline documents.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from modelchain.cli.utils import console, fail, load_registry, output_rows, run_async
from modelchain.core.errors import ModelchainError
from modelchain.execution.inspection import StepReport, describe_pipeline
from modelchain.execution.scope import Scope
from modelchain.execution.spec_yaml import PipelineDocument

app = typer.Typer(no_args_is_help=True)


def _flatten(reports: list[StepReport], depth: int = 0) -> list[dict]:
    rows = []
    for report in reports:
        row = report.to_dict()
        row.pop("children")
        row["name"] = "  " * depth + ("└ " if depth else "") + report.name
        rows.append(row)
        rows.extend(_flatten(report.children, depth + 1))
    return rows


@app.command("describe")
def describe(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Pipeline document (YAML or JSON)"),
    model: str | None = typer.Option(None, "--model", "-m", help="Only this model"),
    operation: str | None = typer.Option(None, "--operation", "-o", help="Only this operation"),
    scope: str = typer.Option("privileged", "--scope", "-s", help="privileged | restricted"),
    loader: list[str] = typer.Option([], "--loader", "-l", help="Extra loader, package.module:function"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show how each operation pipeline resolves in an environment."""
    try:
        env = Scope.environment(scope)
        document = PipelineDocument.from_yaml_file(file)
        models = [document.get_model(model)] if model else document.models
    except ModelchainError as e:
        fail(e.message)

    registry = load_registry(loader)
    result: dict[str, dict[str, list[dict]]] = {}
    for spec in models:
        pipelines = spec.to_specs()
        if operation is not None:
            if operation not in pipelines:
                fail(f"Model '{spec.name}' has no operation '{operation}'")
            pipelines = {operation: pipelines[operation]}
        for op, specs in pipelines.items():
            reports = run_async(describe_pipeline(specs, env, registry))
            if json_out:
                result.setdefault(spec.name, {})[op] = [r.to_dict() for r in reports]
            else:
                output_rows(_flatten(reports), title=f"{spec.name}.{op} ({env.value})")

    if json_out:
        console.print_json(json.dumps(result, default=str))
