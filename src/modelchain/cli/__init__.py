"""modelchain command line interface (Typer)."""

from modelchain.cli.app import app

__all__ = ["app"]
