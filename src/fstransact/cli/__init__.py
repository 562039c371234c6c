"""CLI entrypoints for fstransact."""

from fstransact.cli.apply import app, main, run_cli

__all__ = ["app", "main", "run_cli"]
