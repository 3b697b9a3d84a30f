"""
WAU CLI components.

- report.py: one-shot analysis used by analyze/setup/recommendations
- render.py: rich panels and tables
- typer_commands.py: CLI entry points
"""

from wau.cli.typer_commands import app, main

__all__ = ["app", "main"]
