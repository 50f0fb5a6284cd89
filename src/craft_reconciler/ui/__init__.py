"""Command-line surface for craft-reconciler."""

from craft_reconciler.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
