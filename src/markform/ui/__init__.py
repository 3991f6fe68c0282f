"""Command-line interface and plain-text rendering."""

from markform.ui.cli import CLIError, build_parser, cli_entrypoint, main, run_cli
from markform.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "cli_entrypoint",
    "create_renderer",
    "main",
    "run_cli",
]
