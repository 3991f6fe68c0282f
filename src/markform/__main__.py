"""Module entrypoint for ``python -m markform``."""

from __future__ import annotations

from markform.ui.cli import cli_entrypoint

if __name__ == "__main__":
    cli_entrypoint()
