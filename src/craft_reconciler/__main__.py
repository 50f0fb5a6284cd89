"""Module entrypoint for ``python -m craft_reconciler``."""

from __future__ import annotations

from craft_reconciler.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
