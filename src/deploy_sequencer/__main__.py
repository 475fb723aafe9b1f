"""Module entrypoint for ``python -m deploy_sequencer``."""

from __future__ import annotations

from deploy_sequencer.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
