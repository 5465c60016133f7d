"""Module entrypoint for ``python -m compliance_workflow``."""

from __future__ import annotations

from compliance_workflow.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
