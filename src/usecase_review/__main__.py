"""Module entrypoint for ``python -m usecase_review``."""

from __future__ import annotations

from usecase_review.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
