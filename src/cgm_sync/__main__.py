"""Entry point for ``python -m cgm_sync``."""

from __future__ import annotations

from cgm_sync.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
