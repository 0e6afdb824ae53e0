"""Module entry point: python -m tour_export ..."""

from __future__ import annotations

from tour_export.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
