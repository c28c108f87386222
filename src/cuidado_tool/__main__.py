"""Punto de entrada: ``python -m cuidado_tool``."""

from __future__ import annotations

from cuidado_tool.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
