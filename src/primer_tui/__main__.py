"""Thin runnable wrapper for ``python -m primer_tui``."""

from primer_tui.tui_app import main

if __name__ == "__main__":
    raise SystemExit(main())
