"""Executable entry point for ``python -m quarterhour``."""

from __future__ import annotations

import sys

from quarterhour.app import main


if __name__ == "__main__":
    sys.exit(main())
