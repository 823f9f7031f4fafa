"""quarterhour package initialization."""

from ._build_info import APP_VERSION

__all__ = []

# The release process bumps ``APP_VERSION``; the CLI reports it with --version.
__version__ = APP_VERSION
