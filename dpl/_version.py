"""Package version, from the installed distribution metadata."""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION = "pydpl"

try:
    __version__: str = version(DISTRIBUTION)
except PackageNotFoundError:
    # source checkout that was never pip-installed
    __version__ = "0.1.0.dev0"
