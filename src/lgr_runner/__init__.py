"""LuckyGuess R runner - executes R transformation scripts against Redshift."""

import re
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

# Try to get version from installed package first
try:
    __version__ = version("lgr-runner")
except PackageNotFoundError:
    # Package not installed, read from pyproject.toml
    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        with open(pyproject_path, "r", encoding="utf-8") as f:
            match = re.search(r'version\s*=\s*["\']([^"\']+)["\']', f.read())
            __version__ = match.group(1) if match else "0.3.0"
    else:
        __version__ = "0.3.0"

# Tag attached to every file the runner stores
PRODUCT_TAG = "LuckyGuess"
