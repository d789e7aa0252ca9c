# app/core/version.py
"""Version string from a VERSION file, the installed distribution or git."""
import subprocess
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version as dist_version
from pathlib import Path


DIST_NAME = "plasma-x402-gateway"
VERSION_FILE = Path(__file__).parent.parent.parent / "VERSION"


@lru_cache()
def get_version() -> str:
    """Resolve the gateway version.

    Priority:
    1. VERSION file (written by container builds)
    2. Git describe, e.g. 0.3.1-4-g840eba4 (local checkouts)
    3. Installed distribution metadata
    4. Fallback to 0.0.0-unknown
    """
    if VERSION_FILE.exists():
        version = VERSION_FILE.read_text().strip()
        if version:
            return version

    try:
        return subprocess.run(
            ["git", "describe", "--tags", "--always", "--dirty"],
            cwd=VERSION_FILE.parent,
            capture_output=True,
            text=True,
            check=True
        ).stdout.strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        pass

    try:
        return dist_version(DIST_NAME)
    except PackageNotFoundError:
        return "0.0.0-unknown"


VERSION = get_version()
