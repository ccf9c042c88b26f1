"""
Operating system detection.
"""

import sys

LINUX = "linux"
MAC = "mac"
WINDOWS = "windows"


def current_os() -> str:
    """Return the short name of the running OS: linux, mac, windows or the raw sys.platform."""
    if sys.platform.startswith("linux"):
        return LINUX
    if sys.platform == "darwin":
        return MAC
    if sys.platform in ("win32", "cygwin"):
        return WINDOWS
    return sys.platform


def is_windows() -> bool:
    return current_os() == WINDOWS
