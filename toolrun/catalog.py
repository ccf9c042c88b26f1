"""
Specifications of the external tools known to toolrun.
"""

from typing import Dict

from .models.tool import ToolSpec

LICENSECHECKER = ToolSpec(
    name="licensechecker",
    default_executable="lc",
    executables={"windows": "lc.exe"},
    required_version="1.3.1",
    # "lc --version" prints "licensechecker version 1.3.1".
    version_prefix="licensechecker version ",
    download_url="https://github.com/boyter/lc/releases/download/v{version}/lc-{version}-{platform}.zip",
    platforms={
        "linux": "x86_64-unknown-linux",
        "mac": "x86_64-apple-darwin",
        "windows": "x86_64-pc-windows"
    }
)

COMPOSER = ToolSpec(
    name="composer",
    default_executable="composer",
    executables={"windows": "composer.bat"},
    required_version="1.6.5",
    # Composer prints "Composer version 1.6.5 2018-05-04 11:44:59".
    version_prefix="Composer version "
)

KNOWN_TOOLS: Dict[str, ToolSpec] = {spec.name: spec for spec in (LICENSECHECKER, COMPOSER)}


def get_tool(name: str) -> ToolSpec:
    """Look up a known tool by name."""
    try:
        return KNOWN_TOOLS[name]
    except KeyError:
        raise KeyError(f"Unknown tool '{name}'. Known tools: {', '.join(sorted(KNOWN_TOOLS))}") from None
