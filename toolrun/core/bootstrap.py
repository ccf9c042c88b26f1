"""
On-demand installation of tools from version-templated download URLs.
"""

import logging
import shutil
import stat
from pathlib import Path
from typing import Optional

from ..errors import ToolUnavailable
from ..integrations.download import ArchiveDownloader
from ..models.execution import FetchedArchive
from ..models.tool import ToolSpec
from ..utils.platform import current_os, is_windows


class ToolBootstrapper:
    """Downloads and unpacks a tool into an isolated per-version directory."""

    def __init__(self, install_root: Path, downloader: Optional[ArchiveDownloader] = None):
        """
        Initialize the bootstrapper.

        Args:
            install_root: Directory under which tools are installed as <name>/<version>
            downloader: Archive downloader; a cache-less one is created if omitted
        """
        self.logger = logging.getLogger(__name__)
        self.install_root = Path(install_root)
        self.downloader = downloader or ArchiveDownloader()

    def install_dir(self, spec: ToolSpec) -> Path:
        return self.install_root / spec.name / spec.required_version

    def installed_binary(self, spec: ToolSpec) -> Path:
        return self.install_dir(spec) / spec.archive_binary()

    def bootstrap(self, spec: ToolSpec) -> Path:
        """
        Fetch and unpack the tool.

        Args:
            spec: Tool specification

        Returns:
            Path to the unpacked binary

        Raises:
            UnsupportedPlatform: if the running OS has no bootstrap target
            ToolUnavailable: if the download or extraction fails
        """
        os_name = current_os()
        url = spec.bootstrap_url(os_name)
        archive = self.downloader.fetch(url, tool=spec.name)
        try:
            return self._unpack(spec, archive, os_name)
        finally:
            self.downloader.release(archive)

    def _unpack(self, spec: ToolSpec, archive: FetchedArchive, os_name: str) -> Path:
        unpack_dir = self.install_dir(spec)
        if unpack_dir.exists():
            shutil.rmtree(unpack_dir)
        unpack_dir.mkdir(parents=True)

        self.logger.info(f"Unpacking '{archive.path}' to '{unpack_dir}'...")
        try:
            shutil.unpack_archive(str(archive.path), str(unpack_dir))
        except (shutil.ReadError, ValueError, OSError) as e:
            shutil.rmtree(unpack_dir, ignore_errors=True)
            # Do not serve a broken archive from the cache again.
            archive.path.unlink(missing_ok=True)
            raise ToolUnavailable(f"Unable to unpack {spec.name} from '{archive.path}': {e}", tool=spec.name) from e

        binary = unpack_dir / spec.archive_binary(os_name)
        if not binary.is_file():
            raise ToolUnavailable(
                f"Archive for {spec.name} does not contain '{spec.archive_binary(os_name)}'.", tool=spec.name
            )

        if not is_windows():
            # Zip extraction does not keep Unix mode bits.
            mode = binary.stat().st_mode
            binary.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        return binary
