"""
HTTP download of tool archives with a local on-disk cache.
"""

import hashlib
import logging
import shutil
import tempfile
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional

from ..errors import ToolUnavailable
from ..models.execution import FetchedArchive


class ArchiveDownloader:
    """Fetches tool archives over HTTP, short-circuiting through a cache keyed by URL."""

    def __init__(self, cache_dir: Optional[Path] = None, timeout: float = 60.0):
        """
        Initialize the downloader.

        Args:
            cache_dir: Directory holding previously fetched archives; None disables caching
            timeout: Socket timeout for the HTTP request in seconds
        """
        self.logger = logging.getLogger(__name__)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.timeout = timeout

        if self.cache_dir:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _cache_path(self, url: str) -> Optional[Path]:
        if not self.cache_dir:
            return None
        key = hashlib.sha256(url.encode()).hexdigest()
        # Keep the file name so unpacking can still tell zip from tar.
        return self.cache_dir / key / url.rstrip("/").rsplit("/", 1)[-1]

    def fetch(self, url: str, tool: Optional[str] = None) -> FetchedArchive:
        """
        Download the archive at url.

        Args:
            url: Archive URL
            tool: Tool name used in messages

        Returns:
            The local archive and whether it came from the cache

        Raises:
            ToolUnavailable: on any transport error, a non-200 status or an empty body
        """
        label = tool or url
        cached = self._cache_path(url)
        if cached and cached.is_file() and cached.stat().st_size > 0:
            self.logger.info(f"Retrieved {label} from local cache.")
            return FetchedArchive(url=url, path=cached, from_cache=True)

        self.logger.info(f"Downloading {label} from '{url}'...")
        request = urllib.request.Request(url, headers={"User-Agent": "toolrun"})
        scratch_dir: Optional[Path] = None

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = getattr(response, "status", None) or response.getcode()
                if status != 200:
                    raise ToolUnavailable(
                        f"Failed to download {label} from {url}: HTTP {status}.", tool=tool
                    )
                if cached:
                    target = cached
                else:
                    scratch_dir = Path(tempfile.mkdtemp(prefix="toolrun-"))
                    target = scratch_dir / url.rstrip("/").rsplit("/", 1)[-1]
                target.parent.mkdir(parents=True, exist_ok=True)
                partial = target.with_name(target.name + ".part")
                with open(partial, "wb") as f:
                    shutil.copyfileobj(response, f)

            if partial.stat().st_size == 0:
                partial.unlink()
                raise ToolUnavailable(f"Failed to download {label} from {url}: empty response body.", tool=tool)
            partial.replace(target)
        except urllib.error.HTTPError as e:
            self._discard(scratch_dir)
            raise ToolUnavailable(f"Failed to download {label} from {url}: HTTP {e.code}.", tool=tool) from e
        except (urllib.error.URLError, OSError) as e:
            self._discard(scratch_dir)
            raise ToolUnavailable(f"Failed to download {label} from {url}: {e}", tool=tool) from e
        except ToolUnavailable:
            self._discard(scratch_dir)
            raise

        return FetchedArchive(url=url, path=target, from_cache=False)

    def release(self, archive: FetchedArchive):
        """Remove an archive downloaded without a cache once it has been unpacked."""
        if archive.from_cache or self.cache_dir:
            return
        self._discard(archive.path.parent)

    def _discard(self, scratch_dir: Optional[Path]):
        if scratch_dir is not None:
            shutil.rmtree(scratch_dir, ignore_errors=True)
