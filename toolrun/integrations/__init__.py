"""
External service integrations.
"""

from .download import ArchiveDownloader

__all__ = ["ArchiveDownloader"]
