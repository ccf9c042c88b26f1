"""
Utility modules for toolrun.
"""

from .logging import setup_logger, setup_root_logger, get_logger
from .platform import current_os

__all__ = ["setup_logger", "setup_root_logger", "get_logger", "current_os"]
