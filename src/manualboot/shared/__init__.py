"""Shared modules for manualboot.

This module provides functionality shared by the library and the CLI:
- Logging (structlog configuration)
- Paths (~/.manualboot layout)
"""

from .logging import configure_logging, get_logger
from .paths import MANUALBOOT_DIR, STORAGE_DIR, ensure_dirs, environ_storage_dir

__all__ = [
    # Paths
    "MANUALBOOT_DIR",
    "STORAGE_DIR",
    "ensure_dirs",
    "environ_storage_dir",
    # Logging
    "configure_logging",
    "get_logger",
]
