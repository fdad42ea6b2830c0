"""Path management for manualboot.

Manages the ~/.manualboot/ directory structure.
"""

from pathlib import Path

# Base directory for all manualboot data
MANUALBOOT_DIR = Path.home() / ".manualboot"

# Default file storage root for bootstrap state
STORAGE_DIR = MANUALBOOT_DIR / "storage"


def ensure_dirs(storage_root: Path | None = None) -> Path:
    """Create the storage root if missing.

    Created with mode 0o700 (user-only access); an existing directory is
    left as it is.

    Args:
        storage_root: Storage root (default: ~/.manualboot/storage)

    Returns:
        The storage root
    """
    root = storage_root or STORAGE_DIR
    root.mkdir(mode=0o700, parents=True, exist_ok=True)
    return root


def environ_storage_dir(environ_name: str, root: Path | None = None) -> Path:
    """Storage directory of a named environment.

    Args:
        environ_name: Environment name
        root: Storage root (default: ~/.manualboot/storage)
    """
    return (root or STORAGE_DIR) / environ_name
