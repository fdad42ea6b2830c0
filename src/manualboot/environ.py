"""Target environment: a name plus the storage that holds its state."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from .shared.paths import environ_storage_dir
from .storage import FileStorage, MemoryStorage, Storage


@runtime_checkable
class Environ(Protocol):
    """What bootstrap needs from an environment."""

    name: str

    def storage(self) -> Storage:
        """Durable storage of this environment."""
        ...


@dataclass
class ManualEnviron:
    """Environment backed by a pre-existing machine and explicit storage."""

    name: str
    _storage: Storage = field(default_factory=MemoryStorage, repr=False)

    def storage(self) -> Storage:
        return self._storage

    @classmethod
    def with_file_storage(cls, name: str, root: str | Path | None = None) -> ManualEnviron:
        """Environment whose state lives under ``<root>/<name>``.

        Args:
            name: Environment name
            root: Storage root (default: ~/.manualboot/storage)
        """
        directory = environ_storage_dir(name, Path(root) if root else None)
        return cls(name=name, _storage=FileStorage(directory))
