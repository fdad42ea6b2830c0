"""Durable storage for the bootstrap state record.

The state record is the single source of truth for "is this environment
bootstrapped". Backends provide whole-blob get/put/remove by name; the
record is always replaced as a whole, never partially updated.
"""

from __future__ import annotations

import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from .errors import StorageError
from .hardware import HardwareCharacteristics
from .shared.logging import get_logger

# Well-known name of the bootstrap state blob
STATE_FILE = "provider-state"

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")

log = get_logger(__name__)


class NotFoundError(KeyError):
    """Named blob does not exist in storage."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"file {self.name!r} not found"


@runtime_checkable
class Storage(Protocol):
    """Key-addressable blob storage."""

    def get(self, name: str) -> bytes:
        """Read a blob. Raises NotFoundError if absent."""
        ...

    def put(self, name: str, data: bytes) -> None:
        """Create or replace a blob."""
        ...

    def remove(self, name: str) -> None:
        """Delete a blob. Removing an absent blob is not an error."""
        ...

    def list(self, prefix: str = "") -> list[str]:
        """Names starting with prefix, sorted."""
        ...


def _check_name(name: str) -> str:
    if not _NAME_RE.match(name) or ".." in name.split("/"):
        raise ValueError(f"invalid storage name {name!r}")
    return name


class FileStorage:
    """Storage rooted at a local directory.

    Writes go to a temporary file in the target directory and are renamed
    into place, so readers see either the old or the new blob.
    """

    def __init__(self, root: str | Path):
        """Initialize file storage.

        Args:
            root: Directory holding the blobs (created on first write)
        """
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        return self.root / _check_name(name)

    def get(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(name) from None

    def put(self, name: str, data: bytes) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def remove(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)

    def list(self, prefix: str = "") -> list[str]:
        if not self.root.exists():
            return []
        names = [
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file() and not p.name.startswith(".")
        ]
        return sorted(n for n in names if n.startswith(prefix))


class MemoryStorage:
    """In-process storage, mainly for tests."""

    def __init__(self, blobs: dict[str, bytes] | None = None):
        self._blobs: dict[str, bytes] = dict(blobs or {})
        self._lock = threading.Lock()

    def get(self, name: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[_check_name(name)]
            except KeyError:
                raise NotFoundError(name) from None

    def put(self, name: str, data: bytes) -> None:
        with self._lock:
            self._blobs[_check_name(name)] = bytes(data)

    def remove(self, name: str) -> None:
        with self._lock:
            self._blobs.pop(_check_name(name), None)

    def list(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(n for n in self._blobs if n.startswith(prefix))


@dataclass
class BootstrapState:
    """Persisted record of which instances form the bootstrapped controller."""

    state_instances: list[str] = field(default_factory=list)
    characteristics: list[HardwareCharacteristics] = field(default_factory=list)

    def to_yaml(self) -> bytes:
        data: dict[str, Any] = {"state-instances": list(self.state_instances)}
        if self.characteristics:
            data["characteristics"] = [hc.to_dict() for hc in self.characteristics]
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False).encode("utf-8")

    @classmethod
    def from_yaml(cls, raw: bytes) -> BootstrapState:
        data = yaml.safe_load(raw) or {}
        if not isinstance(data, dict):
            raise ValueError("bootstrap state is not a mapping")
        instances = data.get("state-instances") or []
        if not isinstance(instances, list):
            raise ValueError("state-instances is not a list")
        characteristics = [
            hc
            for hc in (HardwareCharacteristics.from_dict(d) for d in data.get("characteristics") or [])
            if hc is not None
        ]
        return cls(state_instances=[str(i) for i in instances], characteristics=characteristics)


class BootstrapStateStore:
    """Read, write and remove the bootstrap state record of one environment."""

    def __init__(self, storage: Storage, name: str = STATE_FILE):
        """Initialize state store.

        Args:
            storage: Environment storage backend
            name: Blob name of the state record
        """
        self.storage = storage
        self.name = name

    def load(self) -> BootstrapState | None:
        """Read the state record.

        Returns:
            BootstrapState, or None if the environment is not bootstrapped.

        Raises:
            StorageError: If the backend fails or the record is corrupt.
        """
        try:
            raw = self.storage.get(self.name)
        except NotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"cannot read bootstrap state: {e}", phase="state-check") from e
        try:
            return BootstrapState.from_yaml(raw)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            raise StorageError(f"cannot parse bootstrap state: {e}", phase="state-check") from e

    def exists(self) -> bool:
        return self.load() is not None

    def save(self, state: BootstrapState) -> None:
        """Replace the state record.

        Raises:
            StorageError
        """
        try:
            self.storage.put(self.name, state.to_yaml())
        except Exception as e:
            raise StorageError(f"cannot save bootstrap state: {e}", phase="state-save") from e
        log.info("bootstrap state saved", name=self.name, instances=state.state_instances)

    def remove(self) -> None:
        """Delete the state record. An absent record is fine.

        Raises:
            StorageError
        """
        try:
            self.storage.remove(self.name)
        except NotFoundError:
            return
        except Exception as e:
            raise StorageError(f"cannot remove bootstrap state: {e}", phase="rollback") from e
        log.info("bootstrap state removed", name=self.name)
