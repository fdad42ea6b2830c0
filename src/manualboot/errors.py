"""Error taxonomy for manual bootstrap.

Every failure surfaced by :func:`manualboot.orchestrator.bootstrap` is a
``BootstrapError`` subclass carrying the phase it happened in and the host
it concerns, so callers can branch on the type and still print something
actionable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Error codes (also used as CLI exit codes where noted)
VALIDATION_ERROR = 2
PROVISIONED = 3
CONNECTIVITY_ERROR = 10
SCRIPT_FAILURE = 11
STORAGE_ERROR = 12
CANCELLED = 13


@dataclass
class BootstrapError(Exception):
    """Base error class for bootstrap errors."""

    message: str
    code: int = 1
    phase: str | None = None
    host: str | None = None
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    # Secondary failure while rolling back state after this error
    rollback_error: BaseException | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def describe(self) -> str:
        """Message prefixed with phase and host context, when known."""
        prefix = []
        if self.phase:
            prefix.append(self.phase)
        if self.host:
            prefix.append(self.host)
        text = self.message
        if self.rollback_error is not None:
            text += f" (removing bootstrap state also failed: {self.rollback_error})"
        if not prefix:
            return text
        return f"[{' '.join(prefix)}] {text}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict for JSON output."""
        out: dict[str, Any] = {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.phase:
            out["phase"] = self.phase
        if self.host:
            out["host"] = self.host
        if self.data:
            out["data"] = self.data
        if self.rollback_error is not None:
            out["rollback_error"] = str(self.rollback_error)
        return out


@dataclass
class ValidationError(BootstrapError):
    """Malformed bootstrap request."""

    code: int = VALIDATION_ERROR
    phase: str | None = "validate"
    field_name: str | None = None


@dataclass
class AlreadyProvisionedError(BootstrapError):
    """Host or environment is already bootstrapped. Nothing to do."""

    message: str = "machine is already provisioned"
    code: int = PROVISIONED
    phase: str | None = "detect"


@dataclass
class ConnectivityError(BootstrapError):
    """Remote session could not be established or was lost."""

    code: int = CONNECTIVITY_ERROR
    phase: str | None = "connect"


@dataclass
class ScriptFailure(BootstrapError):
    """Remote installation sequence exited non-zero or died mid-stream."""

    code: int = SCRIPT_FAILURE
    phase: str | None = "execute"
    exit_code: int | None = None
    stderr: str = ""


@dataclass
class StorageError(BootstrapError):
    """Reading, writing or removing the bootstrap state record failed."""

    code: int = STORAGE_ERROR
    phase: str | None = "state"


@dataclass
class OperationCancelled(BootstrapError):
    """The bootstrap context was cancelled or its deadline passed."""

    message: str = "bootstrap cancelled"
    code: int = CANCELLED


# Sentinel for callers that compare against the already-provisioned outcome.
ErrProvisioned = AlreadyProvisionedError()


def is_provisioned(err: BaseException | None) -> bool:
    """Check whether an error is the already-provisioned outcome."""
    return isinstance(err, AlreadyProvisionedError)
