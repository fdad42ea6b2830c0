"""manualboot - bootstrap an existing machine as a cluster controller."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("manualboot")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .orchestrator import (
    BootstrapPhase,
    BootstrapRequest,
    BootstrapResult,
    Bootstrapper,
    bootstrap,
    validate_request,
)
from .context import BootstrapContext
from .environ import Environ, ManualEnviron
from .errors import (
    AlreadyProvisionedError,
    BootstrapError,
    ConnectivityError,
    ErrProvisioned,
    OperationCancelled,
    ScriptFailure,
    StorageError,
    ValidationError,
    is_provisioned,
)
from .executor import BOOTSTRAP_INSTANCE_ID
from .hardware import HardwareCharacteristics
from .storage import BootstrapState, BootstrapStateStore, FileStorage, MemoryStorage
from .tools import Tool, ToolsList, Version, select_tools

__all__ = [
    "__version__",
    # Orchestrator
    "bootstrap",
    "Bootstrapper",
    "BootstrapRequest",
    "BootstrapResult",
    "BootstrapPhase",
    "BootstrapContext",
    "validate_request",
    "BOOTSTRAP_INSTANCE_ID",
    # Environment and state
    "Environ",
    "ManualEnviron",
    "BootstrapState",
    "BootstrapStateStore",
    "FileStorage",
    "MemoryStorage",
    # Tools
    "Tool",
    "ToolsList",
    "Version",
    "select_tools",
    "HardwareCharacteristics",
    # Errors
    "BootstrapError",
    "ValidationError",
    "AlreadyProvisionedError",
    "ErrProvisioned",
    "ConnectivityError",
    "ScriptFailure",
    "StorageError",
    "OperationCancelled",
    "is_provisioned",
]
