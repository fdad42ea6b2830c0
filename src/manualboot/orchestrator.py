"""Manual bootstrap orchestrator.

Turns an already-running host into the first controller node of an
environment and records the outcome in the environment's storage.

A single attempt runs strictly in order::

    validate -> state pre-check -> detect -> select tools -> execute
             -> save state (success) | remove state (failure)

The saved state record is the commit point: bootstrap never reports
success without it and never leaves it behind after a reported failure.
Retrying is the caller's business; a fresh attempt is safe because both
the state pre-check and the live host check short-circuit with
``AlreadyProvisionedError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import cast

from .context import BootstrapContext
from .detector import ProvisioningDetector, ProvisioningStatus
from .environ import Environ
from .errors import (
    AlreadyProvisionedError,
    BootstrapError,
    ConnectivityError,
    StorageError,
    ValidationError,
)
from .executor import RemoteBootstrapExecutor
from .hardware import HardwareCharacteristics
from .remote import RemoteRunner, RemoteSession, SSHRunner
from .shared.logging import get_logger, log_context, set_log_context
from .storage import BootstrapState, BootstrapStateStore
from .tools import Tool, ToolsList, check_possible_tools, select_tools

log = get_logger(__name__)


class BootstrapPhase(Enum):
    """Where a bootstrap attempt is. No phase is entered twice."""

    NOT_STARTED = "not_started"
    VALIDATED = "validated"
    DETECTING = "detecting"
    ALREADY_PROVISIONED = "already_provisioned"  # terminal
    NOT_PROVISIONED = "not_provisioned"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"  # terminal, state written
    FAILED = "failed"  # terminal, state ensured absent


@dataclass
class BootstrapRequest:
    """Everything needed to bootstrap one host."""

    host: str  # user@host
    data_dir: str
    environ: Environ | None
    possible_tools: Iterable[Tool] | None
    series: str = ""
    hardware: HardwareCharacteristics | None = None
    context: BootstrapContext | None = None


@dataclass
class BootstrapResult:
    """Outcome of a successful bootstrap."""

    instance_ids: list[str]
    tool: Tool
    series: str
    hardware: HardwareCharacteristics | None = None
    phases: list[BootstrapPhase] = field(default_factory=list)


def validate_request(request: BootstrapRequest) -> ToolsList:
    """Reject structurally invalid requests without any I/O.

    Tools are filtered on whatever of series/arch is already known; the
    exact (series, arch) match happens again once detection filled in the
    rest.

    Returns:
        The possible tools as a ToolsList.

    Raises:
        ValidationError
    """
    if not request.data_dir:
        raise ValidationError("data-dir argument is empty", field_name="data_dir")
    if not request.host:
        raise ValidationError("host argument is empty", field_name="host")
    if request.environ is None:
        raise ValidationError("environ argument is nil", field_name="environ")
    tools = check_possible_tools(request.possible_tools)
    arch = request.hardware.arch if request.hardware is not None else None
    if request.series or arch:
        if request.series and arch:
            select_tools(tools, request.series, arch)
        elif not tools.match(series=request.series or None, arch=arch):
            raise ValidationError("no matching tools available", field_name="possible_tools")
    return tools


def _resolve_hardware(
    requested: HardwareCharacteristics | None,
    detected: HardwareCharacteristics | None,
) -> HardwareCharacteristics | None:
    """Caller-supplied values win; detected ones fill the gaps."""
    if requested is None:
        return detected
    if detected is None:
        return requested
    return HardwareCharacteristics(
        arch=requested.arch or detected.arch,
        mem=requested.mem if requested.mem is not None else detected.mem,
        cpu_cores=requested.cpu_cores if requested.cpu_cores is not None else detected.cpu_cores,
        cpu_power=requested.cpu_power if requested.cpu_power is not None else detected.cpu_power,
        root_disk=requested.root_disk if requested.root_disk is not None else detected.root_disk,
    )


class Bootstrapper:
    """One bootstrap attempt. Not re-entrant: create one per attempt."""

    def __init__(
        self,
        request: BootstrapRequest,
        runner: RemoteRunner | None = None,
        detect_timeout: float = 60.0,
        execute_timeout: float = 600.0,
    ):
        """Initialize bootstrapper.

        Args:
            request: What to bootstrap
            runner: Remote execution capability (default: SSHRunner)
            detect_timeout: Upper bound per detection command, in seconds
            execute_timeout: Upper bound for the install script, in seconds
        """
        self.request = request
        self.runner = runner or SSHRunner()
        self.ctx = request.context or BootstrapContext()
        self.detector = ProvisioningDetector(self.ctx, command_timeout=detect_timeout)
        self.executor = RemoteBootstrapExecutor(self.ctx, command_timeout=execute_timeout)
        self.phase = BootstrapPhase.NOT_STARTED
        self.phases: list[BootstrapPhase] = [self.phase]

    def _enter(self, phase: BootstrapPhase) -> None:
        if phase in self.phases:
            raise RuntimeError(f"bootstrap phase {phase.value} entered twice")
        set_log_context(phase=phase.value)
        log.debug("bootstrap phase entered")
        self.phase = phase
        self.phases.append(phase)

    def run(self) -> BootstrapResult:
        """Run the attempt.

        Returns:
            BootstrapResult once the state record is written.

        Raises:
            AlreadyProvisionedError: Nothing to do; nothing was changed.
            ValidationError, ConnectivityError, ScriptFailure,
            StorageError, OperationCancelled: On failure.
        """
        if self.phase is not BootstrapPhase.NOT_STARTED:
            raise RuntimeError("bootstrap attempt already used")
        with log_context(host=self.request.host, phase=self.phase.value):
            return self._attempt()

    def _attempt(self) -> BootstrapResult:
        request = self.request

        tools = validate_request(request)
        self._enter(BootstrapPhase.VALIDATED)
        host = request.host
        environ = cast(Environ, request.environ)
        store = BootstrapStateStore(environ.storage())

        existing = self._load_state(store)
        if existing is not None:
            self._enter(BootstrapPhase.ALREADY_PROVISIONED)
            raise AlreadyProvisionedError(
                message="environment is already bootstrapped",
                phase="state-check",
                host=host,
                data={"instances": existing.state_instances},
            )

        self.ctx.check(phase="detect", host=host)
        self._enter(BootstrapPhase.DETECTING)
        self.ctx.infof("Connecting to %s", host)
        try:
            with self.runner.session(host) as session:
                status = self.detector.detect(session, request.series or None, request.hardware)
                if status.already_provisioned:
                    self._enter(BootstrapPhase.ALREADY_PROVISIONED)
                    raise AlreadyProvisionedError(
                        host=host, data={"services": status.agent_services or []}
                    )
                self._enter(BootstrapPhase.NOT_PROVISIONED)
                return self._install(session, store, tools, status)
        except ConnectivityError as e:
            if e.host is None:
                e.host = host
            raise

    def _load_state(self, store: BootstrapStateStore) -> BootstrapState | None:
        try:
            return store.load()
        except StorageError as e:
            e.host = self.request.host
            raise

    def _install(
        self,
        session: RemoteSession,
        store: BootstrapStateStore,
        tools: ToolsList,
        status: ProvisioningStatus,
    ) -> BootstrapResult:
        request = self.request
        host = request.host
        series = request.series or status.detected_series or ""
        hardware = _resolve_hardware(request.hardware, status.detected_hardware)
        arch = hardware.arch if hardware is not None else None
        if not series or not arch:
            raise ValidationError(
                "cannot determine target series and arch", phase="detect", host=host
            )

        try:
            matching = select_tools(tools, series, arch)
        except ValidationError as e:
            e.phase = "select-tools"
            e.host = host
            raise
        plan = self.executor.plan(
            matching,
            data_dir=request.data_dir,
            series=series,
            hardware=hardware,
            environ_name=getattr(request.environ, "name", ""),
        )
        log.info(
            "selected tools",
            host=host,
            candidates=[str(t.version) for t in matching],
            chosen=str(plan.tool.version),
        )

        self._enter(BootstrapPhase.EXECUTING)
        try:
            instance_ids = self.executor.execute(session, plan)
            self.ctx.check(phase="execute", host=host)
            characteristics = [hardware] if hardware is not None else []
            store.save(BootstrapState(state_instances=instance_ids, characteristics=characteristics))
        except BaseException as e:
            self._rollback(store, e)
            raise

        self._enter(BootstrapPhase.SUCCEEDED)
        self.ctx.infof("Bootstrapped %s as %s", host, ", ".join(instance_ids))
        return BootstrapResult(
            instance_ids=instance_ids,
            tool=plan.tool,
            series=series,
            hardware=hardware,
            phases=list(self.phases),
        )

    def _rollback(self, store: BootstrapStateStore, err: BaseException) -> None:
        """Make sure no state record survives a failed attempt."""
        self._enter(BootstrapPhase.FAILED)
        host = self.request.host
        if isinstance(err, BootstrapError) and err.host is None:
            err.host = host
        log.warning("bootstrap failed, removing state", host=host, error=str(err))
        try:
            store.remove()
        except StorageError as rb:
            rb.host = host
            log.error("failed to remove bootstrap state", host=host, error=str(rb))
            if isinstance(err, BootstrapError):
                err.rollback_error = rb


def bootstrap(request: BootstrapRequest, runner: RemoteRunner | None = None) -> BootstrapResult:
    """Bootstrap ``request.host`` as the first controller of ``request.environ``.

    Args:
        request: Bootstrap arguments
        runner: Remote execution capability (default: SSHRunner)

    Returns:
        BootstrapResult

    Raises:
        AlreadyProvisionedError: Host or environment already bootstrapped.
        BootstrapError: Any other failure, with phase and host context.
    """
    return Bootstrapper(request, runner).run()
