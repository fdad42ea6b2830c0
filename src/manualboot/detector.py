"""Provisioning detector - inspect a host before bootstrapping it.

Checks whether the cluster agent is already installed on the host and,
when the caller did not say, which OS series and hardware it runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .context import BootstrapContext
from .errors import ConnectivityError, ValidationError
from .hardware import HardwareCharacteristics, normalise_arch
from .remote import RemoteResult, RemoteSession
from .shared.logging import get_logger

# Service-manager jobs installed by a previous bootstrap start with this
AGENT_SERVICE_PREFIX = "clusterd"

# Prints one line per installed agent job, exits 0 either way.
CHECK_PROVISIONED_SCRIPT = f"""\
set -e
ls /etc/systemd/system 2>/dev/null | grep -E '^{AGENT_SERVICE_PREFIX}-.*\\.service$' || true
ls /etc/init 2>/dev/null | grep -E '^{AGENT_SERVICE_PREFIX}.*\\.conf$' || true
"""

DETECTION_SCRIPT = """\
set -e
lsb_release -cs 2>/dev/null || (. /etc/os-release && echo "$VERSION_CODENAME")
uname -m
grep MemTotal /proc/meminfo
grep -c '^processor' /proc/cpuinfo
"""

_MEMTOTAL_RE = re.compile(r"^MemTotal:\s+(\d+)\s*kB", re.IGNORECASE)

log = get_logger(__name__)


@dataclass
class ProvisioningStatus:
    """Result of inspecting a host. Lives for one bootstrap attempt."""

    already_provisioned: bool
    detected_series: str | None = None
    detected_hardware: HardwareCharacteristics | None = None
    agent_services: list[str] | None = None


def parse_detection_output(output: str) -> tuple[str, HardwareCharacteristics]:
    """Parse the output of DETECTION_SCRIPT.

    Args:
        output: stdout of the detection script

    Returns:
        (series, hardware characteristics)

    Raises:
        ValueError: If the output is not in the expected shape.
    """
    lines = [ln.strip() for ln in output.strip().splitlines() if ln.strip()]
    if len(lines) < 2:
        raise ValueError(f"unexpected detection output: {output!r}")
    series = lines[0]
    arch = normalise_arch(lines[1])
    mem: int | None = None
    cores: int | None = None
    for line in lines[2:]:
        match = _MEMTOTAL_RE.match(line)
        if match:
            mem = int(match.group(1)) // 1024
        elif line.isdigit():
            cores = int(line)
    return series, HardwareCharacteristics(arch=arch, mem=mem, cpu_cores=cores)


class ProvisioningDetector:
    """Inspect a host over an open remote session."""

    def __init__(self, ctx: BootstrapContext, command_timeout: float = 60.0):
        """Initialize detector.

        Args:
            ctx: Operation context (cancellation, progress)
            command_timeout: Upper bound per remote command, in seconds
        """
        self.ctx = ctx
        self.command_timeout = command_timeout

    def _run(self, session: RemoteSession, script: str, what: str) -> RemoteResult:
        self.ctx.check(phase="detect", host=session.host)
        try:
            result = session.run(script, timeout=self.ctx.remaining(self.command_timeout))
        except ConnectivityError as e:
            e.phase = "detect"
            raise
        if not result.ok:
            raise ConnectivityError(
                f"{what} failed (exit {result.exit_code}): {result.stderr.strip()}",
                phase="detect",
                host=session.host,
                data={"exit_code": result.exit_code},
            )
        return result

    def check_provisioned(self, session: RemoteSession) -> list[str]:
        """List agent services already installed on the host.

        Returns:
            Names of installed agent jobs; empty if not provisioned.
        """
        self.ctx.verbosef("Checking provisioned status of %s", session.host)
        result = self._run(session, CHECK_PROVISIONED_SCRIPT, "checking provisioned status")
        services = [ln.strip() for ln in result.stdout.splitlines() if ln.strip()]
        log.debug("provisioned check", host=session.host, services=services)
        return services

    def detect_series_and_hardware(
        self, session: RemoteSession
    ) -> tuple[str, HardwareCharacteristics]:
        """Detect the OS series and hardware of the host."""
        self.ctx.verbosef("Detecting series and characteristics of %s", session.host)
        result = self._run(session, DETECTION_SCRIPT, "detecting series and hardware")
        try:
            series, hc = parse_detection_output(result.stdout)
        except ValueError as e:
            raise ConnectivityError(str(e), phase="detect", host=session.host) from e
        log.info("detected host", host=session.host, series=series, hardware=str(hc))
        return series, hc

    def detect(
        self,
        session: RemoteSession,
        series: str | None = None,
        hardware: HardwareCharacteristics | None = None,
    ) -> ProvisioningStatus:
        """Inspect the host.

        Series and hardware detection is skipped when the caller already
        supplied both a series and an arch. Otherwise detected values must
        agree with whatever the caller did supply.

        Args:
            session: Open session to the host
            series: Caller-supplied target series, if any
            hardware: Caller-supplied characteristics, if any

        Returns:
            ProvisioningStatus

        Raises:
            ValidationError: If detected values contradict supplied ones.
            ConnectivityError: If a detection command could not run.
        """
        services = self.check_provisioned(session)
        if services:
            return ProvisioningStatus(already_provisioned=True, agent_services=services)

        if series and hardware is not None and hardware.arch:
            return ProvisioningStatus(
                already_provisioned=False,
                detected_series=series,
                detected_hardware=hardware,
            )

        detected_series, detected_hc = self.detect_series_and_hardware(session)
        if series and series != detected_series:
            raise ValidationError(
                f"series mismatch: requested {series!r}, host runs {detected_series!r}",
                phase="detect",
                host=session.host,
                field_name="series",
            )
        if hardware is not None and hardware.arch and hardware.arch != detected_hc.arch:
            raise ValidationError(
                f"arch mismatch: requested {hardware.arch!r}, host is {detected_hc.arch!r}",
                phase="detect",
                host=session.host,
                field_name="hardware",
            )
        return ProvisioningStatus(
            already_provisioned=False,
            detected_series=detected_series,
            detected_hardware=detected_hc,
        )
