"""Remote bootstrap executor.

Runs the install script on the host. This is the only step with real
side effects on the machine and it is not idempotent: a failure part way
through leaves the host in whatever state the script reached.
"""

from __future__ import annotations

from dataclasses import dataclass

from .context import BootstrapContext
from .errors import ConnectivityError, ScriptFailure
from .hardware import HardwareCharacteristics
from .remote import RemoteSession
from .script import BootstrapScript
from .shared.logging import get_logger
from .tools import ToolsList

# Synthetic instance id of a manually bootstrapped machine
BOOTSTRAP_INSTANCE_ID = "manual:"

log = get_logger(__name__)


@dataclass
class ExecutionPlan:
    """What the executor will install, before it touches the host."""

    script: BootstrapScript

    @property
    def tool(self):
        return self.script.tool


class RemoteBootstrapExecutor:
    """Build and run the install sequence over a remote session."""

    def __init__(self, ctx: BootstrapContext, command_timeout: float = 600.0):
        """Initialize executor.

        Args:
            ctx: Operation context
            command_timeout: Upper bound for the install script, in seconds
        """
        self.ctx = ctx
        self.command_timeout = command_timeout

    def plan(
        self,
        tools: ToolsList,
        data_dir: str,
        series: str,
        hardware: HardwareCharacteristics | None,
        environ_name: str = "",
    ) -> ExecutionPlan:
        """Pick the newest matching tool and render the script."""
        tool = tools.newest()
        return ExecutionPlan(
            BootstrapScript(
                tool=tool,
                data_dir=data_dir,
                series=series,
                hardware=hardware,
                environ_name=environ_name,
            )
        )

    def execute(self, session: RemoteSession, plan: ExecutionPlan) -> list[str]:
        """Run the plan on the host.

        Returns:
            Instance ids now representing the bootstrapped controller.

        Raises:
            ScriptFailure: Non-zero exit, or the session failed mid-stream.
            OperationCancelled: If cancelled before the script started.
        """
        host = session.host
        self.ctx.check(phase="execute", host=host)
        self.ctx.infof("Installing agent %s on %s", plan.tool.version, host)
        log.info("running bootstrap script", host=host, tools=str(plan.tool.version))

        try:
            result = session.run(plan.script.render(), timeout=self.ctx.remaining(self.command_timeout))
        except ConnectivityError as e:
            raise ScriptFailure(
                f"bootstrap script interrupted: {e.message}",
                host=host,
                data=dict(e.data),
            ) from e
        except OSError as e:
            raise ScriptFailure(f"bootstrap script interrupted: {e}", host=host) from e

        if not result.ok:
            stderr = result.stderr.strip()
            log.error("bootstrap script failed", host=host, exit_code=result.exit_code, stderr=stderr)
            raise ScriptFailure(
                f"bootstrap script failed with exit code {result.exit_code}"
                + (f": {stderr.splitlines()[-1]}" if stderr else ""),
                host=host,
                exit_code=result.exit_code,
                stderr=stderr,
            )

        log.info("bootstrap script completed", host=host)
        return [BOOTSTRAP_INSTANCE_ID]
