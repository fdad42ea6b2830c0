"""Remote install script for the bootstrap machine.

The script is rendered locally and streamed to ``bash -s`` on the host.
It runs three ordered steps: lay out the data directory and fetch the
agent binary, write the agent configuration, then install and start the
agent as a systemd service.
"""

from __future__ import annotations

import posixpath
import shlex
import textwrap
from dataclasses import dataclass, field
from typing import Any

import yaml

from .detector import AGENT_SERVICE_PREFIX
from .hardware import HardwareCharacteristics
from .tools import Tool

MACHINE_ID = "0"
MACHINE_NONCE = "user-admin:bootstrap"
DEFAULT_LOG_DIR = "/var/log/clusterd"
SYSTEMD_DIR = "/etc/systemd/system"
AGENT_BINARY = "clusterd"


def machine_tag(machine_id: str = MACHINE_ID) -> str:
    return f"machine-{machine_id}"


def service_name(machine_id: str = MACHINE_ID) -> str:
    return f"{AGENT_SERVICE_PREFIX}-{machine_tag(machine_id)}"


def _heredoc(path: str, content: str, mode: str = "0644") -> str:
    # Quoted delimiter: no expansion inside the body.
    qpath = shlex.quote(path)
    body = content if content.endswith("\n") else content + "\n"
    return f"install -m {mode} /dev/null {qpath}\ncat > {qpath} <<'MANUALBOOT_EOF'\n{body}MANUALBOOT_EOF"


@dataclass
class ScriptStep:
    """One named section of the install script."""

    name: str
    commands: list[str] = field(default_factory=list)

    def render(self) -> str:
        lines = [f"echo {shlex.quote('manualboot: ' + self.name)} >&2"]
        lines.extend(self.commands)
        return "\n".join(lines)


@dataclass
class BootstrapScript:
    """Install sequence for one agent on one host."""

    tool: Tool
    data_dir: str
    series: str
    hardware: HardwareCharacteristics | None = None
    environ_name: str = ""
    machine_id: str = MACHINE_ID
    nonce: str = MACHINE_NONCE
    log_dir: str = DEFAULT_LOG_DIR
    agent_args: list[str] = field(default_factory=list)

    @property
    def tools_dir(self) -> str:
        return posixpath.join(self.data_dir, "tools", str(self.tool.version))

    @property
    def agent_tools_link(self) -> str:
        return posixpath.join(self.data_dir, "tools", machine_tag(self.machine_id))

    @property
    def agent_dir(self) -> str:
        return posixpath.join(self.data_dir, "agents", machine_tag(self.machine_id))

    @property
    def agent_conf_path(self) -> str:
        return posixpath.join(self.agent_dir, "agent.conf")

    @property
    def service_name(self) -> str:
        return service_name(self.machine_id)

    def agent_config(self) -> dict[str, Any]:
        """Initial configuration handed to the agent."""
        config: dict[str, Any] = {
            "tag": machine_tag(self.machine_id),
            "nonce": self.nonce,
            "datadir": self.data_dir,
            "logdir": self.log_dir,
            "series": self.series,
            "tools-version": str(self.tool.version),
            "jobs": ["host-units", "manage-environ"],
        }
        if self.environ_name:
            config["environ"] = self.environ_name
        if self.hardware is not None:
            config["hardware"] = str(self.hardware)
        return config

    def unit_file(self) -> str:
        binary = posixpath.join(self.agent_tools_link, AGENT_BINARY)
        args = " ".join(shlex.quote(a) for a in self.agent_args)
        exec_start = (
            f"{binary} machine --data-dir {shlex.quote(self.data_dir)} "
            f"--machine-id {self.machine_id} {args}"
        ).rstrip()
        return textwrap.dedent(
            f"""\
            [Unit]
            Description=cluster agent for {machine_tag(self.machine_id)}
            After=network-online.target
            Wants=network-online.target

            [Service]
            ExecStart={exec_start}
            Restart=on-failure
            StandardOutput=append:{posixpath.join(self.log_dir, machine_tag(self.machine_id) + '.log')}
            StandardError=inherit

            [Install]
            WantedBy=multi-user.target
            """
        )

    def step_tools(self) -> ScriptStep:
        tools_dir = shlex.quote(self.tools_dir)
        commands = [
            f"mkdir -p {shlex.quote(self.data_dir)} {shlex.quote(self.log_dir)}",
            f"mkdir -p {tools_dir}",
            "tmp_tools=$(mktemp)",
            "trap 'rm -f \"$tmp_tools\"' EXIT",
            f"curl -sSfL --retry 5 -o \"$tmp_tools\" {shlex.quote(self.tool.url)}",
        ]
        if self.tool.sha256:
            commands.append(
                f"echo {shlex.quote(self.tool.sha256 + '  ')}\"$tmp_tools\" | sha256sum -c - >/dev/null"
            )
        commands += [
            f"tar zxf \"$tmp_tools\" -C {tools_dir}",
            f"printf %s {shlex.quote(yaml.safe_dump(self.tool.to_dict(), default_flow_style=True).strip())}"
            f" > {shlex.quote(posixpath.join(self.tools_dir, 'downloaded-tools.txt'))}",
            f"ln -sfn {shlex.quote(str(self.tool.version))} {shlex.quote(self.agent_tools_link)}",
        ]
        return ScriptStep("install tools", commands)

    def step_config(self) -> ScriptStep:
        conf = yaml.safe_dump(self.agent_config(), default_flow_style=False, sort_keys=False)
        return ScriptStep(
            "write agent configuration",
            [
                f"mkdir -p {shlex.quote(self.agent_dir)}",
                _heredoc(self.agent_conf_path, conf, mode="0600"),
            ],
        )

    def step_service(self) -> ScriptStep:
        unit_path = posixpath.join(SYSTEMD_DIR, self.service_name + ".service")
        return ScriptStep(
            "start agent service",
            [
                _heredoc(unit_path, self.unit_file()),
                "systemctl daemon-reload",
                f"systemctl enable --now {shlex.quote(self.service_name)}",
            ],
        )

    def steps(self) -> list[ScriptStep]:
        return [self.step_tools(), self.step_config(), self.step_service()]

    def render(self) -> str:
        """Full script text. Aborts on the first failing command."""
        header = "#!/bin/bash\nset -euo pipefail\numask 022"
        parts = [header] + [step.render() for step in self.steps()]
        return "\n\n".join(parts) + "\n"
