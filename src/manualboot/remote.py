"""Remote execution capability.

Bootstrap only needs "run this script on the host and tell me how it
went". ``RemoteRunner`` is that capability; ``SSHRunner`` implements it
with the system ``ssh`` client, sharing one connection per session through
an OpenSSH control socket.
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import ConnectivityError
from .shared.logging import get_logger

# ssh exits with 255 when the connection itself failed
SSH_CONNECTION_FAILED = 255

log = get_logger(__name__)


@dataclass
class RemoteResult:
    """Outcome of a remote script run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RemoteSession(Protocol):
    """An open session to one host."""

    host: str

    def run(self, script: str, timeout: float | None = None) -> RemoteResult:
        """Run a bash script on the host and wait for it to finish."""
        ...


class RemoteRunner(Protocol):
    """Factory of scoped remote sessions."""

    def session(self, host: str) -> AbstractContextManager[RemoteSession]:
        """Open a session to ``host``; closed when the context exits.

        Raises:
            ConnectivityError: If the session cannot be established.
        """
        ...


def split_host(host: str) -> tuple[str | None, str]:
    """Split ``user@host`` into its user (or None) and hostname."""
    if "@" in host:
        user, _, hostname = host.rpartition("@")
        return user or None, hostname
    return None, host


@dataclass
class SSHSession:
    """Session over a shared OpenSSH control connection."""

    host: str
    control_path: str
    options: list[str] = field(default_factory=list)
    connect_timeout: int = 30
    sudo: bool = True
    ssh_binary: str = "ssh"
    _started: bool = field(default=False, init=False, repr=False)

    def _base_cmd(self) -> list[str]:
        cmd = [
            self.ssh_binary,
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", f"ControlPath={self.control_path}",
        ]
        for opt in self.options:
            cmd += ["-o", opt]
        return cmd

    def start(self) -> None:
        """Open the control connection.

        Raises:
            ConnectivityError
        """
        cmd = self._base_cmd() + ["-o", "ControlMaster=yes", "-o", "ControlPersist=yes", self.host, "true"]
        try:
            res = subprocess.run(cmd, capture_output=True, text=True, timeout=self.connect_timeout + 5)
        except FileNotFoundError as e:
            raise ConnectivityError(f"ssh client not found: {self.ssh_binary}", host=self.host) from e
        except subprocess.TimeoutExpired as e:
            raise ConnectivityError("timed out connecting", host=self.host, retryable=True) from e
        if res.returncode != 0:
            raise ConnectivityError(
                res.stderr.strip() or "failed to establish SSH connection",
                host=self.host,
                retryable=True,
                data={"exit_code": res.returncode},
            )
        self._started = True
        log.debug("ssh session started", host=self.host)

    def close(self) -> None:
        if not self._started:
            return
        self._started = False
        cmd = self._base_cmd() + ["-O", "exit", self.host]
        try:
            subprocess.run(cmd, capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            log.warning("failed to close ssh control connection", host=self.host, error=str(e))
        log.debug("ssh session closed", host=self.host)

    def run(self, script: str, timeout: float | None = None) -> RemoteResult:
        """Stream ``script`` to ``bash -s`` on the host.

        Raises:
            ConnectivityError: If the connection drops or the run times out.
        """
        shell = "sudo -n /bin/bash -s" if self.sudo else "/bin/bash -s"
        cmd = self._base_cmd() + [self.host, shell]
        log.debug("running remote script", host=self.host, command=shlex.join(cmd))
        try:
            res = subprocess.run(
                cmd,
                input=script,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ConnectivityError(
                f"remote command timed out after {timeout}s", host=self.host, retryable=True
            ) from e
        if res.returncode == SSH_CONNECTION_FAILED:
            raise ConnectivityError(
                res.stderr.strip() or "SSH connection lost",
                host=self.host,
                retryable=True,
                data={"exit_code": res.returncode},
            )
        return RemoteResult(res.returncode, res.stdout, res.stderr)


class SSHRunner:
    """RemoteRunner using the OpenSSH client binary."""

    def __init__(
        self,
        options: list[str] | None = None,
        connect_timeout: int = 30,
        sudo: bool = True,
        ssh_binary: str = "ssh",
    ):
        """Initialize runner.

        Args:
            options: Extra ``-o`` options, e.g. ``["StrictHostKeyChecking=no"]``
            connect_timeout: Seconds allowed for establishing a connection
            sudo: Run scripts through ``sudo -n``
            ssh_binary: ssh executable
        """
        self.options = list(options or [])
        self.connect_timeout = connect_timeout
        self.sudo = sudo
        self.ssh_binary = ssh_binary

    @contextmanager
    def session(self, host: str) -> Iterator[SSHSession]:
        control_dir = tempfile.mkdtemp(prefix="manualboot-ssh-")
        session = SSHSession(
            host=host,
            control_path=str(Path(control_dir) / "control"),
            options=self.options,
            connect_timeout=self.connect_timeout,
            sudo=self.sudo,
            ssh_binary=self.ssh_binary,
        )
        try:
            session.start()
            yield session
        finally:
            session.close()
            shutil.rmtree(control_dir, ignore_errors=True)
