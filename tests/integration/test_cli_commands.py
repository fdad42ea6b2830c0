"""Integration tests for CLI commands.

Tests actual CLI invocations via subprocess.
"""

import json
import os
import subprocess
import sys

import pytest


def run_cli(tmp_path, *args):
    env = dict(os.environ, HOME=str(tmp_path))
    env = {k: v for k, v in env.items() if not k.startswith("MANUALBOOT_")}
    return subprocess.run(
        [sys.executable, "-m", "manualboot", *args],
        capture_output=True,
        text=True,
        env=env,
        cwd=tmp_path,
    )


@pytest.mark.integration
class TestCLIBasicCommands:
    """Test basic CLI commands."""

    def test_version(self, tmp_path):
        result = run_cli(tmp_path, "version")

        assert result.returncode == 0
        assert "manualboot version" in result.stdout

    def test_help(self, tmp_path):
        result = run_cli(tmp_path, "--help")

        assert result.returncode == 0
        assert "Commands:" in result.stdout
        for cmd in ("bootstrap", "status", "reset", "config", "version"):
            assert cmd in result.stdout

    def test_unknown_command(self, tmp_path):
        result = run_cli(tmp_path, "nonexistent")
        assert result.returncode != 0


@pytest.mark.integration
class TestCLIStateCommands:
    """State inspection against a scratch HOME."""

    def test_status_fresh_home(self, tmp_path):
        result = run_cli(tmp_path, "--json", "status")

        assert result.returncode == 0
        assert json.loads(result.stdout) == {"environ": "manual", "bootstrapped": False}
        assert (tmp_path / ".manualboot" / "storage").is_dir()

    def test_status_reads_recorded_state(self, tmp_path):
        state = tmp_path / ".manualboot" / "storage" / "manual" / "provider-state"
        state.parent.mkdir(parents=True)
        state.write_text("state-instances:\n- 'manual:'\n")

        result = run_cli(tmp_path, "status")

        assert result.returncode == 0
        assert "manual:" in result.stdout

    def test_bootstrap_rejects_unknown_series_without_connecting(self, tmp_path):
        tools = tmp_path / "tools.yaml"
        tools.write_text(
            "- version: 1.17.2-bionic-amd64\n"
            "  url: https://tools.example.com/clusterd.tgz\n"
        )

        result = run_cli(
            tmp_path,
            "bootstrap",
            "ubuntu@203.0.113.1",
            "--tools-file",
            str(tools),
            "--series",
            "edgy",
            "--hardware",
            "arch=amd64",
        )

        assert result.returncode == 2
        assert "no matching tools available" in result.stderr
