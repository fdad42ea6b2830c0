"""Unit tests for manualboot bootstrap/status/reset commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from mocks import FakeRemoteRunner

from manualboot.main import cli
from manualboot.storage import STATE_FILE

TOOLS_YAML = """\
- version: 1.17.0-bionic-amd64
  url: https://tools.example.com/clusterd-1.17.0-bionic-amd64.tgz
- version: 1.17.2-bionic-amd64
  url: https://tools.example.com/clusterd-1.17.2-bionic-amd64.tgz
- version: 1.17.2-focal-amd64
  url: https://tools.example.com/clusterd-1.17.2-focal-amd64.tgz
"""


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def workdir(tmp_path):
    """Config, tools registry and storage root under tmp_path."""
    (tmp_path / "tools.yaml").write_text(TOOLS_YAML)
    return tmp_path


def invoke(runner, workdir, *args, fake=None, json_output=False):
    fake = fake or FakeRemoteRunner()
    base = ["-c", str(workdir / "config.yaml")]
    if json_output:
        base.append("--json")
    with patch("manualboot.commands.bootstrap.SSHRunner", return_value=fake):
        return runner.invoke(cli, base + list(args))


def bootstrap_args(workdir, *extra):
    return (
        "bootstrap",
        "ubuntu@node1",
        "--tools-file",
        str(workdir / "tools.yaml"),
        "--storage-dir",
        str(workdir / "storage"),
        *extra,
    )


def state_file(workdir, environ="manual"):
    return workdir / "storage" / environ / STATE_FILE


class TestBootstrapCommand:
    """Tests for manualboot bootstrap."""

    def test_bootstrap_success(self, runner, workdir):
        fake = FakeRemoteRunner()
        result = invoke(runner, workdir, *bootstrap_args(workdir), fake=fake)

        assert result.exit_code == 0, result.output
        assert "Bootstrap complete" in result.output
        assert "1.17.2-bionic-amd64" in result.output
        assert state_file(workdir).exists()
        assert fake.hosts == ["ubuntu@node1"]
        assert fake.detections == 1

    def test_bootstrap_json(self, runner, workdir):
        result = invoke(
            runner,
            workdir,
            *bootstrap_args(workdir, "--series", "focal", "--hardware", "arch=amd64"),
            json_output=True,
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "bootstrapped"
        assert data["instances"] == ["manual:"]
        assert data["tools"] == "1.17.2-focal-amd64"
        assert data["series"] == "focal"

    def test_second_bootstrap_is_noop(self, runner, workdir):
        invoke(runner, workdir, *bootstrap_args(workdir))
        before = state_file(workdir).read_bytes()

        fake = FakeRemoteRunner()
        result = invoke(runner, workdir, *bootstrap_args(workdir), fake=fake)

        assert result.exit_code == 0
        assert "Nothing to do" in result.output
        assert fake.remote_calls == 0
        assert state_file(workdir).read_bytes() == before

    def test_script_failure(self, runner, workdir):
        fake = FakeRemoteRunner.with_behaviour(provision_exit_code=1, provision_stderr="E: boom")
        result = invoke(runner, workdir, *bootstrap_args(workdir), fake=fake)

        assert result.exit_code == 1
        assert "boom" in result.output
        assert not state_file(workdir).exists()

    def test_no_matching_tools(self, runner, workdir):
        fake = FakeRemoteRunner()
        result = invoke(
            runner, workdir, *bootstrap_args(workdir, "--series", "edgy"), fake=fake
        )

        assert result.exit_code == 2
        assert "no matching tools available" in result.output
        assert fake.remote_calls == 0

    def test_bad_hardware(self, runner, workdir):
        result = invoke(runner, workdir, *bootstrap_args(workdir, "--hardware", "arch=vax"))

        assert result.exit_code == 2
        assert "bad arch value" in result.output

    def test_missing_tools_file(self, runner, workdir):
        result = invoke(
            runner, workdir, "bootstrap", "ubuntu@node1", "--tools-file", str(workdir / "nope.yaml")
        )
        assert result.exit_code == 2

    @pytest.mark.parametrize(
        "content",
        [
            "- version: 1.17.2\n  series: focal\n  url: https://tools.example.com/a.tgz\n",
            "- 5\n",
        ],
    )
    def test_malformed_tools_file(self, runner, workdir, content):
        """Broken registry entries are a usage error, not a crash."""
        (workdir / "tools.yaml").write_text(content)
        fake = FakeRemoteRunner()

        result = invoke(runner, workdir, *bootstrap_args(workdir), fake=fake)

        assert result.exit_code == 2
        assert "--tools-file" in result.output
        assert fake.remote_calls == 0

    def test_ssh_options_passed(self, runner, workdir):
        with patch(
            "manualboot.commands.bootstrap.SSHRunner", return_value=FakeRemoteRunner()
        ) as ssh_runner:
            runner.invoke(
                cli,
                ["-c", str(workdir / "config.yaml")]
                + list(bootstrap_args(workdir, "--ssh-option", "Port=2222")),
            )

        assert ssh_runner.call_args.kwargs["options"] == ["Port=2222"]
        assert ssh_runner.call_args.kwargs["connect_timeout"] == 30

    def test_config_file_values_used(self, runner, workdir):
        (workdir / "config.yaml").write_text(
            "environ: lab\ndata_dir: /srv/cluster\ncommand_timeout: 45\n"
        )
        fake = FakeRemoteRunner()

        result = invoke(runner, workdir, *bootstrap_args(workdir), fake=fake)

        assert result.exit_code == 0, result.output
        assert state_file(workdir, "lab").exists()
        assert "/srv/cluster/tools/" in fake.scripts[-1]
        assert fake.timeouts[-1] == 45


class TestStatusAndReset:
    """Tests for manualboot status and reset."""

    def test_status_not_bootstrapped(self, runner, workdir):
        result = invoke(runner, workdir, "status", "--storage-dir", str(workdir / "storage"))
        assert result.exit_code == 0
        assert "not bootstrapped" in result.output

    def test_status_after_bootstrap(self, runner, workdir):
        invoke(runner, workdir, *bootstrap_args(workdir, "--series", "bionic", "--hardware", "arch=amd64"))

        result = invoke(
            runner, workdir, "status", "--storage-dir", str(workdir / "storage"), json_output=True
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data == {
            "environ": "manual",
            "bootstrapped": True,
            "instances": ["manual:"],
            "characteristics": ["arch=amd64"],
        }

    def test_reset(self, runner, workdir):
        invoke(runner, workdir, *bootstrap_args(workdir))

        result = invoke(runner, workdir, "reset", "--yes", "--storage-dir", str(workdir / "storage"))

        assert result.exit_code == 0
        assert "removed" in result.output
        assert not state_file(workdir).exists()

    def test_reset_declined(self, runner, workdir):
        invoke(runner, workdir, *bootstrap_args(workdir))

        with patch("manualboot.commands.bootstrap.SSHRunner"):
            result = runner.invoke(
                cli,
                ["-c", str(workdir / "config.yaml"), "reset", "--storage-dir", str(workdir / "storage")],
                input="n\n",
            )

        assert result.exit_code == 0
        assert state_file(workdir).exists()


class TestMainCommands:
    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "manualboot version" in result.output

    def test_config_show_json(self, runner, workdir):
        (workdir / "config.yaml").write_text("connect_timeout: 5\n")

        result = runner.invoke(cli, ["-c", str(workdir / "config.yaml"), "--json", "config", "show"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["values"]["connect_timeout"] == 5
        assert data["sources"]["connect_timeout"] == "config file"
        assert data["sources"]["environ"] in ("default", "environment")

    def test_invalid_config_file(self, runner, workdir):
        (workdir / "config.yaml").write_text("connect_timeout: soon\n")

        result = runner.invoke(cli, ["-c", str(workdir / "config.yaml"), "version"])

        assert result.exit_code == 1
        assert "invalid connect_timeout" in result.output
