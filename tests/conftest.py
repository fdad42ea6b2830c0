"""Shared test fixtures for manualboot tests.

This module provides fixtures for exercising a bootstrap attempt without
a real machine:
- fake_runner: FakeRemoteRunner answering like a fresh bionic/amd64 host
- environ: ManualEnviron backed by in-memory storage
- make_request: factory for valid BootstrapRequests
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from mocks import FakeRemoteRunner

from manualboot.config import ENV_VARS
from manualboot.context import BootstrapContext
from manualboot.environ import ManualEnviron
from manualboot.hardware import HardwareCharacteristics
from manualboot.orchestrator import BootstrapRequest
from manualboot.storage import MemoryStorage
from manualboot.tools import Tool, ToolsList, Version


def make_tool(version: str, url: str | None = None, sha256: str = "") -> Tool:
    """Build a Tool from a ``<number>-<series>-<arch>`` string."""
    return Tool(
        version=Version.parse(version),
        url=url or f"https://tools.example.com/clusterd-{version}.tgz",
        sha256=sha256,
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MANUALBOOT_* variables of the outer shell out of tests."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def tools() -> ToolsList:
    """Tools for a few series/arch pairs."""
    return ToolsList(
        [
            make_tool("1.17.0-bionic-amd64"),
            make_tool("1.17.2-bionic-amd64"),
            make_tool("1.17.2-bionic-arm64"),
            make_tool("1.17.2-focal-amd64"),
        ]
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def environ(storage: MemoryStorage) -> ManualEnviron:
    return ManualEnviron(name="test", _storage=storage)


@pytest.fixture
def progress() -> list[str]:
    """Collected progress messages."""
    return []


@pytest.fixture
def fake_runner() -> FakeRemoteRunner:
    return FakeRemoteRunner()


@pytest.fixture
def make_request(
    environ: ManualEnviron, tools: ToolsList, progress: list[str]
) -> Callable[..., BootstrapRequest]:
    """Factory for a valid request against ubuntu@node1 (bionic/amd64)."""

    def _make(**overrides: Any) -> BootstrapRequest:
        values: dict[str, Any] = {
            "host": "ubuntu@node1",
            "data_dir": "/var/lib/cluster",
            "environ": environ,
            "possible_tools": tools,
            "series": "bionic",
            "hardware": HardwareCharacteristics(arch="amd64"),
            "context": BootstrapContext(progress=progress.append),
        }
        values.update(overrides)
        return BootstrapRequest(**values)

    return _make
