"""Agent tools: versioned, series/arch tagged agent binaries.

Tools are consumed as pre-built artifacts. This module parses their
versions, filters a registry down to what a host can run and loads a
registry from a YAML file.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from functools import total_ordering
from pathlib import Path
from typing import Any

import yaml

from .errors import ValidationError

_NUMBER_RE = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)"
    r"(?:\.(?P<patch>\d+)|-(?P<tag>[a-z]+)(?P<tagnum>\d+))"
    r"(?:\.(?P<build>\d+))?$"
)


@total_ordering
@dataclass(frozen=True)
class Number:
    """Release number, ``1.17.0`` or ``1.18-beta1``, with optional build."""

    major: int
    minor: int
    patch: int = 0
    tag: str = ""
    build: int = 0

    @classmethod
    def parse(cls, text: str) -> Number:
        match = _NUMBER_RE.match(text)
        if not match:
            raise ValueError(f"invalid version number {text!r}")
        groups = match.groupdict()
        patch = groups["patch"] if groups["tag"] is None else groups["tagnum"]
        return cls(
            major=int(groups["major"]),
            minor=int(groups["minor"]),
            patch=int(patch),
            tag=groups["tag"] or "",
            build=int(groups["build"] or 0),
        )

    def _key(self) -> tuple[Any, ...]:
        # Tagged pre-releases sort before the release of the same major.minor.
        return (self.major, self.minor, self.tag == "", self.tag, self.patch, self.build)

    def __lt__(self, other: Number) -> bool:
        return self._key() < other._key()

    def __str__(self) -> str:
        if self.tag:
            text = f"{self.major}.{self.minor}-{self.tag}{self.patch}"
        else:
            text = f"{self.major}.{self.minor}.{self.patch}"
        if self.build:
            text += f".{self.build}"
        return text


@dataclass(frozen=True)
class Version:
    """Binary version: release number, series and arch."""

    number: Number
    series: str
    arch: str

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``<number>-<series>-<arch>``, e.g. ``1.17.0-bionic-amd64``.

        The number may itself contain a hyphen (``1.18-beta1``), so series
        and arch are taken from the right.
        """
        parts = text.rsplit("-", 2)
        if len(parts) != 3 or not parts[1] or not parts[2]:
            raise ValueError(f"invalid binary version {text!r}")
        number, series, arch = parts
        return cls(Number.parse(number), series, arch)

    def __str__(self) -> str:
        return f"{self.number}-{self.series}-{self.arch}"


@dataclass(frozen=True)
class Tool:
    """A single agent binary artifact."""

    version: Version
    url: str
    sha256: str = ""
    size: int = 0

    @property
    def series(self) -> str:
        return self.version.series

    @property
    def arch(self) -> str:
        return self.version.arch

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tool:
        """Build a Tool from a registry entry.

        Accepts either ``version: 1.17.0-bionic-amd64`` or separate
        ``version``/``series``/``arch`` keys.

        Raises:
            ValueError: If the entry is not a mapping or is incomplete.
        """
        if not isinstance(data, dict):
            raise ValueError(f"tools entry is not a mapping: {data!r}")
        if "url" not in data:
            raise ValueError(f"tools entry without url: {data!r}")
        raw_version = str(data.get("version", ""))
        if "series" in data or "arch" in data:
            if not data.get("series") or not data.get("arch"):
                raise ValueError(f"tools entry needs both series and arch: {data!r}")
            version = Version(Number.parse(raw_version), str(data["series"]), str(data["arch"]))
        else:
            version = Version.parse(raw_version)
        try:
            size = int(data.get("size") or 0)
        except (TypeError, ValueError) as e:
            raise ValueError(f"bad tools size {data.get('size')!r}") from e
        return cls(
            version=version,
            url=str(data["url"]),
            sha256=str(data.get("sha256", "")),
            size=size,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"version": str(self.version), "url": self.url}
        if self.sha256:
            out["sha256"] = self.sha256
        if self.size:
            out["size"] = self.size
        return out


class ToolsList:
    """Ordered collection of tools with filtering helpers."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools = list(tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __bool__(self) -> bool:
        return bool(self._tools)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ToolsList):
            return self._tools == other._tools
        if isinstance(other, list):
            return self._tools == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ToolsList({[str(t.version) for t in self._tools]})"

    def match(self, series: str | None = None, arch: str | None = None) -> ToolsList:
        """Tools whose series and arch equal the given values exactly.

        A ``None`` filter matches anything.
        """
        return ToolsList(
            t
            for t in self._tools
            if (series is None or t.series == series) and (arch is None or t.arch == arch)
        )

    def newest(self) -> Tool:
        """The tool with the highest release number.

        Raises:
            ValueError: If the list is empty.
        """
        if not self._tools:
            raise ValueError("no tools to choose from")
        return max(self._tools, key=lambda t: t.version.number)


def check_possible_tools(possible: Iterable[Tool] | None) -> ToolsList:
    """Reject an empty tools input.

    Raises:
        ValidationError: ``possible tools is empty``
    """
    tools = possible if isinstance(possible, ToolsList) else ToolsList(possible or ())
    if not tools:
        raise ValidationError("possible tools is empty", field_name="possible_tools")
    return tools


def select_tools(possible: Iterable[Tool] | None, series: str, arch: str) -> ToolsList:
    """Narrow tools to the ones deployable on a (series, arch) host.

    Exact match only, no cross-series fallback. Every match is returned;
    picking the single binary to install is up to the executor.

    Args:
        possible: Available tools
        series: Resolved target series
        arch: Resolved target arch

    Returns:
        Non-empty ToolsList of matches.

    Raises:
        ValidationError: ``possible tools is empty`` for empty input,
            ``no matching tools available`` when nothing matches.
    """
    tools = check_possible_tools(possible)
    matching = tools.match(series=series, arch=arch)
    if not matching:
        raise ValidationError(
            "no matching tools available",
            field_name="possible_tools",
            data={"series": series, "arch": arch, "available": [str(t.version) for t in tools]},
        )
    return matching


def load_tools_file(path: str | Path) -> ToolsList:
    """Load a tools registry from YAML.

    The file holds either a list of entries or a mapping with a ``tools``
    list. Each entry needs ``version`` and ``url``.

    Args:
        path: Path to the registry file

    Returns:
        ToolsList in file order
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: invalid YAML: {e}") from e
    if isinstance(data, dict):
        data = data.get("tools", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of tools")
    return ToolsList(Tool.from_dict(entry) for entry in data)
