"""Hardware characteristics of a bootstrap target.

Characteristics are written as space separated ``key=value`` pairs, for
example ``arch=amd64 mem=2048M cpu-cores=2``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields

AMD64 = "amd64"
I386 = "i386"
ARM = "armhf"
ARM64 = "arm64"
PPC64EL = "ppc64el"
S390X = "s390x"

ALL_ARCHES = (AMD64, I386, ARM, ARM64, PPC64EL, S390X)

_ARCH_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^(amd64|x86_64)$"), AMD64),
    (re.compile(r"^i?[3-9]86$"), I386),
    (re.compile(r"^(armhf|armv.*|aarch32)$"), ARM),
    (re.compile(r"^(arm64|aarch64)$"), ARM64),
    (re.compile(r"^(ppc64el|ppc64le)$"), PPC64EL),
    (re.compile(r"^s390x$"), S390X),
]

_MEGABYTES = {"M": 1, "G": 1024, "T": 1024 * 1024, "P": 1024 * 1024 * 1024}


def normalise_arch(raw: str) -> str:
    """Map a machine name as reported by ``uname -m`` to a tools arch.

    Args:
        raw: Architecture string, e.g. ``x86_64`` or ``aarch64``

    Returns:
        Normalised arch (``amd64``, ``arm64`` ...). Unknown values are
        returned lower-cased and unchanged.
    """
    value = raw.strip().lower()
    for pattern, arch in _ARCH_PATTERNS:
        if pattern.match(value):
            return arch
    return value


def _parse_megabytes(key: str, value: str) -> int:
    match = re.fullmatch(r"(\d+(?:\.\d+)?)([MGTP]?)", value.strip())
    if not match:
        raise ValueError(f"bad {key} value {value!r}: must be a non-negative number with optional M/G/T/P suffix")
    number, suffix = match.groups()
    return int(float(number) * _MEGABYTES[suffix or "M"])


def _format_megabytes(value: int) -> str:
    for suffix in ("P", "T", "G"):
        scale = _MEGABYTES[suffix]
        if value >= scale and value % scale == 0:
            return f"{value // scale}{suffix}"
    return f"{value}M"


@dataclass(frozen=True)
class HardwareCharacteristics:
    """Resources of a machine. Every attribute is optional."""

    arch: str | None = None
    mem: int | None = None  # MiB
    cpu_cores: int | None = None
    cpu_power: int | None = None
    root_disk: int | None = None  # MiB

    @classmethod
    def parse(cls, text: str) -> HardwareCharacteristics:
        """Parse ``key=value`` pairs into characteristics.

        Args:
            text: e.g. ``"arch=amd64 mem=4G cpu-cores=2"``

        Returns:
            HardwareCharacteristics

        Raises:
            ValueError: On unknown keys, repeated keys or bad values.
        """
        values: dict[str, object] = {}
        for item in text.split():
            if "=" not in item:
                raise ValueError(f"malformed characteristic {item!r}")
            key, value = item.split("=", 1)
            attr = key.replace("-", "_")
            if attr in values:
                raise ValueError(f"bad {key} value: already set")
            if attr == "arch":
                arch = normalise_arch(value)
                if arch not in ALL_ARCHES:
                    raise ValueError(f"bad arch value {value!r}")
                values[attr] = arch
            elif attr in ("mem", "root_disk"):
                values[attr] = _parse_megabytes(key, value)
            elif attr in ("cpu_cores", "cpu_power"):
                if not value.isdigit():
                    raise ValueError(f"bad {key} value {value!r}: must be a non-negative integer")
                values[attr] = int(value)
            else:
                raise ValueError(f"unknown characteristic {key!r}")
        return cls(**values)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        """Only the attributes that are set, with hyphenated keys."""
        out: dict[str, object] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[f.name.replace("_", "-")] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> HardwareCharacteristics | None:
        if not data:
            return None
        return cls(**{str(k).replace("-", "_"): v for k, v in data.items()})  # type: ignore[arg-type]

    def __str__(self) -> str:
        parts = []
        for key, value in self.to_dict().items():
            if key in ("mem", "root-disk"):
                value = _format_megabytes(int(value))  # type: ignore[arg-type]
            parts.append(f"{key}={value}")
        return " ".join(parts)
