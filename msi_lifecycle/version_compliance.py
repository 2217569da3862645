"""Installer-legal product versions.

Windows Installer wants a purely numeric, dotted product version with bounded
fields. Semantic versions carry pre-release tags and unbounded numbers, so they are
normalised here before they reach the package or the registry checks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple

from .errors import VersionFormatError

FIELD_COUNT = 4
FIELD_MAX = 65535
MIN_SOURCE_FIELDS = 3

_LEADING_NUMERIC_RE = re.compile(r"^v?(\d+(?:\.\d+)*)")


@dataclass(frozen=True, order=True)
class CompliantVersion:
    fields: Tuple[int, int, int, int]

    def __str__(self) -> str:
        return ".".join(str(f) for f in self.fields)

    @property
    def major(self) -> int:
        return self.fields[0]

    @property
    def minor(self) -> int:
        return self.fields[1]

    @property
    def patch(self) -> int:
        return self.fields[2]


def _numeric_fields(raw: str) -> list[int]:
    text = str(raw or "").strip()
    m = _LEADING_NUMERIC_RE.match(text)
    if not m:
        raise VersionFormatError(raw)

    # Anything after the numeric run must be pre-release or build metadata.
    rest = text[m.end():]
    if rest and rest[0] not in "-+":
        raise VersionFormatError(raw, f"unexpected suffix {rest!r}")

    return [int(part) for part in m.group(1).split(".")]


def semver_triplet(raw: str) -> Tuple[int, int, int]:
    """(major, minor, patch) of a semantic version, pre-release dropped."""
    fields = _numeric_fields(raw)
    if len(fields) < MIN_SOURCE_FIELDS:
        raise VersionFormatError(raw, f"need at least {MIN_SOURCE_FIELDS} numeric fields")
    return fields[0], fields[1], fields[2]


def to_compliant_version(raw: str) -> CompliantVersion:
    fields = _numeric_fields(raw)
    if len(fields) < MIN_SOURCE_FIELDS:
        raise VersionFormatError(raw, f"need at least {MIN_SOURCE_FIELDS} numeric fields")

    fields = fields[:FIELD_COUNT]
    fields += [0] * (FIELD_COUNT - len(fields))
    clamped = tuple(min(f, FIELD_MAX) for f in fields)
    return CompliantVersion(fields=clamped)  # type: ignore[arg-type]
