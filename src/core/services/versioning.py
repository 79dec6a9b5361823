"""
Semantic version parsing and ordering (pure).

Used to gate discovery strategies on the SDK version a codebase
depends on.  Only full ``MAJOR.MINOR.PATCH`` versions are valid; ranges
such as ``^4.0.0`` or ``>=3`` are not versions and parse to None.
No I/O.
"""

from __future__ import annotations

import re
from typing import NamedTuple

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


class SemVer(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{'.'.join(self.prerelease)}" if self.prerelease else base


def parse_semver(version: str | None) -> SemVer | None:
    """Parse ``version`` into a SemVer, or None if it is not one."""
    if not version:
        return None
    match = _SEMVER_RE.match(version.strip())
    if not match:
        return None
    major, minor, patch, pre = match.groups()
    return SemVer(int(major), int(minor), int(patch), tuple(pre.split(".")) if pre else ())


def is_valid(version: str | None) -> bool:
    return parse_semver(version) is not None


def compare(a: str, b: str) -> int:
    """Order two versions: -1, 0 or 1.

    Build metadata is ignored.  A pre-release sorts before the release
    it precedes (``1.0.0-rc.1 < 1.0.0``).

    Raises:
        ValueError: if either side is not a valid version.
    """
    va, vb = parse_semver(a), parse_semver(b)
    if va is None or vb is None:
        raise ValueError(f"Cannot compare '{a}' with '{b}': not semantic versions")

    core_a, core_b = va[:3], vb[:3]
    if core_a != core_b:
        return -1 if core_a < core_b else 1
    return _compare_prerelease(va.prerelease, vb.prerelease)


def lt(a: str, b: str) -> bool:
    return compare(a, b) < 0


def _compare_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for left, right in zip(a, b):
        if left == right:
            continue
        left_num, right_num = left.isdigit(), right.isdigit()
        if left_num and right_num:
            return -1 if int(left) < int(right) else 1
        if left_num != right_num:
            # numeric identifiers have lower precedence
            return -1 if left_num else 1
        return -1 if left < right else 1
    return -1 if len(a) < len(b) else 1
