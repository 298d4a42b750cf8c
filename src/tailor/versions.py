"""Version normalization and constraint matching.

Generator and tool versions arrive as loose strings ("7.14.0", "v7.1",
"7.0.0-beta2", "7.14.0-SNAPSHOT"). They are normalized to ``major.minor.patch``
with an optional pre-release tag before comparison.
"""

from __future__ import annotations

import re

UNKNOWN_VERSIONS = frozenset({"", "unknown", "undetected", "unspecified"})

CONSTRAINT_PATTERN = re.compile(
    r"^(?P<op>>=|<=|~>|>|<|\^|=)?\s*"
    r"(?P<version>v?\d+(?:\.\d+){0,2}(?:-[\w.-]+)?(?:\+[\w.-]+)?)$",
)

VersionKey = tuple[int, int, int, int, tuple[tuple[int, int | str], ...]]


def is_known_version(version: str | None) -> bool:
    """Check whether a detected version string is usable for comparisons."""
    return version is not None and version.strip().lower() not in UNKNOWN_VERSIONS


def _numeric_part(part: str) -> int:
    match = re.match(r"\d+", part)
    return int(match.group()) if match else 0


def normalize_version(version: str | None) -> str:
    """Normalize a loose version string to ``major.minor.patch[-pre]``.

    Examples:
        "v7.1" -> "7.1.0"
        "7.14.0-SNAPSHOT" -> "7.14.0-snapshot"
        "7.0.0.RC1" -> "7.0.0-rc1"
    """
    if version is None or not version.strip():
        return "0.0.0"

    normalized = version.strip()
    if normalized.lower().startswith("v"):
        normalized = normalized[1:]
    normalized = normalized.split("+", 1)[0]

    parts = re.split(r"[.-]", normalized)
    major = _numeric_part(parts[0]) if len(parts) > 0 else 0
    minor = _numeric_part(parts[1]) if len(parts) > 1 else 0
    patch = _numeric_part(parts[2]) if len(parts) > 2 else 0

    result = f"{major}.{minor}.{patch}"
    prerelease = [p.lower() for p in parts[3:] if p and not p.isdigit()]
    if prerelease:
        result += "-" + ".".join(prerelease)
    return result


def version_key(version: str) -> VersionKey:
    """Sortable key for a version string; pre-releases sort below releases."""
    normalized = normalize_version(version)
    core, _, prerelease = normalized.partition("-")
    major, minor, patch = (int(p) for p in core.split("."))

    identifiers: list[tuple[int, int | str]] = []
    if prerelease:
        for ident in prerelease.split("."):
            identifiers.append((0, int(ident)) if ident.isdigit() else (1, ident))

    return (major, minor, patch, 0 if prerelease else 1, tuple(identifiers))


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as ``left`` is lower, equal or higher than ``right``."""
    a, b = version_key(left), version_key(right)
    return (a > b) - (a < b)


def parse_constraint(constraint: str) -> tuple[str, str]:
    """Split a constraint expression into ``(operator, version)``.

    Raises:
        ValueError: If the expression is not a recognised constraint
    """
    match = CONSTRAINT_PATTERN.match(constraint.strip())
    if not match:
        msg = f"Invalid version constraint: '{constraint}'"
        raise ValueError(msg)
    return match.group("op") or "=", match.group("version")


def satisfies(version: str | None, constraint: str) -> bool:
    """Test a version against a constraint expression.

    Unknown versions never satisfy a constraint.

    Raises:
        ValueError: If the constraint expression is malformed
    """
    operator, target = parse_constraint(constraint)
    if not is_known_version(version):
        return False

    actual_key = version_key(version)
    target_key = version_key(target)
    cmp = (actual_key > target_key) - (actual_key < target_key)

    if operator == ">=":
        return cmp >= 0
    if operator == ">":
        return cmp > 0
    if operator == "<=":
        return cmp <= 0
    if operator == "<":
        return cmp < 0
    if operator == "=":
        return cmp == 0
    if operator == "~>":
        return actual_key[:2] == target_key[:2] and cmp >= 0
    if operator == "^":
        return actual_key[0] == target_key[0] and cmp >= 0
    msg = f"Unknown version operator: '{operator}'"
    raise ValueError(msg)


def is_at_least(version: str, minimum: str) -> bool:
    """Check ``version >= minimum``."""
    return compare_versions(version, minimum) >= 0


def is_above(version: str, maximum: str) -> bool:
    """Check ``version > maximum``."""
    return compare_versions(version, maximum) > 0
