"""Version parsing and bumping utilities.

Handles conversion between version strings and semver objects, derives the
bump a set of commits calls for, and applies it under the pre-1.0 policy:

- ``0.0.z``: every change only increments ``z``.
- ``0.y.z``: breaking changes and features increment ``y``.
- ``x.y.z`` with ``x >= 1``: plain semantic versioning.

Moving a version one digit to the left (``0.0.z`` → ``0.1.0``, ``0.y.z`` →
``1.0.0``) always requires an explicit version edit.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Collection, Iterable

import semver

from .models import ChangeType, CommitRecord, VersionBump

DEFAULT_PATCH_TYPES = frozenset({ChangeType.FIX, ChangeType.PERF, ChangeType.REVERT})

BumpChooser = Callable[[VersionBump, list[VersionBump]], VersionBump]

_CORE_RE = re.compile(r"^(\d+(?:\.\d+)*)(.*)$")


def parse_version(version_str: str | semver.Version) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros and accepts a leading
    ``v`` as used in release tags:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "v1.2.3-rc.1" → "1.2.3-rc.1"
    """
    if isinstance(version_str, semver.Version):
        return version_str
    text = version_str.strip().lstrip("v")
    m = _CORE_RE.match(text)
    core, suffix = (m.group(1), m.group(2)) if m else (text, "")
    parts = core.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]) + suffix)


def compute_bump(
    commits: Iterable[CommitRecord],
    patch_types: Collection[ChangeType] = DEFAULT_PATCH_TYPES,
) -> VersionBump:
    """Derive the bump called for by a package's commits.

    Major if any commit is breaking, else Minor if any is a feature, else
    Patch if any has a type in ``patch_types``, else None. Types outside
    these (chore, docs, test, ...) contribute nothing.
    """
    bump = VersionBump.NONE
    for commit in commits:
        if commit.breaking:
            return VersionBump.MAJOR
        if commit.type is ChangeType.FEATURE:
            bump = max(bump, VersionBump.MINOR)
        elif commit.type in patch_types:
            bump = max(bump, VersionBump.PATCH)
    return bump


def max_bump(current: str | semver.Version) -> VersionBump:
    """The strongest bump the version's phase can express."""
    v = parse_version(current)
    if v.major == 0 and v.minor == 0:
        return VersionBump.PATCH
    if v.major == 0:
        return VersionBump.MINOR
    return VersionBump.MAJOR


def effective_bump(current: str | semver.Version, bump: VersionBump) -> VersionBump:
    """The bump actually applied to ``current`` after phase remapping."""
    if bump is VersionBump.NONE:
        return bump
    return min(bump, max_bump(current))


def next_version(current: str | semver.Version, bump: VersionBump) -> semver.Version:
    """Apply a bump to a version.

    Prerelease and build metadata are dropped by any bump other than None.

    Examples:
        next_version("1.4.2", MAJOR) → 2.0.0
        next_version("0.3.1", MAJOR) → 0.4.0
        next_version("0.0.3", MINOR) → 0.0.4
    """
    v = parse_version(current)
    applied = effective_bump(v, bump)
    if applied is VersionBump.MAJOR:
        return v.bump_major()
    if applied is VersionBump.MINOR:
        return v.bump_minor()
    if applied is VersionBump.PATCH:
        return v.bump_patch()
    return v


def bump_options(current: str | semver.Version, minimum: VersionBump) -> list[VersionBump]:
    """Bumps a user may pick for a version, weakest first.

    ``minimum`` is the weakest acceptable choice, e.g. Patch for a package
    that must be released because a dependency was.
    """
    ceiling = max_bump(current)
    return [b for b in VersionBump if minimum <= b <= ceiling]


def choose_bump(
    suggested: VersionBump,
    options: list[VersionBump],
    chooser: BumpChooser | None = None,
) -> VersionBump:
    """Let an external chooser override the suggested bump.

    The chooser (an interactive prompt, usually) gets the suggestion and
    the valid options and returns its pick; without one the suggestion
    stands. A pick outside ``options`` is rejected.
    """
    if chooser is None:
        return suggested
    chosen = chooser(suggested, options)
    if chosen not in options:
        raise ValueError(f"Bump '{chosen}' is not one of {', '.join(map(str, options))}")
    return chosen
