"""Data models for monorel.

These Pydantic models represent the core data structures used throughout
version resolution: workspace packages, classified commits, attributions,
changelog entries and planned releases.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class ChangeType(str, Enum):
    """Canonical Conventional-Commit type tags."""

    FEATURE = "feature"
    FIX = "fix"
    BREAKING = "breaking"
    CHORE = "chore"
    DOCS = "docs"
    PERF = "perf"
    REFACTOR = "refactor"
    TEST = "test"
    BUILD = "build"
    CI = "ci"
    STYLE = "style"
    REVERT = "revert"


class VersionBump(IntEnum):
    """Version increment, ordered by severity.

    Comparisons follow the integer values, so ``max()`` over a set of bumps
    gives the strongest one.
    """

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    def __str__(self) -> str:
        return self.name.lower()


class ChangeKind(IntEnum):
    """Changelog group. Groups are always rendered in this order."""

    BREAKING = 0
    FEATURE = 1
    FIX = 2
    OTHER = 3

    @property
    def title(self) -> str:
        return _KIND_TITLES[self]


_KIND_TITLES = {
    ChangeKind.BREAKING: "Breaking changes",
    ChangeKind.FEATURE: "Features",
    ChangeKind.FIX: "Bug fixes",
    ChangeKind.OTHER: "Other changes",
}


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Package name, unique within the workspace.
        version: Current version string from the manifest.
        path: Relative path from workspace root to the package directory.
        manifest_path: Relative path to the manifest (Cargo.toml, package.json).
        dependencies: Internal (workspace) dependency names, in declaration
              order. External deps are not tracked here since only
              workspace packages take part in version propagation.
        pinned: Internal dependencies the manifest pins to an exact
              registry version instead of following the workspace copy.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    path: str = ""
    manifest_path: str = ""
    dependencies: tuple[str, ...] = ()
    pinned: frozenset[str] = frozenset()


class CommitInfo(BaseModel):
    """A raw commit as delivered by a commit source, oldest first."""

    id: str
    message: str
    timestamp: datetime | None = None
    paths: list[str] = Field(default_factory=list)


class CommitRecord(BaseModel):
    """A commit message that follows the Conventional Commits grammar."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    message: str
    type: ChangeType
    scope: str | None = None
    breaking: bool = False
    breaking_note: str | None = None
    description: str
    body: str | None = None
    summary: str | None = None
    references: tuple[int, ...] = ()
    footers: tuple[tuple[str, str], ...] = ()
    paths: tuple[str, ...] = ()
    timestamp: datetime | None = None
    sequence: int = 0

    @property
    def kind(self) -> ChangeKind:
        """Changelog group this commit belongs to."""
        if self.breaking:
            return ChangeKind.BREAKING
        if self.type is ChangeType.FEATURE:
            return ChangeKind.FEATURE
        if self.type is ChangeType.FIX:
            return ChangeKind.FIX
        return ChangeKind.OTHER


class MalformedCommit(BaseModel):
    """A commit message that could not be classified.

    Kept instead of failing the batch so it can be reported; never takes
    part in version or changelog computation.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    message: str
    reason: str
    paths: tuple[str, ...] = ()
    timestamp: datetime | None = None
    sequence: int = 0


Classified = Union[CommitRecord, MalformedCommit]


class Attribution(BaseModel):
    """Commits assigned to one package.

    A propagated attribution has no commits of its own; it only records the
    dependencies whose change forced this package to be released.
    """

    package: str
    commits: list[CommitRecord] = Field(default_factory=list)
    propagated_from: list[str] = Field(default_factory=list)

    @property
    def is_propagated(self) -> bool:
        return not self.commits


class ChangelogLine(BaseModel):
    text: str
    references: tuple[int, ...] = ()
    commit_id: str = ""


class ChangelogEntry(BaseModel):
    """One group of a package's changelog."""

    kind: ChangeKind
    lines: list[ChangelogLine] = Field(default_factory=list)


class PackageRelease(BaseModel):
    """Records a version change for a package.

    Attributes:
        name: Package name.
        old_version: The version before bumping.
        new_version: The version after bumping.
        bump: The bump actually applied, after phase remapping and any
              interactive override.
        suggested_bump: The bump derived from commits and propagation.
        changelog: Grouped changelog entries, Breaking first.
        dependency_updates: New versions of released workspace deps.
    """

    name: str
    old_version: str
    new_version: str
    bump: VersionBump
    suggested_bump: VersionBump
    changelog: list[ChangelogEntry] = Field(default_factory=list)
    dependency_updates: dict[str, str] = Field(default_factory=dict)
