"""Errors and the non-fatal issue report.

Structural problems with the workspace abort a run and are raised as
exceptions. Everything else (malformed commits, unknown scopes, commits that
could not be attributed, bumps downgraded by version policy) is collected as
``Issue`` records in a ``Report`` returned next to the results.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class MonorelError(RuntimeError):
    """Base class for all fatal monorel errors."""


class StructuralError(MonorelError):
    """The workspace itself is inconsistent; nothing can be computed."""


class CycleError(StructuralError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class DuplicatePackageError(StructuralError):
    def __init__(self, name: str, paths: tuple[str, str] | None = None) -> None:
        self.name = name
        self.paths = paths
        where = f" ({paths[0]} and {paths[1]})" if paths else ""
        super().__init__(f"Duplicate package name '{name}'{where}")


class UnknownDependencyError(StructuralError):
    def __init__(self, package: str, dependency: str) -> None:
        self.package = package
        self.dependency = dependency
        super().__init__(
            f"Package '{package}' depends on '{dependency}', "
            "which is not part of the workspace"
        )


class ConfigError(MonorelError):
    """The release configuration could not be read or is invalid."""


class WorkspaceError(MonorelError):
    """No workspace could be discovered at the given root."""


class UnknownPackageError(MonorelError):
    def __init__(self, name: str, suggestions: list[str] | None = None) -> None:
        self.name = name
        self.suggestions = suggestions or []
        hint = f" Did you mean: {', '.join(self.suggestions)}?" if self.suggestions else ""
        super().__init__(f"Unknown package '{name}'.{hint}")


class RepositoryError(MonorelError):
    """The git history lacks a commit or release that was asked for."""


class IssueKind(str, Enum):
    MALFORMED = "malformed"
    UNKNOWN_SCOPE = "unknown-scope"
    EMPTY_BREAKING = "empty-breaking"
    UNATTRIBUTED = "unattributed"
    DOWNGRADED = "downgraded"


# Policy notes are informational; everything else is a warning.
_NOTE_KINDS = frozenset({IssueKind.DOWNGRADED})


class Issue(BaseModel):
    kind: IssueKind
    message: str
    commit_id: str = ""
    package: str = ""

    @property
    def is_note(self) -> bool:
        return self.kind in _NOTE_KINDS

    def __str__(self) -> str:
        prefix = f"{self.commit_id[:7]}: " if self.commit_id else ""
        return f"{prefix}{self.message}"


class Report(BaseModel):
    """Accumulated validation, attribution and policy issues of one run."""

    issues: list[Issue] = Field(default_factory=list)

    def add(
        self, kind: IssueKind, message: str, *, commit_id: str = "", package: str = ""
    ) -> Issue:
        issue = Issue(kind=kind, message=message, commit_id=commit_id, package=package)
        self.issues.append(issue)
        return issue

    def extend(self, other: Report) -> None:
        self.issues.extend(other.issues)

    def of_kind(self, kind: IssueKind) -> list[Issue]:
        return [i for i in self.issues if i.kind is kind]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if not i.is_note]

    @property
    def notes(self) -> list[Issue]:
        return [i for i in self.issues if i.is_note]

    def __len__(self) -> int:
        return len(self.issues)

    def __bool__(self) -> bool:
        return bool(self.issues)
