"""Change detection: which packages did a commit log touch?

Each conformant commit is attributed to packages in three steps:

1. Its scope names a workspace package (or a configured scope alias).
2. Otherwise, the packages whose directories contain its changed paths.
3. Otherwise nowhere; the commit is reported as unattributed.

A package with at least one attributed commit is changed, and so is every
package that depends on it, directly or transitively, since a dependency
release forces a dependent re-release.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from pathlib import PurePosixPath

from pydantic import BaseModel, Field

from .config import ReleaseConfig
from .errors import IssueKind, Report
from .graph import WorkspaceGraph
from .models import Attribution, Classified, CommitRecord, MalformedCommit, Package
from .sources import PathResolver


class DirectoryPathResolver:
    """Map changed paths to the packages whose directory contains them.

    When package directories are nested, the deepest one wins, so a change
    in ``crates/core/macros/src/lib.rs`` belongs to ``crates/core/macros``
    and not to ``crates/core``.
    """

    def __init__(self, packages: Iterable[Package]) -> None:
        roots = [(PurePosixPath(p.path).parts, p.name) for p in packages]
        # Deepest directories first
        self._roots = sorted(roots, key=lambda r: len(r[0]), reverse=True)

    def packages_touched(self, paths: Iterable[str]) -> set[str]:
        touched: set[str] = set()
        for path in paths:
            parts = PurePosixPath(path).parts
            for root, name in self._roots:
                if parts[: len(root)] == root and len(parts) > len(root):
                    touched.add(name)
                    break
        return touched


class Detection(BaseModel):
    """Result of change detection.

    Attributes:
        attributions: Map of changed package name → attribution, in
              topological order.
        report: Malformed commits and attribution warnings.
    """

    attributions: dict[str, Attribution] = Field(default_factory=dict)
    report: Report = Field(default_factory=Report)

    @property
    def changed(self) -> list[str]:
        """Changed package names, dependencies first."""
        return list(self.attributions)


def detect(
    commits: Sequence[Classified],
    graph: WorkspaceGraph,
    since: Mapping[str, str | None] | None = None,
    *,
    resolver: PathResolver | None = None,
    config: ReleaseConfig | None = None,
) -> Detection:
    """Attribute commits to packages and propagate changes to dependents.

    Args:
        commits: Classified commits, oldest first.
        graph: The workspace dependency graph.
        since: Map of package name → commit id of its last release. A
            commit counts for a package only if it comes after that
            package's marker. Markers not found in ``commits`` are older
            than the whole log, so every commit counts.
        resolver: Maps changed paths to packages. Defaults to matching
            package directories.
        config: Release configuration.

    Returns:
        Detection with per-package commit lists in chronological order.
    """
    config = config or ReleaseConfig()
    resolver = resolver or DirectoryPathResolver(graph)
    report = Report()

    positions = {c.id: pos for pos, c in enumerate(commits) if c.id}
    cutoff = {
        name: positions[marker]
        for name, marker in (since or {}).items()
        if marker in positions
    }

    direct: dict[str, list[CommitRecord]] = {}
    for pos, commit in enumerate(commits):
        if isinstance(commit, MalformedCommit):
            header = commit.message.strip().splitlines()[0] if commit.message.strip() else ""
            report.add(
                IssueKind.MALFORMED,
                f"Malformed commit '{header}': {commit.reason}",
                commit_id=commit.id,
            )
            continue

        if commit.breaking and commit.breaking_note == "":
            report.add(
                IssueKind.EMPTY_BREAKING,
                f"Breaking change in '{commit.description}' has no description",
                commit_id=commit.id,
            )

        for name in _attribute(commit, graph, resolver, config, report):
            if pos > cutoff.get(name, -1):
                direct.setdefault(name, []).append(commit)

    targets = graph.propagation_targets(direct, respect_pins=config.respect_pins)

    attributions: dict[str, Attribution] = {}
    for pkg in graph.topological_order():
        if pkg.name in direct:
            attributions[pkg.name] = Attribution(
                package=pkg.name,
                commits=direct[pkg.name],
                propagated_from=targets.get(pkg.name, []),
            )
        elif pkg.name in targets:
            attributions[pkg.name] = Attribution(
                package=pkg.name, propagated_from=targets[pkg.name]
            )

    return Detection(attributions=attributions, report=report)


def _attribute(
    commit: CommitRecord,
    graph: WorkspaceGraph,
    resolver: PathResolver,
    config: ReleaseConfig,
    report: Report,
) -> list[str]:
    scope = commit.scope
    if scope:
        if scope in graph:
            return [scope]
        alias = config.scope_aliases.get(scope)
        if alias in graph:
            return [alias]

    touched = resolver.packages_touched(commit.paths) if commit.paths else set()
    names = sorted(n for n in touched if n in graph)
    if names:
        return names

    if scope:
        report.add(
            IssueKind.UNKNOWN_SCOPE,
            f"Scope '{scope}' is not a workspace package and no changed path "
            "belongs to one; commit not attributed",
            commit_id=commit.id,
        )
    else:
        report.add(
            IssueKind.UNATTRIBUTED,
            f"Commit '{commit.description}' touches no workspace package",
            commit_id=commit.id,
        )
    return []
