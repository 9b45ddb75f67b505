"""Release resolution: changed packages → next versions → changelogs.

Everything here works on an in-memory ``Snapshot`` of the workspace and
its commit log and performs no I/O. Reading manifests and git history,
writing manifests and creating tags live in ``monorel.pipeline``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from . import changelog
from .changes import detect
from .commits import split_message
from .config import ReleaseConfig
from .errors import IssueKind, Report
from .graph import WorkspaceGraph
from .models import Attribution, Classified, Package, PackageRelease, VersionBump
from .versions import bump_options, choose_bump, compute_bump, effective_bump, next_version

PackageChooser = Callable[[Package, VersionBump, list[VersionBump]], VersionBump]

_PHASES = {VersionBump.PATCH: "0.0.z", VersionBump.MINOR: "0.y.z"}


class Snapshot(BaseModel):
    """Read-only inputs of one resolution run.

    Attributes:
        graph: Workspace dependency graph.
        commits: Classified commits, oldest first.
        since: Map of package name → commit id of its last release.
        config: Release configuration.
        resolver: Optional path resolver collaborator.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    graph: WorkspaceGraph
    commits: list[Classified] = Field(default_factory=list)
    since: dict[str, str | None] = Field(default_factory=dict)
    config: ReleaseConfig = Field(default_factory=ReleaseConfig)
    resolver: Any = None


class ReleasePlan(BaseModel):
    """Planned releases in publish order plus everything worth reporting."""

    releases: list[PackageRelease] = Field(default_factory=list)
    attributions: dict[str, Attribution] = Field(default_factory=dict)
    report: Report = Field(default_factory=Report)

    def get(self, name: str) -> PackageRelease | None:
        return next((r for r in self.releases if r.name == name), None)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.releases]

    def render(self, config: ReleaseConfig | None = None) -> str:
        return changelog.render_document(self.releases, config)


def list_packages(graph: WorkspaceGraph) -> list[str]:
    """All package names, dependencies first."""
    return graph.topological_names()


def changed_packages(snapshot: Snapshot) -> tuple[list[str], Report]:
    """Names of changed packages (direct or propagated), dependencies first."""
    detection = detect(
        snapshot.commits,
        snapshot.graph,
        snapshot.since,
        resolver=snapshot.resolver,
        config=snapshot.config,
    )
    return detection.changed, detection.report


def plan_release(snapshot: Snapshot, *, chooser: PackageChooser | None = None) -> ReleasePlan:
    """Compute the next version and changelog of every package to release.

    Packages are visited in topological order. A package's bump is the one
    its own commits call for, raised to at least Patch when a dependency it
    follows is released. The bump is then remapped by the version's phase
    (a downgrade is reported as a policy note) and may be overridden by
    ``chooser``. Packages that end up with no bump are not released.

    Args:
        snapshot: Workspace graph, commits and release markers.
        chooser: Optional callback (package, suggested bump, options) →
            chosen bump, used for interactive bump selection.
    """
    config = snapshot.config
    graph = snapshot.graph
    detection = detect(
        snapshot.commits, graph, snapshot.since, resolver=snapshot.resolver, config=config
    )
    report = Report()
    report.extend(detection.report)

    released: dict[str, PackageRelease] = {}
    for name, attribution in detection.attributions.items():
        pkg = graph[name]
        forced = any(dep in released for dep in attribution.propagated_from)
        suggested = compute_bump(attribution.commits, config.patch_types)
        if forced:
            suggested = max(suggested, VersionBump.PATCH)
        if suggested is VersionBump.NONE:
            continue

        applied = effective_bump(pkg.version, suggested)
        if applied < suggested:
            report.add(
                IssueKind.DOWNGRADED,
                f"{name}: {suggested} bump applied as {applied}, "
                f"since {pkg.version} is in the {_PHASES[applied]} phase",
                package=name,
            )

        minimum = VersionBump.PATCH if forced else VersionBump.NONE
        options = bump_options(pkg.version, minimum)
        chosen = choose_bump(applied, options, partial(chooser, pkg) if chooser else None)
        if chosen is VersionBump.NONE:
            continue

        released[name] = PackageRelease(
            name=name,
            old_version=pkg.version,
            new_version=str(next_version(pkg.version, chosen)),
            bump=chosen,
            suggested_bump=suggested,
            dependency_updates={
                dep: released[dep].new_version for dep in pkg.dependencies if dep in released
            },
        )

    entries = changelog.build(
        {n: a for n, a in detection.attributions.items() if n in released},
        config,
        releases=released,
    )
    releases = [
        r.model_copy(update={"changelog": entries.get(r.name, [])}) for r in released.values()
    ]
    graph.validate_order(r.name for r in releases)

    return ReleasePlan(
        releases=releases,
        attributions=detection.attributions,
        report=report,
    )


def release_summary(commits: Sequence[Classified]) -> str | None:
    """Body of the newest commit, without its footers.

    A release commit carries the release notes in its body, so for the
    commits of a past release this is that release's summary.
    """
    if not commits:
        return None
    _, body, _ = split_message(commits[-1].message)
    return body


def changelog_for(
    snapshot: Snapshot,
    name: str | None = None,
    *,
    version: str | None = None,
    summary: bool = False,
) -> tuple[str, Report]:
    """Render the changelog of one package, or of all of them.

    Without ``version`` this is the pending changelog of the next release.
    With ``version`` the snapshot holds the commits of that past release of
    ``name``, and its entries are rendered under that version. Dependency
    notes are left out there, since the versions dependencies were released
    at are not part of the snapshot.

    Args:
        snapshot: Workspace graph, commits and release markers.
        name: Package to render; all released packages if omitted.
        version: Past release of ``name`` the snapshot was loaded for.
        summary: Put the release summary in front of the changelog.

    Returns:
        The Markdown text, empty when there is nothing to show, and the
        report of the resolution run.
    """
    if version is not None and name is None:
        raise ValueError("A released version needs a package name")

    config = snapshot.config
    plan = plan_release(snapshot)
    parts: list[str] = []
    if summary:
        text = release_summary(snapshot.commits)
        if text:
            parts.append(text)

    if version is not None:
        attribution = plan.attributions.get(name)
        entries = changelog.build({name: attribution}, config)[name] if attribution else []
        if entries:
            parts.append(changelog.render_markdown(name, version, entries, config))
    elif name is None:
        if plan.releases:
            parts.append(plan.render(config))
    else:
        release = plan.get(name)
        if release is not None:
            parts.append(
                changelog.render_markdown(
                    release.name, release.new_version, release.changelog, config
                )
            )
    return "\n\n".join(parts), plan.report
