"""Release pipeline: discover → markers → commits → plan → write → tag.

This module performs all I/O around the pure resolution core:
1. Discover all packages in the workspace
2. Find each package's last release marker
3. Read the commit log since the oldest marker
4. Plan versions and changelogs (``monorel.release``)
5. Rewrite manifests with the new versions
6. Commit the version bump and record release markers
"""

from __future__ import annotations

from pathlib import Path

from .commits import classify_commits
from .config import ReleaseConfig, load_config
from .deps import rewrite_cargo_manifest, rewrite_manifest
from .errors import RepositoryError
from .graph import WorkspaceGraph
from .models import CommitInfo, Package
from .release import PackageChooser, ReleasePlan, Snapshot, plan_release
from .repository import GitCommitSource, GitTagMarkerStore
from .shell import fatal, git, info, step
from .sources import CommitSource, PackageSource, ReleaseMarkerStore, detect_workspace
from .versions import parse_version


def discover_packages(source: PackageSource) -> WorkspaceGraph:
    """Read the workspace and build its dependency graph.

    Raises:
        StructuralError: On duplicate names, unknown dependencies or cycles.
    """
    step("Discovering workspace packages")
    graph = WorkspaceGraph(source.list_packages())

    # Print discovered packages for user feedback
    for pkg in graph.topological_order():
        deps = f" → [{', '.join(pkg.dependencies)}]" if pkg.dependencies else ""
        info(f"{pkg.name} {pkg.version} ({pkg.path}){deps}")
    return graph


def find_last_markers(
    graph: WorkspaceGraph, store: ReleaseMarkerStore
) -> dict[str, str | None]:
    """Find the most recent release marker for each package.

    Returns:
        Map of package name to its marker commit, or None if never released.
    """
    step("Finding last release markers")

    markers: dict[str, str | None] = {}
    for pkg in graph.topological_order():
        marker = store.last_release_marker(pkg)
        markers[pkg.name] = marker
        info(f"{pkg.name}: {marker[:7] if marker else '<none>'}")
    return markers


def load_commits(source: CommitSource, markers: dict[str, str | None]) -> list[CommitInfo]:
    """Read the commits every package needs to look at.

    A package that was never released needs the whole history. Otherwise
    the log since the oldest marker covers all of them; on a linear history
    that is the longest of the per-marker logs.
    """
    step("Reading commits")

    if not markers or any(m is None for m in markers.values()):
        commits = source.commits_since(None)
    else:
        logs = [source.commits_since(m) for m in sorted(set(markers.values()))]
        commits = max(logs, key=len)
    info(f"{len(commits)} commits")
    return commits


def load_snapshot(
    root: Path,
    *,
    config: ReleaseConfig | None = None,
    package_source: PackageSource | None = None,
    commit_source: CommitSource | None = None,
    marker_store: ReleaseMarkerStore | None = None,
) -> Snapshot:
    """Collect everything a resolution run needs from disk and git.

    Collaborators default to the git-backed implementations and the
    package source matching the workspace manifest at ``root``.
    """
    config = config or load_config(root)
    graph = discover_packages(package_source or detect_workspace(root))
    store = marker_store or GitTagMarkerStore(config.tag_format, cwd=root)
    markers = find_last_markers(graph, store)
    commits = load_commits(commit_source or GitCommitSource(cwd=root), markers)
    return Snapshot(
        graph=graph,
        commits=classify_commits(commits, config),
        since=markers,
        config=config,
    )


def find_release_range(
    store: ReleaseMarkerStore, name: str, version: str
) -> tuple[str | None, str]:
    """Commit range of a past release: (previous release marker, its marker).

    The previous marker is None for a package's first release.

    Raises:
        RepositoryError: If ``version`` was never released.
    """
    version = str(parse_version(version))
    versions = store.released_versions(name)
    end = store.release_marker(name, version) if version in versions else None
    if end is None:
        raise RepositoryError(f"No release {version} of '{name}' found")

    older = versions[versions.index(version) + 1 :]
    start = store.release_marker(name, older[0]) if older else None
    return start, end


def load_release_snapshot(
    root: Path,
    name: str,
    version: str,
    *,
    config: ReleaseConfig | None = None,
    package_source: PackageSource | None = None,
    commit_source: CommitSource | None = None,
    marker_store: ReleaseMarkerStore | None = None,
) -> Snapshot:
    """Collect the commits that went into a past release of ``name``.

    Raises:
        UnknownPackageError: If ``name`` is not a workspace package.
        RepositoryError: If ``version`` was never released.
    """
    config = config or load_config(root)
    graph = discover_packages(package_source or detect_workspace(root))
    graph.require(name)
    store = marker_store or GitTagMarkerStore(config.tag_format, cwd=root)

    step(f"Reading commits of {name} {version}")
    start, end = find_release_range(store, name, version)
    commits = (commit_source or GitCommitSource(cwd=root)).commits_between(start, end)
    info(f"{len(commits)} commits")
    return Snapshot(graph=graph, commits=classify_commits(commits, config), config=config)


def ensure_releasable(root: Path, config: ReleaseConfig, *, commit: bool = True) -> None:
    """Refuse to write a release over local edits or off a release branch.

    Manifests are staged whole, so uncommitted edits in them would end up
    in the release commit. The branch is only checked when committing.
    """
    if git("status", "--porcelain", check=False, cwd=root):
        fatal("Working directory contains changes; commit or stash them first")

    if commit and config.release_branches:
        branch = git("rev-parse", "--abbrev-ref", "HEAD", check=False, cwd=root)
        if branch not in config.release_branches:
            allowed = ", ".join(config.release_branches)
            fatal(f"Not on a release branch ({allowed}): {branch or 'no branch'}")


def write_manifests(root: Path, snapshot: Snapshot, plan: ReleasePlan) -> list[Path]:
    """Rewrite the manifest of every released package.

    Internal dependency requirements are pointed at the new versions, except
    exact pins when the configuration says pinned dependents are left alone.
    A root Cargo.toml is rewritten too, for [workspace.dependencies] and for
    crates that inherit [workspace.package].version. Crates sharing that
    version move to the highest new version among them.

    Returns:
        Paths of the rewritten manifests.
    """
    step("Updating manifests")

    new_versions = {r.name: r.new_version for r in plan.releases}
    written: list[Path] = []
    inherited: list[str] = []
    for release in plan.releases:
        pkg = snapshot.graph[release.name]
        # Dev-dependencies are not graph edges but still name workspace versions
        internal_dep_versions = {
            dep: version
            for dep, version in new_versions.items()
            if dep != pkg.name and not (snapshot.config.respect_pins and dep in pkg.pinned)
        }
        path = root / pkg.manifest_path
        if rewrite_manifest(path, release.new_version, internal_dep_versions):
            inherited.append(release.new_version)
        written.append(path)
        info(f"{release.name}: {release.old_version} → {release.new_version}")

    root_cargo = root / "Cargo.toml"
    if root_cargo.exists():
        workspace_version = str(max(map(parse_version, inherited))) if inherited else None
        rewrite_cargo_manifest(root_cargo, None, new_versions, workspace_version=workspace_version)
        if root_cargo not in written:
            written.append(root_cargo)
    return written


def commit_release(root: Path, plan: ReleasePlan, paths: list[Path]) -> None:
    """Commit the version bump changes."""
    step("Committing release")

    for path in paths:
        git("add", str(path.relative_to(root)), cwd=root)

    # Check if there are actually changes to commit
    staged = git("diff", "--cached", "--name-only", check=False, cwd=root)
    if not staged:
        fatal("No changes to commit")

    summary = "\n".join(f"  {r.name}: {r.old_version} → {r.new_version}" for r in plan.releases)
    git("commit", "-m", "chore: release", "-m", summary, cwd=root)
    info("Committed")


def record_releases(
    snapshot: Snapshot, plan: ReleasePlan, store: ReleaseMarkerStore
) -> None:
    """Record a release marker for every released package at HEAD."""
    step("Recording release markers")

    for release in plan.releases:
        pkg: Package = snapshot.graph[release.name]
        store.record_release(pkg, release.new_version)
        info(f"{release.name} {release.new_version}")


def run_version_create(
    root: Path,
    *,
    dry_run: bool = False,
    commit: bool = True,
    chooser: PackageChooser | None = None,
) -> ReleasePlan:
    """Execute the full version-create pipeline.

    Args:
        root: Workspace root directory.
        dry_run: Only plan; touch neither manifests nor git.
        commit: Commit the manifest changes and tag the new versions. A
            committed release needs a clean tree on a release branch; an
            uncommitted one only a clean tree.
        chooser: Optional interactive bump selection callback.

    Returns:
        The release plan, empty when nothing needs releasing.
    """
    config = load_config(root)
    if not dry_run:
        ensure_releasable(root, config, commit=commit)
    store = GitTagMarkerStore(config.tag_format, cwd=root)
    snapshot = load_snapshot(root, config=config, marker_store=store)

    step("Planning release")
    plan = plan_release(snapshot, chooser=chooser)
    if not plan.releases:
        info("Nothing to release")
        return plan
    for release in plan.releases:
        info(f"{release.name}: {release.old_version} → {release.new_version} ({release.bump})")

    if dry_run:
        return plan

    paths = write_manifests(root, snapshot, plan)
    if commit:
        commit_release(root, plan, paths)
        record_releases(snapshot, plan, store)
    return plan
