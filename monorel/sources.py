"""Collaborator interfaces and workspace discovery.

The resolution core only ever sees a normalized package list, an ordered
commit log, a path resolver and release markers. This module defines those
interfaces and the package sources for the two supported ecosystems:

- Cargo workspaces: root Cargo.toml with ``[workspace].members``.
- Node workspaces: root package.json with ``workspaces`` (npm, yarn).

Supporting another ecosystem means adding one more ``PackageSource``.
"""

from __future__ import annotations

import glob
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from .deps import (
    CARGO_DEPENDENCY_TABLES,
    NODE_DEPENDENCY_FIELDS,
    cargo_dependency_name,
    is_cargo_pin,
    is_node_pin,
)
from .errors import DuplicatePackageError, WorkspaceError
from .manifests import (
    get_cargo_members,
    get_cargo_version,
    get_node_members,
    load_json,
    load_toml,
)
from .models import CommitInfo, Package


@runtime_checkable
class PackageSource(Protocol):
    def list_packages(self) -> list[Package]:
        """All workspace packages, with duplicates reported as errors."""
        ...


@runtime_checkable
class CommitSource(Protocol):
    def commits_since(self, marker: str | None) -> list[CommitInfo]:
        """Commits after ``marker`` (the whole history for None), oldest first."""
        ...

    def commits_between(self, start: str | None, end: str) -> list[CommitInfo]:
        """Commits up to ``end`` that come after ``start``, oldest first."""
        ...


@runtime_checkable
class PathResolver(Protocol):
    def packages_touched(self, paths: Iterable[str]) -> set[str]: ...


@runtime_checkable
class ReleaseMarkerStore(Protocol):
    def last_release_marker(self, package: Package) -> str | None: ...

    def release_marker(self, name: str, version: str) -> str | None: ...

    def released_versions(self, name: str) -> list[str]: ...

    def record_release(self, package: Package, version: str, marker: str | None = None) -> None: ...


def _expand_members(root: Path, patterns: Iterable[str], manifest: str) -> list[Path]:
    """Expand member globs to package directories containing ``manifest``.

    Patterns starting with ``!`` exclude directories matched earlier.
    """
    included: list[Path] = []
    excluded: set[Path] = set()
    for pattern in patterns:
        target = excluded if pattern.startswith("!") else None
        for match in sorted(glob.glob(str(root / pattern.lstrip("!")))):
            p = Path(match).resolve()
            if not (p / manifest).exists():
                continue
            if target is not None:
                target.add(p)
            elif p not in included:
                included.append(p)
    return [p for p in included if p not in excluded]


def _check_unique(packages: list[Package]) -> list[Package]:
    seen: dict[str, Package] = {}
    for pkg in packages:
        if pkg.name in seen:
            raise DuplicatePackageError(pkg.name, (seen[pkg.name].path, pkg.path))
        seen[pkg.name] = pkg
    return packages


class CargoWorkspace:
    """Package source for a Cargo workspace.

    Reads [workspace].members (minus [workspace].exclude) from the root
    Cargo.toml. A root manifest with a [package] section is a package too,
    and members that declare a nested [workspace] are expanded recursively.
    Only [dependencies] and [build-dependencies] take part in ordering,
    since Cargo allows dev-dependency cycles.
    """

    manifest = "Cargo.toml"

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def list_packages(self) -> list[Package]:
        root_doc = load_toml(self.root / self.manifest)
        if "workspace" not in root_doc and "package" not in root_doc:
            raise WorkspaceError(f"{self.root / self.manifest} has no [workspace] or [package]")

        raw: list[tuple[Path, dict]] = []
        self._collect(self.root, root_doc, raw, visited=set())

        names = {str(doc["package"]["name"]) for _, doc in raw}
        workspace_deps = root_doc.get("workspace", {}).get("dependencies", {})
        packages: list[Package] = []
        for directory, doc in raw:
            deps: list[str] = []
            pinned: set[str] = set()
            for table_name in CARGO_DEPENDENCY_TABLES:
                for key, spec in doc.get(table_name, {}).items():
                    name = cargo_dependency_name(key, spec)
                    if name not in names or name in deps:
                        continue
                    deps.append(name)
                    if is_cargo_pin(spec, workspace_deps.get(key)):
                        pinned.add(name)
            rel = directory.relative_to(self.root).as_posix()
            packages.append(
                Package(
                    name=str(doc["package"]["name"]),
                    version=get_cargo_version(doc, root_doc),
                    path=rel,
                    manifest_path=f"{rel}/{self.manifest}" if rel != "." else self.manifest,
                    dependencies=tuple(deps),
                    pinned=frozenset(pinned),
                )
            )
        return _check_unique(packages)

    def _collect(self, directory: Path, doc, raw: list, visited: set[Path]) -> None:
        if directory in visited:
            return
        visited.add(directory)
        if "package" in doc:
            raw.append((directory, doc))
        members, exclude = get_cargo_members(doc)
        patterns = [*members, *(f"!{e}" for e in exclude)]
        for member in _expand_members(directory, patterns, self.manifest):
            self._collect(member, load_toml(member / self.manifest), raw, visited)


class NodeWorkspace:
    """Package source for an npm or yarn workspace.

    Reads ``workspaces`` from the root package.json. ``dependencies``,
    ``optionalDependencies`` and ``peerDependencies`` take part in
    ordering; a bare version like ``1.2.3`` is an exact pin, while ranges
    and ``workspace:`` specs follow the workspace copy.
    """

    manifest = "package.json"

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def list_packages(self) -> list[Package]:
        root_data = load_json(self.root / self.manifest)
        member_dirs = _expand_members(self.root, get_node_members(root_data), self.manifest)

        raw: list[tuple[Path, dict]] = []
        # A private root package.json only holds the workspace definition
        if "name" in root_data and not root_data.get("private"):
            raw.append((self.root, root_data))
        if not member_dirs and not raw:
            raise WorkspaceError("No packages found matching workspace members")
        for d in member_dirs:
            if d != self.root:
                raw.append((d, load_json(d / self.manifest)))

        raw = [(d, data) for d, data in raw if "name" in data]
        names = {data["name"] for _, data in raw}
        packages: list[Package] = []
        for directory, data in raw:
            deps: list[str] = []
            pinned: set[str] = set()
            for field in NODE_DEPENDENCY_FIELDS:
                for name, spec in data.get(field, {}).items():
                    if name not in names or name in deps:
                        continue
                    deps.append(name)
                    if is_node_pin(str(spec)):
                        pinned.add(name)
            rel = directory.relative_to(self.root).as_posix()
            packages.append(
                Package(
                    name=data["name"],
                    version=data.get("version", "0.0.0"),
                    path=rel,
                    manifest_path=f"{rel}/{self.manifest}" if rel != "." else self.manifest,
                    dependencies=tuple(deps),
                    pinned=frozenset(pinned),
                )
            )
        return _check_unique(packages)


def detect_workspace(root: Path) -> PackageSource:
    """Pick the package source for the workspace at ``root``.

    Raises:
        WorkspaceError: If neither a Cargo.toml nor a package.json exists.
    """
    if (root / CargoWorkspace.manifest).exists():
        return CargoWorkspace(root)
    if (root / NodeWorkspace.manifest).exists():
        return NodeWorkspace(root)
    raise WorkspaceError(f"No Cargo.toml or package.json found in {root}")
