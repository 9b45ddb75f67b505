"""Dependency handling utilities.

Provides functions for reading internal dependency requirements from
Cargo.toml and package.json manifests, and for rewriting those manifests
with new package versions after a release has been planned.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from .manifests import load_json, load_toml, save_json, save_toml

CARGO_DEPENDENCY_TABLES = ("dependencies", "build-dependencies")
NODE_DEPENDENCY_FIELDS = ("dependencies", "optionalDependencies", "peerDependencies")
# Tables rewritten on a bump; dev-dependencies are not followed for
# ordering but still reference workspace versions.
_CARGO_REWRITE_TABLES = ("dependencies", "build-dependencies", "dev-dependencies")
_NODE_REWRITE_FIELDS = (*NODE_DEPENDENCY_FIELDS, "devDependencies")

_OPERATOR_RE = re.compile(r"^\s*([\^~=<>]*)\s*(.*)$")
_EXACT_VERSION_RE = re.compile(r"^=?\s*v?\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.+-]*)?$")


def cargo_dependency_name(key: str, spec: Any) -> str:
    """The real crate name of a dependency entry.

    Handles renamed dependencies:
        foo = { package = "real-crate", version = "1" } → "real-crate"
    """
    if isinstance(spec, dict) and "package" in spec:
        return str(spec["package"])
    return key


def is_cargo_pin(spec: Any, workspace_spec: Any = None) -> bool:
    """Whether a Cargo dependency pins an exact registry version.

    A path or workspace-inherited dependency follows the workspace copy,
    unless the inherited entry itself is an exact pin.

    Examples:
        "=1.2.3" → True
        "1.2.3" → False (caret requirement)
        { version = "=1.2.3", path = "../a" } → False
    """
    if isinstance(spec, dict):
        if spec.get("workspace"):
            return workspace_spec is not None and is_cargo_pin(workspace_spec)
        if "path" in spec or "git" in spec:
            return False
        spec = spec.get("version", "")
    return str(spec).strip().startswith("=")


def is_node_pin(spec: str) -> bool:
    """Whether an npm dependency spec pins an exact registry version.

    Examples:
        "1.2.3" → True
        "=1.2.3" → True
        "^1.2.3" → False
        "workspace:*" → False
    """
    return bool(_EXACT_VERSION_RE.match(spec.strip()))


def update_requirement(spec: str, version: str) -> str:
    """Point a requirement string at a new version, keeping its operator.

    Examples:
        update_requirement("^1.0.0", "1.1.0") → "^1.1.0"
        update_requirement("=0.3.1", "0.4.0") → "=0.4.0"
        update_requirement("1.0", "1.1.0") → "1.1.0"
    """
    m = _OPERATOR_RE.match(spec)
    operator = m.group(1) if m else ""
    return f"{operator}{version}"


def rewrite_cargo_manifest(
    manifest_path: Path,
    new_version: str | None,
    internal_dep_versions: dict[str, str],
    *,
    workspace_version: str | None = None,
) -> bool:
    """Update a crate's version and its internal dependency requirements.

    This function:
    1. Updates [package].version to new_version, unless it is inherited
       from the workspace
    2. Updates the version requirement of every internal dependency in
       [dependencies], [build-dependencies] and [dev-dependencies]
    3. Updates [workspace.dependencies] entries and, if workspace_version
       is given, [workspace.package].version, for a root manifest

    Entries with ``workspace = true`` and path-only entries are left alone.
    Uses tomlkit to preserve formatting and comments.

    Returns:
        True if new_version could not be written because the crate
        inherits its version from the workspace root.
    """
    doc = load_toml(manifest_path)
    inherited = False
    package = doc.get("package")
    if new_version is not None and package is not None:
        if isinstance(package.get("version"), dict):
            inherited = True
        else:
            package["version"] = new_version

    workspace = doc.get("workspace", {})
    if workspace_version is not None and "version" in workspace.get("package", {}):
        workspace["package"]["version"] = workspace_version

    tables = [doc.get(name) for name in _CARGO_REWRITE_TABLES]
    tables.append(workspace.get("dependencies"))
    for table in tables:
        if isinstance(table, dict):
            _update_cargo_table(table, internal_dep_versions)

    save_toml(manifest_path, doc)
    return inherited


def _update_cargo_table(table: dict, versions: dict[str, str]) -> None:
    """Update internal dependency requirements in a table, modifying in place."""
    for key in list(table.keys()):
        spec = table[key]
        name = cargo_dependency_name(key, spec)
        if name not in versions:
            continue
        if isinstance(spec, dict):
            if spec.get("workspace") or "version" not in spec:
                continue
            spec["version"] = update_requirement(str(spec["version"]), versions[name])
        else:
            table[key] = update_requirement(str(spec), versions[name])


def rewrite_package_json(
    manifest_path: Path,
    new_version: str | None,
    internal_dep_versions: dict[str, str],
) -> None:
    """Update a Node package's version and internal dependency specs.

    ``workspace:`` protocol specs are resolved by the package manager at
    publish time and are left alone, as are tags like ``latest`` or ``*``.
    """
    data = load_json(manifest_path)
    if new_version is not None:
        data["version"] = new_version

    for field in _NODE_REWRITE_FIELDS:
        deps = data.get(field)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if name not in internal_dep_versions:
                continue
            if spec.startswith("workspace:") or not _OPERATOR_RE.match(spec).group(2)[:1].isdigit():
                continue
            deps[name] = update_requirement(spec, internal_dep_versions[name])

    save_json(manifest_path, data)


def rewrite_manifest(
    manifest_path: Path,
    new_version: str | None,
    internal_dep_versions: dict[str, str],
) -> bool:
    """Dispatch to the rewriter matching the manifest file name.

    Returns:
        True if the version is inherited and must be set at the workspace root.
    """
    if manifest_path.name == "package.json":
        rewrite_package_json(manifest_path, new_version, internal_dep_versions)
        return False
    return rewrite_cargo_manifest(manifest_path, new_version, internal_dep_versions)
