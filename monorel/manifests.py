"""Manifest reading and writing utilities.

Uses tomlkit for Cargo.toml so formatting and comments survive a version
bump, which keeps release commits readable and diff-friendly. package.json
files are plain JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import WorkspaceError


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML manifest.

    Returns a TOMLDocument that preserves formatting when modified and saved.

    Raises:
        WorkspaceError: If the file does not parse.
    """
    try:
        return tomlkit.parse(path.read_text())
    except TOMLKitError as exc:
        raise WorkspaceError(f"Cannot parse {path}: {exc}") from exc


def save_toml(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise WorkspaceError(f"Cannot parse {path}: {exc}") from exc


def save_json(path: Path, data: dict[str, Any]) -> None:
    """Write JSON with two-space indentation and a trailing newline, as npm does."""
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def get_cargo_members(doc: tomlkit.TOMLDocument) -> tuple[list[str], list[str]]:
    """Extract member and exclude glob patterns from [workspace]."""
    workspace = doc.get("workspace", {})
    return list(workspace.get("members", [])), list(workspace.get("exclude", []))


def get_cargo_version(doc: tomlkit.TOMLDocument, workspace_doc: tomlkit.TOMLDocument | None) -> str:
    """Extract [package].version, following ``version.workspace = true``.

    Defaults to '0.0.0' like an unversioned crate.
    """
    version = doc.get("package", {}).get("version", "0.0.0")
    if isinstance(version, dict) and version.get("workspace"):
        if workspace_doc is None:
            return "0.0.0"
        return str(workspace_doc.get("workspace", {}).get("package", {}).get("version", "0.0.0"))
    return str(version)


def get_node_members(data: dict[str, Any]) -> list[str]:
    """Extract workspace globs from package.json.

    Supports both the array form and the ``{"packages": [...]}`` form used
    by yarn.
    """
    workspaces = data.get("workspaces", [])
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages", [])
    return list(workspaces)
