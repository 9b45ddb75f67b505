"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from monorel.commits import classify_commits
from monorel.graph import WorkspaceGraph
from monorel.models import Classified, CommitInfo, Package


@pytest.fixture
def chain_packages() -> list[Package]:
    """app → lib → core, plus an unrelated tool package."""
    return [
        Package(name="app", version="1.2.0", path="crates/app", dependencies=("lib",)),
        Package(name="lib", version="1.0.0", path="crates/lib", dependencies=("core",)),
        Package(name="core", version="1.0.0", path="crates/core"),
        Package(name="tool", version="0.3.1", path="tools/tool"),
    ]


@pytest.fixture
def chain_graph(chain_packages: list[Package]) -> WorkspaceGraph:
    return WorkspaceGraph(chain_packages)


@pytest.fixture
def make_commits() -> Callable[..., list[Classified]]:
    """Build a classified commit log from (message, paths) pairs, oldest first.

    Commit ids are ``c0``, ``c1``, ... in log order.
    """

    def _make(*entries: str | tuple[str, list[str]], config=None) -> list[Classified]:
        infos = []
        for i, entry in enumerate(entries):
            message, paths = entry if isinstance(entry, tuple) else (entry, [])
            infos.append(CommitInfo(id=f"c{i}", message=message, paths=paths))
        return classify_commits(infos, config)

    return _make


@pytest.fixture
def cargo_workspace(tmp_path: Path) -> Path:
    """A Cargo workspace: app → lib (exact pin) → core, lib → core (path)."""
    (tmp_path / "Cargo.toml").write_text(
        """\
[workspace]
members = ["crates/*"]
exclude = ["crates/scratch"]

[workspace.package]
version = "0.3.1"

[workspace.dependencies]
core = { path = "crates/core", version = "1.0.0" }

[workspace.metadata.monorel]
issue_url = "https://example.com/issues/{number}"
"""
    )
    crates = {
        "core": """\
[package]
name = "core"
version = "1.0.0"  # keep in sync with the changelog

[dependencies]
serde = "1"
""",
        "lib": """\
[package]
name = "lib"
version.workspace = true

[dependencies]
core = { workspace = true }

[dev-dependencies]
app = { path = "../app", version = "1.2.0" }
""",
        "app": """\
[package]
name = "app"
version = "1.2.0"

[dependencies]
lib = "=0.3.1"
""",
        "scratch": """\
[package]
name = "scratch"
version = "0.0.1"
""",
    }
    for name, content in crates.items():
        directory = tmp_path / "crates" / name
        directory.mkdir(parents=True)
        (directory / "Cargo.toml").write_text(content)
    return tmp_path


@pytest.fixture
def node_workspace(tmp_path: Path) -> Path:
    """An npm workspace: web → ui (range) and web → utils (exact pin)."""
    (tmp_path / "package.json").write_text(
        json.dumps(
            {
                "name": "root",
                "private": True,
                "workspaces": ["packages/*"],
                "monorel": {"propagate": "unless-pinned"},
            },
            indent=2,
        )
    )
    manifests = {
        "utils": {"name": "utils", "version": "2.0.0"},
        "ui": {
            "name": "ui",
            "version": "0.4.0",
            "dependencies": {"utils": "^2.0.0", "react": "^18.0.0"},
        },
        "web": {
            "name": "web",
            "version": "1.0.0",
            "dependencies": {"ui": "^0.4.0", "utils": "2.0.0"},
            "devDependencies": {"ui": "workspace:*"},
        },
    }
    for name, data in manifests.items():
        directory = tmp_path / "packages" / name
        directory.mkdir(parents=True)
        (directory / "package.json").write_text(json.dumps(data, indent=2) + "\n")
    return tmp_path
