"""Tests for monorel.changes."""

from __future__ import annotations

from collections.abc import Callable

from monorel.changes import DirectoryPathResolver, detect
from monorel.config import ReleaseConfig
from monorel.errors import IssueKind
from monorel.graph import WorkspaceGraph
from monorel.models import Package


class TestDirectoryPathResolver:
    def test_matches_package_directory(self, chain_packages: list[Package]) -> None:
        resolver = DirectoryPathResolver(chain_packages)
        assert resolver.packages_touched(["crates/core/src/lib.rs", "README.md"]) == {"core"}

    def test_deepest_directory_wins(self) -> None:
        resolver = DirectoryPathResolver(
            [
                Package(name="core", version="1.0.0", path="crates/core"),
                Package(name="macros", version="1.0.0", path="crates/core/macros"),
            ]
        )
        assert resolver.packages_touched(["crates/core/macros/src/lib.rs"]) == {"macros"}
        assert resolver.packages_touched(["crates/core/src/lib.rs"]) == {"core"}

    def test_prefix_must_be_a_whole_directory(self, chain_packages: list[Package]) -> None:
        resolver = DirectoryPathResolver(chain_packages)
        assert resolver.packages_touched(["crates/core-extra/src/lib.rs"]) == set()

    def test_root_package(self) -> None:
        resolver = DirectoryPathResolver(
            [
                Package(name="root", version="1.0.0", path="."),
                Package(name="member", version="1.0.0", path="member"),
            ]
        )
        assert resolver.packages_touched(["member/index.js"]) == {"member"}
        assert resolver.packages_touched(["src/main.rs"]) == {"root"}


class TestDetect:
    def test_scope_attribution(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("fix(tool): repair"), chain_graph)

        assert detection.changed == ["tool"]
        assert [c.id for c in detection.attributions["tool"].commits] == ["c0"]

    def test_path_attribution(self, chain_graph: WorkspaceGraph, make_commits: Callable) -> None:
        detection = detect(make_commits(("fix: repair", ["tools/tool/main.py"])), chain_graph)
        assert detection.changed == ["tool"]

    def test_scope_alias(self, chain_graph: WorkspaceGraph, make_commits: Callable) -> None:
        config = ReleaseConfig(scope_aliases={"cli": "tool"})
        detection = detect(make_commits("fix(cli): repair"), chain_graph, config=config)
        assert detection.changed == ["tool"]

    def test_dependency_change_propagates(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("fix(core): repair"), chain_graph)

        assert detection.changed == ["core", "lib", "app"]
        assert detection.attributions["lib"].is_propagated
        assert detection.attributions["lib"].propagated_from == ["core"]
        assert detection.attributions["app"].propagated_from == ["lib"]

    def test_commits_stay_chronological(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("fix(core): one", "docs(core): two", "feat(core): three")
        detection = detect(commits, chain_graph)
        assert [c.description for c in detection.attributions["core"].commits] == [
            "one",
            "two",
            "three",
        ]

    def test_malformed_is_reported(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("random text without colon"), chain_graph)

        assert detection.changed == []
        issues = detection.report.of_kind(IssueKind.MALFORMED)
        assert len(issues) == 1
        assert issues[0].commit_id == "c0"
        assert "random text without colon" in issues[0].message

    def test_unknown_scope_is_reported(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("fix(nope): x"), chain_graph)

        assert detection.changed == []
        assert len(detection.report.of_kind(IssueKind.UNKNOWN_SCOPE)) == 1

    def test_unknown_scope_falls_back_to_paths(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits(("fix(nope): x", ["tools/tool/a.py"])), chain_graph)

        assert detection.changed == ["tool"]
        assert not detection.report

    def test_unattributed_is_reported(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits(("fix: x", ["README.md"])), chain_graph)

        assert detection.changed == []
        assert len(detection.report.of_kind(IssueKind.UNATTRIBUTED)) == 1

    def test_empty_breaking_footer_is_reported(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("fix(tool): x\n\nBREAKING CHANGE:"), chain_graph)

        assert detection.changed == ["tool"]
        assert len(detection.report.of_kind(IssueKind.EMPTY_BREAKING)) == 1

    def test_commits_before_marker_are_ignored(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("fix(tool): old", "fix(core): old", "feat(tool): new")
        detection = detect(commits, chain_graph, {"tool": "c1", "core": "c1"})

        assert detection.changed == ["tool"]
        assert [c.description for c in detection.attributions["tool"].commits] == ["new"]

    def test_marker_outside_log_counts_everything(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        detection = detect(make_commits("fix(tool): x"), chain_graph, {"tool": "older"})
        assert detection.changed == ["tool"]

    def test_pinned_dependents_not_reached_unless_configured(
        self, make_commits: Callable
    ) -> None:
        graph = WorkspaceGraph(
            [
                Package(name="app", version="1.0.0", dependencies=("lib",), pinned=frozenset({"lib"})),
                Package(name="lib", version="1.0.0"),
            ]
        )
        commits = make_commits("fix(lib): x")

        assert detect(commits, graph).changed == ["lib", "app"]
        config = ReleaseConfig(propagate="unless-pinned")
        assert detect(commits, graph, config=config).changed == ["lib"]

    def test_custom_resolver(self, chain_graph: WorkspaceGraph, make_commits: Callable) -> None:
        class Everything:
            def packages_touched(self, paths):
                return {"tool", "core"}

        detection = detect(make_commits(("fix: x", ["x"])), chain_graph, resolver=Everything())
        assert detection.changed == ["core", "lib", "app", "tool"]
