"""Tests for monorel.release."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from monorel.config import ReleaseConfig
from monorel.errors import IssueKind
from monorel.graph import WorkspaceGraph
from monorel.models import ChangeKind, Package, VersionBump
from monorel.release import (
    Snapshot,
    changed_packages,
    changelog_for,
    list_packages,
    plan_release,
    release_summary,
)


@pytest.fixture
def pair_graph() -> WorkspaceGraph:
    """A depends on B."""
    return WorkspaceGraph(
        [
            Package(name="a", version="2.3.0", path="a", dependencies=("b",)),
            Package(name="b", version="1.0.0", path="b"),
        ]
    )


class TestListPackages:
    def test_topological(self, chain_graph: WorkspaceGraph) -> None:
        assert list_packages(chain_graph) == ["core", "lib", "app", "tool"]


class TestChangedPackages:
    def test_direct_and_propagated(
        self, chain_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        snapshot = Snapshot(graph=chain_graph, commits=make_commits("fix(lib): x", "nonsense"))
        names, report = changed_packages(snapshot)

        assert names == ["lib", "app"]
        assert len(report.of_kind(IssueKind.MALFORMED)) == 1


class TestPlanRelease:
    def test_dependency_fix_forces_dependent_patch(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        plan = plan_release(Snapshot(graph=pair_graph, commits=make_commits("fix(b): repair")))

        assert plan.names == ["b", "a"]
        b, a = plan.releases
        assert (b.old_version, b.new_version, b.bump) == ("1.0.0", "1.0.1", VersionBump.PATCH)
        assert (a.old_version, a.new_version, a.bump) == ("2.3.0", "2.3.1", VersionBump.PATCH)
        assert a.dependency_updates == {"b": "1.0.1"}

    def test_dependent_keeps_stronger_own_bump(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("fix(b): repair", "feat(a): new thing")
        plan = plan_release(Snapshot(graph=pair_graph, commits=commits))
        assert plan.get("a").new_version == "2.4.0"

    def test_breaking_on_stable_is_major(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        plan = plan_release(Snapshot(graph=pair_graph, commits=make_commits("feat(b)!: drop v1")))
        assert plan.get("b").new_version == "2.0.0"
        # The dependent only follows with a patch
        assert plan.get("a").new_version == "2.3.1"

    def test_feature_on_0_0_z_is_patch_with_note(self, make_commits: Callable) -> None:
        graph = WorkspaceGraph([Package(name="new", version="0.0.3")])
        plan = plan_release(Snapshot(graph=graph, commits=make_commits("feat(new): thing")))

        assert plan.get("new").new_version == "0.0.4"
        assert plan.get("new").suggested_bump is VersionBump.MINOR
        notes = plan.report.notes
        assert [n.kind for n in notes] == [IssueKind.DOWNGRADED]
        assert "0.0.z" in notes[0].message

    def test_breaking_on_0_y_z_is_minor(self, make_commits: Callable) -> None:
        graph = WorkspaceGraph([Package(name="young", version="0.3.1")])
        plan = plan_release(Snapshot(graph=graph, commits=make_commits("fix(young)!: rename")))

        assert plan.get("young").new_version == "0.4.0"
        assert plan.report.notes[0].package == "young"

    def test_chore_is_not_released(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        plan = plan_release(Snapshot(graph=pair_graph, commits=make_commits("chore(b): update deps")))

        assert plan.releases == []
        assert "b" in plan.attributions

    def test_unreleased_dependency_does_not_force(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("chore(b): update deps", "docs(a): typo")
        assert plan_release(Snapshot(graph=pair_graph, commits=commits)).releases == []

    def test_malformed_commit_reported_not_fatal(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("random text without colon", "fix(b): repair")
        plan = plan_release(Snapshot(graph=pair_graph, commits=commits))

        assert plan.names == ["b", "a"]
        malformed = plan.report.of_kind(IssueKind.MALFORMED)
        assert [i.commit_id for i in malformed] == ["c0"]

    def test_changelog_entries(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        commits = make_commits("fix(b): repair (#7)", "chore(b): tidy")
        plan = plan_release(Snapshot(graph=pair_graph, commits=commits))

        b_entries = plan.get("b").changelog
        assert [e.kind for e in b_entries] == [ChangeKind.FIX]
        assert [line.text for line in b_entries[0].lines] == ["repair"]
        a_entries = plan.get("a").changelog
        assert a_entries[0].lines[0].text == "Updated dependencies: b 1.0.1"

    def test_chooser_overrides(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        calls = []

        def chooser(pkg: Package, suggested: VersionBump, options: list[VersionBump]) -> VersionBump:
            calls.append((pkg.name, suggested, options))
            return VersionBump.MINOR if pkg.name == "b" else suggested

        plan = plan_release(
            Snapshot(graph=pair_graph, commits=make_commits("fix(b): repair")), chooser=chooser
        )

        assert plan.get("b").new_version == "1.1.0"
        assert calls[0] == ("b", VersionBump.PATCH, list(VersionBump))
        # A forced dependent cannot be skipped
        assert calls[1] == (
            "a",
            VersionBump.PATCH,
            [VersionBump.PATCH, VersionBump.MINOR, VersionBump.MAJOR],
        )

    def test_chooser_can_skip_direct_change(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        plan = plan_release(
            Snapshot(graph=pair_graph, commits=make_commits("fix(b): repair")),
            chooser=lambda pkg, suggested, options: VersionBump.NONE,
        )
        assert plan.releases == []

    def test_pinned_dependent_left_alone(self, make_commits: Callable) -> None:
        graph = WorkspaceGraph(
            [
                Package(name="a", version="1.0.0", dependencies=("b",), pinned=frozenset({"b"})),
                Package(name="b", version="1.0.0"),
            ]
        )
        config = ReleaseConfig(propagate="unless-pinned")
        plan = plan_release(
            Snapshot(graph=graph, commits=make_commits("fix(b): x"), config=config)
        )
        assert plan.names == ["b"]

    def test_markers_limit_commits(
        self, pair_graph: WorkspaceGraph, make_commits: Callable
    ) -> None:
        commits = make_commits("feat(b): old", "fix(b): new")
        plan = plan_release(Snapshot(graph=pair_graph, commits=commits, since={"b": "c0"}))
        assert plan.get("b").new_version == "1.0.1"


class TestChangelogFor:
    def test_single_package(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        snapshot = Snapshot(graph=pair_graph, commits=make_commits("feat(b): search (#3)"))
        text, _ = changelog_for(snapshot, "b")
        assert text == "## b v1.1.0\n\n### Features\n\n- search (#3)"

    def test_all_packages(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        snapshot = Snapshot(graph=pair_graph, commits=make_commits("fix(b): x"))
        text, _ = changelog_for(snapshot)
        assert text.index("## b v1.0.1") < text.index("## a v2.3.1")

    def test_unreleased_package(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        snapshot = Snapshot(graph=pair_graph, commits=make_commits("fix(b): x"))
        text, _ = changelog_for(snapshot, "missing")
        assert text == ""

    def test_returns_report(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        snapshot = Snapshot(graph=pair_graph, commits=make_commits("not conventional"))
        text, report = changelog_for(snapshot)
        assert text == ""
        assert [i.kind for i in report.warnings] == [IssueKind.MALFORMED]

    def test_released_version(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        """A past release is rendered under its own version, without dependency notes."""
        snapshot = Snapshot(
            graph=pair_graph, commits=make_commits("fix(b): x", "feat(a): y")
        )
        text, _ = changelog_for(snapshot, "a", version="2.2.0")
        assert text == "## a v2.2.0\n\n### Features\n\n- y"

    def test_released_version_needs_package(self, pair_graph: WorkspaceGraph) -> None:
        with pytest.raises(ValueError, match="needs a package name"):
            changelog_for(Snapshot(graph=pair_graph), version="1.0.0")

    def test_summary_first(self, pair_graph: WorkspaceGraph, make_commits: Callable) -> None:
        snapshot = Snapshot(
            graph=pair_graph,
            commits=make_commits("feat(b): x", "chore: release\n\nFaster search.\n\nCloses #4"),
        )
        text, _ = changelog_for(snapshot, "b", summary=True)
        assert text == "Faster search.\n\n## b v1.1.0\n\n### Features\n\n- x"


class TestReleaseSummary:
    def test_newest_body(self, make_commits: Callable) -> None:
        commits = make_commits("fix: x\n\nold body", "chore: release\n\n  core: 1.0.0 → 1.0.1")
        assert release_summary(commits) == "  core: 1.0.0 → 1.0.1"

    def test_no_body(self, make_commits: Callable) -> None:
        assert release_summary(make_commits("fix: x")) is None
        assert release_summary([]) is None
