"""Changelog grouping and Markdown rendering.

Changelogs are grouped per package and per change kind. Breaking changes
always come first, followed by features, bug fixes and other changes.
Commit types that are irrelevant for a release (chore, docs, test, ...)
are left out unless configured otherwise.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .config import ReleaseConfig
from .models import (
    Attribution,
    ChangeKind,
    ChangelogEntry,
    ChangelogLine,
    CommitRecord,
    PackageRelease,
)


def build(
    attributions: Mapping[str, Attribution],
    config: ReleaseConfig | None = None,
    *,
    releases: Mapping[str, PackageRelease] | None = None,
) -> dict[str, list[ChangelogEntry]]:
    """Group attributed commits into changelog entries.

    Args:
        attributions: Map of package name → attribution.
        config: Release configuration (line order, "Other" types,
              dependency notes).
        releases: Planned releases by package name. Needed to render the
              "Updated dependencies" note with the new dependency versions.

    Returns:
        Map of package name → non-empty groups in fixed kind order.
    """
    config = config or ReleaseConfig()
    result: dict[str, list[ChangelogEntry]] = {}

    for name, attribution in attributions.items():
        commits = list(attribution.commits)
        if config.order == "newest":
            commits.reverse()

        groups: dict[ChangeKind, list[ChangelogLine]] = {}
        for commit in commits:
            kind = commit.kind
            if kind is ChangeKind.OTHER and commit.type not in config.other_types:
                continue
            groups.setdefault(kind, []).append(_line(commit))

        if config.dependency_notes and releases and attribution.propagated_from:
            updates = [
                f"{dep} {releases[dep].new_version}"
                for dep in attribution.propagated_from
                if dep in releases
            ]
            if updates:
                groups.setdefault(ChangeKind.OTHER, []).append(
                    ChangelogLine(text=f"Updated dependencies: {', '.join(updates)}")
                )

        result[name] = [
            ChangelogEntry(kind=kind, lines=groups[kind]) for kind in ChangeKind if kind in groups
        ]
    return result


def _line(commit: CommitRecord) -> ChangelogLine:
    return ChangelogLine(
        text=commit.summary or commit.description,
        references=commit.references,
        commit_id=commit.id,
    )


def format_reference(number: int, config: ReleaseConfig | None = None) -> str:
    """Format an issue/PR number, as a Markdown link when a URL is configured."""
    config = config or ReleaseConfig()
    if config.issue_url:
        return f"[#{number}]({config.issue_url.format(number=number)})"
    return f"#{number}"


def render_markdown(
    name: str,
    version: str,
    entries: Iterable[ChangelogEntry],
    config: ReleaseConfig | None = None,
) -> str:
    """Render one package's changelog as Markdown.

    Example output::

        ## core v1.3.0

        ### Features

        - add token refresh (#41)
    """
    lines = [f"## {name} v{version}"]
    for entry in entries:
        if not entry.lines:
            continue
        lines.extend(["", f"### {entry.kind.title}", ""])
        for line in entry.lines:
            refs = ", ".join(format_reference(n, config) for n in line.references)
            lines.append(f"- {line.text} ({refs})" if refs else f"- {line.text}")
    return "\n".join(lines)


def render_document(
    releases: Iterable[PackageRelease], config: ReleaseConfig | None = None
) -> str:
    """Render the changelogs of all released packages, in release order."""
    return "\n\n".join(
        render_markdown(r.name, r.new_version, r.changelog, config) for r in releases
    )
