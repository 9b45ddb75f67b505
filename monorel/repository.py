"""Git-backed commit source and release marker store.

Release markers are per-package tags following ``tag_format`` (by default
``{name}/v{version}``). The marker handed to the resolution core is the
commit id the newest tag points to.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from .errors import RepositoryError
from .models import CommitInfo, Package
from .shell import git
from .versions import parse_version

# Record and field separators for `git log` output
_RS = "\x1e"
_FS = "\x1f"


class GitCommitSource:
    """Read the commit log, with changed paths, from a git repository."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = cwd

    def commits_since(self, marker: str | None) -> list[CommitInfo]:
        """Commits reachable from HEAD but not from ``marker``, oldest first.

        Returns an empty list for a repository without commits.
        """
        return self._log(f"{marker}..HEAD" if marker else "HEAD")

    def commits_between(self, start: str | None, end: str) -> list[CommitInfo]:
        """Commits reachable from ``end`` but not from ``start``, oldest first."""
        return self._log(f"{start}..{end}" if start else end)

    def message(self, commit_id: str) -> str:
        """Full message of a single commit.

        Raises:
            RepositoryError: If ``commit_id`` names no commit.
        """
        output = git("show", "-s", "--format=%B", commit_id, check=False, cwd=self.cwd)
        if not output:
            raise RepositoryError(f"Unknown commit '{commit_id}'")
        return output

    def _log(self, rev_range: str) -> list[CommitInfo]:
        output = git(
            "log",
            "--reverse",
            "--no-merges",
            f"--format={_RS}%H{_FS}%aI{_FS}%B{_FS}",
            "--name-only",
            rev_range,
            check=False,
            cwd=self.cwd,
        )
        return parse_log(output)


def parse_log(output: str) -> list[CommitInfo]:
    """Parse ``git log`` output produced by ``GitCommitSource``."""
    commits: list[CommitInfo] = []
    for chunk in output.split(_RS):
        if not chunk.strip():
            continue
        sha, date, message, files = chunk.split(_FS, 3)
        commits.append(
            CommitInfo(
                id=sha.strip(),
                message=message.strip(),
                timestamp=datetime.fromisoformat(date.strip()) if date.strip() else None,
                paths=[line.strip() for line in files.splitlines() if line.strip()],
            )
        )
    return commits


class GitTagMarkerStore:
    """Release markers stored as git tags.

    Args:
        tag_format: Tag name template with ``{name}`` and ``{version}``.
        cwd: Repository directory; the current directory if omitted.
    """

    def __init__(self, tag_format: str = "{name}/v{version}", cwd: Path | None = None) -> None:
        self.tag_format = tag_format
        self.cwd = cwd

    def tag_name(self, name: str, version: str) -> str:
        return self.tag_format.format(name=name, version=version)

    def release_tags(self, name: str) -> list[str]:
        """All release tags of a package, newest version first."""
        pattern = self.tag_name(name, "*")
        tags = git("tag", "--list", pattern, "--sort=-v:refname", check=False, cwd=self.cwd)
        return tags.splitlines() if tags else []

    def released_versions(self, name: str) -> list[str]:
        """Versions recorded for a package, newest first."""
        prefix, _, suffix = self.tag_name(name, "\0").partition("\0")
        versions: list[str] = []
        for tag in self.release_tags(name):
            if tag.startswith(prefix) and tag.endswith(suffix):
                candidate = tag[len(prefix) : len(tag) - len(suffix)]
                try:
                    versions.append(str(parse_version(candidate)))
                except ValueError:
                    continue
        return versions

    def last_release_marker(self, package: Package) -> str | None:
        """Commit id of the package's newest release tag, or None if never released."""
        tags = self.release_tags(package.name)
        if not tags:
            return None
        return git("rev-list", "-n", "1", tags[0], cwd=self.cwd)

    def release_marker(self, name: str, version: str) -> str | None:
        """Commit id tagged as the release of ``version``, or None without such a tag."""
        tag = self.tag_name(name, version)
        return git("rev-list", "-n", "1", tag, "--", check=False, cwd=self.cwd) or None

    def record_release(self, package: Package, version: str, marker: str | None = None) -> None:
        """Tag ``marker`` (HEAD if omitted) as the release of ``version``."""
        tag = self.tag_name(package.name, version)
        if marker:
            git("tag", tag, marker, cwd=self.cwd)
        else:
            git("tag", tag, cwd=self.cwd)
