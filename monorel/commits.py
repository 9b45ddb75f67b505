"""Conventional Commits classification and validation.

A raw commit message is turned into a ``CommitRecord`` when it follows the
``<type>[(<scope>)][!]: <description>`` grammar, or into a
``MalformedCommit`` when it does not. Classification never raises, so one
bad message cannot abort a whole release run.

Message layout::

    feat(auth)!: add token refresh (#41)
    <blank line>
    Optional body, any number of paragraphs.
    <blank line>
    BREAKING CHANGE: tokens issued before 2.0 are rejected
    Changelog: Tokens are now refreshed automatically
    Closes #42
"""

from __future__ import annotations

import difflib
import re
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from pydantic import BaseModel, Field

from .config import ReleaseConfig
from .models import ChangeType, Classified, CommitInfo, CommitRecord, MalformedCommit

_HEADER_RE = re.compile(
    r"^\s*(?P<type>[A-Za-z]+)\s*"
    r"(?:\((?P<scope>[^()]*)\))?\s*"
    r"(?P<bang>!)?\s*:\s*"
    r"(?P<description>.*?)\s*$"
)
# "Key: value", "Key #value" and the two spellings of the breaking footer
_FOOTER_RE = re.compile(
    r"^(?P<key>BREAKING[ -]CHANGE|[A-Za-z][\w-]*)"
    r"(?::(?:\s+|$)|\s+(?=#))(?P<value>.*)$"
)
_REFERENCE_RE = re.compile(r"#(\d+)")
_DESCRIPTION_REFERENCE_RE = re.compile(r"\s*\(#(\d+)\)")

_BREAKING_KEYS = frozenset({"BREAKING CHANGE", "BREAKING-CHANGE"})

TYPE_ALIASES: dict[str, ChangeType] = {
    **{t.value: t for t in ChangeType},
    "feat": ChangeType.FEATURE,
    "performance": ChangeType.PERF,
    "doc": ChangeType.DOCS,
    "tests": ChangeType.TEST,
}


class _Header(NamedTuple):
    type: str
    scope: str | None
    bang: bool
    description: str


def _parse_header(line: str) -> _Header | None:
    m = _HEADER_RE.match(line)
    if not m:
        return None
    scope = m.group("scope")
    if scope is not None:
        scope = scope.strip() or None
    return _Header(m.group("type"), scope, bool(m.group("bang")), m.group("description"))


def resolve_type(tag: str, config: ReleaseConfig | None = None) -> ChangeType | None:
    """Map a header type tag to its canonical ``ChangeType``, if any.

    Matching is case-insensitive. Configured aliases are tried after the
    built-in spellings.
    """
    key = tag.lower()
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    if config is not None:
        return config.type_aliases.get(key)
    return None


def split_message(message: str) -> tuple[str, str | None, list[tuple[str, str]]]:
    """Split a commit message into header, body and footers.

    The footer block starts at the first of the trailing paragraphs that
    all open with a footer token, or at an earlier ``BREAKING CHANGE``
    line, whichever comes first. Inside the block, lines without a token
    continue the value of the previous footer.

    Returns:
        Tuple of (header line, body or None, footers as (key, value) pairs).
    """
    lines = message.strip().splitlines()
    if not lines:
        return "", None, []
    header, rest = lines[0], lines[1:]

    paragraphs: list[list[str]] = []
    current: list[str] = []
    for line in rest:
        if line.strip():
            current.append(line.rstrip())
        elif current:
            paragraphs.append(current)
            current = []
    if current:
        paragraphs.append(current)

    start = len(paragraphs)
    while start > 0 and _FOOTER_RE.match(paragraphs[start - 1][0]):
        start -= 1

    for index, paragraph in enumerate(paragraphs[:start]):
        line_no = next((n for n, line in enumerate(paragraph) if _is_breaking(line)), None)
        if line_no is None:
            continue
        if line_no > 0:
            paragraphs[index : index + 1] = [paragraph[:line_no], paragraph[line_no:]]
            index += 1
        start = index
        break

    body = "\n\n".join("\n".join(p) for p in paragraphs[:start]) or None
    return header, body, _parse_footers(paragraphs[start:])


def _is_breaking(line: str) -> bool:
    m = _FOOTER_RE.match(line)
    return m is not None and m.group("key").upper() in _BREAKING_KEYS


def _parse_footers(paragraphs: list[list[str]]) -> list[tuple[str, str]]:
    footers: list[tuple[str, str]] = []
    for paragraph in paragraphs:
        for n, line in enumerate(paragraph):
            m = _FOOTER_RE.match(line)
            if m:
                footers.append((m.group("key"), m.group("value").strip()))
            else:
                # The block opens with a token line, so footers is never empty here
                key, value = footers[-1]
                sep = "\n\n" if n == 0 else "\n"
                footers[-1] = (key, f"{value}{sep}{line.strip()}".strip())
    return footers


def mentions_issue(message: str) -> bool:
    """Whether a message references an issue anywhere, e.g. ``#123``."""
    return _REFERENCE_RE.search(message) is not None


def _extract_references(description: str) -> tuple[str, set[int]]:
    """Pull ``(#123)`` groups out of a description."""
    refs = {int(n) for n in _DESCRIPTION_REFERENCE_RE.findall(description)}
    cleaned = _DESCRIPTION_REFERENCE_RE.sub("", description).strip()
    return cleaned, refs


def classify(
    message: str,
    *,
    commit_id: str = "",
    config: ReleaseConfig | None = None,
) -> Classified:
    """Classify one raw commit message.

    Never raises: a message that does not follow the grammar, has an unknown
    type tag or no description comes back as a ``MalformedCommit`` carrying
    the raw text and the reason.

    Example:
        classify("feat(auth)!: add token refresh")
        → CommitRecord(type=feature, scope="auth", breaking=True,
                       description="add token refresh")
    """
    config = config or ReleaseConfig()
    header_line, body, footers = split_message(message)

    header = _parse_header(header_line)
    if header is None:
        return MalformedCommit(
            id=commit_id,
            message=message,
            reason="header must be in the format '<type>[(<scope>)][!]: <description>'",
        )

    change_type = resolve_type(header.type, config)
    if change_type is None:
        return MalformedCommit(
            id=commit_id, message=message, reason=f"unknown type '{header.type}'"
        )

    description, references = _extract_references(header.description)
    if not description:
        return MalformedCommit(id=commit_id, message=message, reason="missing description")

    summary_key = config.summary_key.lower()
    issue_keys = {k.lower() for k in config.issue_keys}
    breaking = header.bang or change_type is ChangeType.BREAKING
    breaking_note: str | None = None
    summary: str | None = None

    for key, value in footers:
        if key.upper() in _BREAKING_KEYS:
            breaking = True
            breaking_note = value
        elif key.lower() == summary_key:
            # Scalar key: the last occurrence wins
            summary = value or None
        elif key.lower() in issue_keys:
            references.update(int(n) for n in _REFERENCE_RE.findall(value))

    return CommitRecord(
        id=commit_id,
        message=message,
        type=change_type,
        scope=header.scope,
        breaking=breaking,
        breaking_note=breaking_note,
        description=description,
        body=body,
        summary=summary,
        references=tuple(sorted(references)),
        footers=tuple(footers),
    )


def classify_commits(
    commits: Iterable[CommitInfo], config: ReleaseConfig | None = None
) -> list[Classified]:
    """Classify a commit log, oldest first.

    Each record keeps the commit's id, timestamp, changed paths and its
    position in the log as ``sequence``. Records come back in log order;
    timestamps are kept for reference but never used for ordering.
    """
    records: list[Classified] = []
    for sequence, info in enumerate(commits):
        record = classify(info.message, commit_id=info.id, config=config)
        records.append(
            record.model_copy(
                update={
                    "sequence": sequence,
                    "timestamp": info.timestamp,
                    "paths": tuple(info.paths),
                }
            )
        )
    return records


class RuleViolation(BaseModel):
    """A single failed commit validation rule.

    Attributes:
        rule: Short rule identifier (format, type, description, scope,
              breaking, casing, punctuation).
        message: Human-readable explanation including a suggested fix.
        suggestions: Close valid alternatives, e.g. package names.
    """

    rule: str
    message: str
    suggestions: list[str] = Field(default_factory=list)


class CommitValidation(BaseModel):
    commit: Classified
    violations: list[RuleViolation] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


def validate(
    message: str,
    package_names: Sequence[str],
    config: ReleaseConfig | None = None,
) -> CommitValidation:
    """Validate a commit message against the workspace.

    On top of the grammar, the scope (if any) must name a workspace package
    or a configured scope alias. In strict mode the description must also
    start lowercase (unless it starts with an acronym) and must not end
    with punctuation.
    """
    config = config or ReleaseConfig()
    commit = classify(message, config=config)
    violations: list[RuleViolation] = []

    header_line, _, footers = split_message(message)
    header = _parse_header(header_line)
    if header is None:
        violations.append(
            RuleViolation(
                rule="format",
                message="Summary must be in the format <type>[(<scope>)][!]: <description>",
            )
        )
        return CommitValidation(commit=commit, violations=violations)

    if resolve_type(header.type, config) is None:
        known = sorted(set(TYPE_ALIASES) | set(config.type_aliases))
        violations.append(
            RuleViolation(
                rule="type",
                message=f"Unknown type '{header.type}'. Supported types: {', '.join(known)}",
                suggestions=difflib.get_close_matches(header.type.lower(), known, n=3),
            )
        )

    description, _ = _extract_references(header.description)
    if not description:
        violations.append(
            RuleViolation(rule="description", message="Description must not be empty")
        )

    if header.scope is not None:
        scopes = sorted(set(package_names) | set(config.scope_aliases))
        if header.scope not in scopes:
            suggestions = difflib.get_close_matches(header.scope, scopes, n=3, cutoff=0.5)
            hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
            violations.append(
                RuleViolation(
                    rule="scope",
                    message=f"Scope '{header.scope}' is not a workspace package.{hint}",
                    suggestions=suggestions,
                )
            )

    for key, value in footers:
        if key.upper() in _BREAKING_KEYS and not value:
            violations.append(
                RuleViolation(
                    rule="breaking",
                    message=f"{key} footer must describe the breaking change",
                )
            )

    if config.strict and description:
        violations.extend(_style_violations(description))

    return CommitValidation(commit=commit, violations=violations)


def _style_violations(description: str) -> list[RuleViolation]:
    violations: list[RuleViolation] = []
    first_word = description.split()[0]
    # Acronyms like README or HTTP may start uppercase
    is_acronym = all(not c.isalpha() or c.isupper() for c in first_word)
    if description[0].isupper() and not is_acronym:
        violations.append(
            RuleViolation(
                rule="casing",
                message=f"Description must start lowercase: '{description[0].lower()}{description[1:]}'",
            )
        )
    if description[-1] in ".!?,;:":
        violations.append(
            RuleViolation(
                rule="punctuation",
                message="Description must not end with punctuation",
            )
        )
    return violations
