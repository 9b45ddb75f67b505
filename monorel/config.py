"""Release configuration.

Settings are read from ``.monorel.toml`` at the workspace root. When that
file is missing, ``[workspace.metadata.monorel]`` in a root Cargo.toml or
the ``"monorel"`` key of a root package.json is used instead. Without any of
them every setting keeps its default.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import ChangeType

CONFIG_FILE = ".monorel.toml"


class ReleaseConfig(BaseModel):
    """Policy knobs for classification, versioning and changelogs.

    Attributes:
        patch_types: Commit types that contribute a Patch bump.
        other_types: Commit types rendered in the "Other changes" group.
        type_aliases: Extra spellings accepted as commit types.
        scope_aliases: Commit scopes mapped to package names.
        propagate: Whether a dependent that pins an exact version of a
              changed dependency is still released ("always") or not
              ("unless-pinned").
        dependency_notes: Add an "Updated dependencies" changelog line to
              packages released only because a dependency was.
        order: Changelog line order within a group.
        summary_key: Footer key overriding the changelog line.
        issue_keys: Footer keys whose values carry issue references.
        issue_url: Link template for references, with a ``{number}`` field.
        tag_format: Release marker tag, with ``{name}`` and ``{version}``.
        strict: Enforce summary style rules when validating commits.
        release_branches: Branches a release may be committed on. Empty to
              allow any branch.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    patch_types: frozenset[ChangeType] = frozenset(
        {ChangeType.FIX, ChangeType.PERF, ChangeType.REVERT}
    )
    other_types: frozenset[ChangeType] = frozenset(
        {ChangeType.PERF, ChangeType.REFACTOR, ChangeType.REVERT}
    )
    type_aliases: dict[str, ChangeType] = Field(default_factory=dict)
    scope_aliases: dict[str, str] = Field(default_factory=dict)
    propagate: Literal["always", "unless-pinned"] = "always"
    dependency_notes: bool = True
    order: Literal["oldest", "newest"] = "oldest"
    summary_key: str = "Changelog"
    issue_keys: tuple[str, ...] = ("Closes", "Fixes", "Resolves", "Refs", "Concerns")
    issue_url: str = ""
    tag_format: str = "{name}/v{version}"
    strict: bool = False
    release_branches: tuple[str, ...] = ("main", "master")

    @field_validator("type_aliases")
    @classmethod
    def _lowercase_aliases(cls, value: dict[str, ChangeType]) -> dict[str, ChangeType]:
        return {k.lower(): v for k, v in value.items()}

    @field_validator("tag_format")
    @classmethod
    def _check_tag_format(cls, value: str) -> str:
        if "{name}" not in value or "{version}" not in value:
            raise ValueError("tag_format must contain {name} and {version}")
        return value

    @property
    def respect_pins(self) -> bool:
        return self.propagate == "unless-pinned"


def load_config(root: Path) -> ReleaseConfig:
    """Load the release configuration for the workspace at ``root``.

    Raises:
        ConfigError: If the configuration file cannot be parsed or holds
            unknown keys or invalid values.
    """
    data = _read_settings(root)
    try:
        return ReleaseConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid release configuration:\n{exc}") from exc


def _read_settings(root: Path) -> dict[str, Any]:
    dedicated = root / CONFIG_FILE
    if dedicated.exists():
        return _parse_toml(dedicated)

    cargo = root / "Cargo.toml"
    if cargo.exists():
        doc = _parse_toml(cargo)
        return dict(doc.get("workspace", {}).get("metadata", {}).get("monorel", {}))

    package_json = root / "package.json"
    if package_json.exists():
        try:
            manifest = json.loads(package_json.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Cannot parse {package_json}: {exc}") from exc
        return dict(manifest.get("monorel", {}))

    return {}


def _parse_toml(path: Path) -> dict[str, Any]:
    try:
        return tomlkit.parse(path.read_text()).unwrap()
    except TOMLKitError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc
