"""CLI entry point for monorel."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from monorel.commits import mentions_issue, validate
from monorel.config import load_config
from monorel.errors import MonorelError, Report
from monorel.models import Package, VersionBump
from monorel.pipeline import (
    discover_packages,
    load_release_snapshot,
    load_snapshot,
    run_version_create,
)
from monorel.release import Snapshot, changed_packages, changelog_for, list_packages
from monorel.repository import GitCommitSource, GitTagMarkerStore
from monorel.shell import warn
from monorel.sources import detect_workspace
from monorel.versions import next_version, parse_version


@contextmanager
def _errors() -> Iterator[None]:
    """Turn fatal monorel errors into clean CLI errors."""
    try:
        yield
    except MonorelError as exc:
        raise click.ClickException(str(exc)) from exc


def _print_report(report: Report) -> None:
    for issue in report.warnings:
        warn(str(issue))
    for issue in report.notes:
        click.echo(f"Note: {issue}", err=True)


def _prompt_bump(pkg: Package, suggested: VersionBump, options: list[VersionBump]) -> VersionBump:
    """Ask which bump to apply to a package, previewing each resulting version."""
    click.echo(f"\n{pkg.name} {pkg.version}", err=True)
    for option in options:
        preview = pkg.version if option is VersionBump.NONE else next_version(pkg.version, option)
        marker = " (suggested)" if option is suggested else ""
        click.echo(f"  {option}: {preview}{marker}", err=True)
    choice = click.prompt(
        "Bump",
        type=click.Choice([str(o) for o in options]),
        default=str(suggested),
        err=True,
    )
    return VersionBump[choice.upper()]


def _prompt_issue(path: Path) -> None:
    """Ask which issue a commit relates to and reference it in the message file."""
    if not click.confirm("Is this commit related to an issue?", default=True, err=True):
        click.echo("Nothing added to commit body", err=True)
        return
    number = click.prompt("What's the number of the issue?", type=click.IntRange(min=1), err=True)
    resolved = click.confirm("Does the commit resolve the issue?", default=False, err=True)
    action = f"{'Resolves' if resolved else 'Concerns'} #{number}"

    # Footers need a blank line before them
    text = path.read_text()
    separator = "\n" if text.endswith("\n") else "\n\n"
    with path.open("a") as fh:
        fh.write(f"{separator}{action}\n")
    click.echo(f"{action} added to commit body", err=True)


def _release_version(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    """Normalize a VERSION argument, accepting tag spellings like v1.2.0."""
    if value is None:
        return None
    try:
        return str(parse_version(value))
    except ValueError as exc:
        raise click.BadParameter(f"'{value}' is not a version") from exc


def _load(root: Path, package: str | None, version: str | None) -> Snapshot:
    """Snapshot of the unreleased commits, or of one past release of ``package``."""
    if version is None:
        snapshot = load_snapshot(root)
        if package is not None:
            snapshot.graph.require(package)
        return snapshot
    if package is None:
        raise click.UsageError("VERSION needs a PACKAGE")
    return load_release_snapshot(root, package, version)


@click.group()
@click.version_option(package_name="monorel")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root directory.",
)
@click.pass_context
def cli(ctx: click.Context, root: Path) -> None:
    """Release orchestration for Cargo and Node monorepos."""
    ctx.obj = root.resolve()


@cli.command("list")
@click.pass_obj
def list_command(root: Path) -> None:
    """List workspace packages, dependencies first."""
    with _errors():
        graph = discover_packages(detect_workspace(root))
    for name in list_packages(graph):
        click.echo(name)


@cli.group("validate")
def validate_group() -> None:
    """Check commit messages before they land."""


@validate_group.command("commit")
@click.argument("message", required=False)
@click.option(
    "-f",
    "--file",
    "message_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the message from a file, e.g. from a commit-msg hook.",
)
@click.option("-i", "--id", "commit_id", help="Validate the message of an existing commit.")
@click.option(
    "-p",
    "--prompt",
    is_flag=True,
    help="Ask for a related issue and reference it in the message file.",
)
@click.pass_context
def validate_commit(
    ctx: click.Context,
    message: str | None,
    message_file: Path | None,
    commit_id: str | None,
    prompt: bool,
) -> None:
    """Validate a commit message against the workspace packages.

    The message is taken from MESSAGE, --file or --id, or else from stdin.
    """
    root: Path = ctx.obj
    if sum(source is not None for source in (message, message_file, commit_id)) > 1:
        raise click.UsageError("Pass only one of MESSAGE, --file and --id")
    if prompt and message_file is None:
        raise click.UsageError("--prompt needs --file")

    with _errors():
        if message_file is not None:
            message = message_file.read_text()
        elif commit_id is not None:
            message = GitCommitSource(cwd=root).message(commit_id)
        elif message is None:
            message = sys.stdin.read()

        # Git drops comment lines from the message it records
        message = "\n".join(
            line for line in message.splitlines() if not line.startswith("#")
        ).strip()

        config = load_config(root)
        names = [pkg.name for pkg in detect_workspace(root).list_packages()]
        result = validate(message, names, config)

    if not result.ok:
        for violation in result.violations:
            click.echo(f"✘ [{violation.rule}] {violation.message}", err=True)
        ctx.exit(1)

    click.echo("✓ Commit message is valid")
    if prompt and not mentions_issue(message):
        _prompt_issue(message_file)


@cli.group("version")
def version_group() -> None:
    """Compute, inspect and apply package versions."""


@version_group.command("create")
@click.option("--dry-run", is_flag=True, help="Show the plan without writing anything.")
@click.option("--interactive", is_flag=True, help="Choose each package's bump.")
@click.option("--no-commit", is_flag=True, help="Rewrite manifests but do not commit or tag.")
@click.pass_obj
def version_create(root: Path, dry_run: bool, interactive: bool, no_commit: bool) -> None:
    """Bump changed packages and tag the release."""
    with _errors():
        plan = run_version_create(
            root,
            dry_run=dry_run,
            commit=not no_commit,
            chooser=_prompt_bump if interactive else None,
        )
    _print_report(plan.report)
    for release in plan.releases:
        click.echo(f"{release.name} {release.old_version} -> {release.new_version}")


@version_group.command("changelog")
@click.argument("package", required=False)
@click.argument("version", required=False, callback=_release_version)
@click.option("-s", "--summary", is_flag=True, help="Put the release summary in front.")
@click.pass_obj
def version_changelog(root: Path, package: str | None, version: str | None, summary: bool) -> None:
    """Print a changelog in Markdown.

    Without VERSION this is the changelog of the next release, of PACKAGE or
    of every package. With VERSION it is the changelog of that past release
    of PACKAGE.
    """
    with _errors():
        snapshot = _load(root, package, version)
        text, report = changelog_for(snapshot, package, version=version, summary=summary)
    _print_report(report)

    if text:
        click.echo(text)
    elif version is None:
        click.echo("Nothing to release", err=True)
    else:
        click.echo(f"No changelog entries in {package} {version}", err=True)


@version_group.command("changed")
@click.argument("package", required=False)
@click.argument("version", required=False, callback=_release_version)
@click.pass_obj
def version_changed(root: Path, package: str | None, version: str | None) -> None:
    """List changed packages, dependencies first.

    Without arguments these are the packages with unreleased changes. With
    PACKAGE and VERSION they are the packages changed by the commits of that
    past release.
    """
    if package is not None and version is None:
        raise click.UsageError("PACKAGE needs a VERSION")
    with _errors():
        names, report = changed_packages(_load(root, package, version))
    _print_report(report)
    for name in names:
        click.echo(name)


@version_group.command("list")
@click.argument("package", required=False)
@click.option("--latest", is_flag=True, help="Only show the newest released version.")
@click.pass_obj
def version_list(root: Path, package: str | None, latest: bool) -> None:
    """List released versions recorded as tags."""
    with _errors():
        graph = discover_packages(detect_workspace(root))
        if package is not None:
            graph.require(package)
        store = GitTagMarkerStore(load_config(root).tag_format, cwd=root)

    names = [package] if package is not None else graph.topological_names()
    for name in names:
        versions = store.released_versions(name)
        if latest:
            versions = versions[:1]
        if package is not None:
            for version in versions:
                click.echo(version)
        elif versions:
            click.echo(f"{name} {' '.join(versions)}")
        else:
            click.echo(f"{name} <unreleased>")
