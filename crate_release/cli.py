"""CLI entry point for crate-release."""

from __future__ import annotations

import contextlib
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from crate_release.config import BlockerKind, ReleaseConfig
from crate_release.errors import ReleaseError
from crate_release.models import IncrementKind, ReleaseOutcome
from crate_release.pipeline import compute_release, load_config, run_release

INCREMENT_CHOICES = [k.value for k in IncrementKind]
BLOCKER_CHOICES = [k.value for k in BlockerKind]


_SELECTION_OPTIONS = [
    click.option(
        "--selection-filter",
        default=None,
        help="Regex restricting which crates may be selected directly.",
    ),
    click.option(
        "--enforced-version-req",
        multiple=True,
        help="Requirement every new version must match (repeatable).",
    ),
    click.option(
        "--disallowed-version-req",
        multiple=True,
        help="Requirement no new version may match (repeatable).",
    ),
    click.option(
        "--increment",
        type=click.Choice(INCREMENT_CHOICES),
        default=None,
        help="Preferred increment kind for every crate.",
    ),
    click.option(
        "--allowed-blocker",
        type=click.Choice(BLOCKER_CHOICES),
        multiple=True,
        help="Release crates despite this blocker, with a warning (repeatable).",
    ),
    click.option("--release-name", default=None, help="Workspace release name."),
    click.option("--date", default=None, help="Release date for changelog headings."),
]


def selection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that computes a release."""
    for option in reversed(_SELECTION_OPTIONS):
        func = option(func)
    return func


def _config(root: Path, options: dict[str, Any]) -> ReleaseConfig:
    """Settings from the root manifest with command-line overrides applied."""
    return load_config(root).with_overrides(
        selection_filter=options["selection_filter"],
        enforced_version_reqs=list(options["enforced_version_req"]),
        disallowed_version_reqs=list(options["disallowed_version_req"]),
        preferred_increment=options["increment"],
        allowed_blockers=list(options["allowed_blocker"]),
    )


def _compute(root: Path, options: dict[str, Any]) -> ReleaseOutcome:
    return compute_release(
        root,
        _config(root, options),
        release_name=options["release_name"],
        date=options["date"],
    )


def _echo_diagnostics(outcome: ReleaseOutcome) -> None:
    for diagnostic in outcome.diagnostics:
        click.echo(f"  warning: {diagnostic}", err=True)


@click.group()
@click.version_option(package_name="crate-release")
@click.option(
    "--workspace-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Root directory of the workspace.",
)
@click.pass_context
def cli(ctx: click.Context, workspace_path: Path) -> None:
    """Release the crates of a workspace whose changelogs have news."""
    ctx.obj = workspace_path.resolve()


@cli.command()
@selection_options
@click.pass_obj
def check(root: Path, **options: Any) -> None:
    """Show which crates would be released, and why."""
    try:
        outcome = _compute(root, options)
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_diagnostics(outcome)
    click.echo()
    if not outcome.candidates:
        click.echo("No crates would be selected for release.")
        return
    click.echo("The following crates would have been selected for the release process:")
    for candidate in outcome.candidates:
        reasons = ", ".join(r.value for r in candidate.reasons)
        via = f" via {', '.join(candidate.pulled_in_by)}" if candidate.pulled_in_by else ""
        click.echo(
            f"  {candidate.name} {candidate.crate.version} → {candidate.next_version}"
            f" [{reasons}]{via}"
        )


@cli.command()
@selection_options
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@click.pass_obj
def plan(root: Path, as_json: bool, **options: Any) -> None:
    """Print the release plan without changing anything."""
    try:
        # Keep stdout clean for machine-readable output
        with contextlib.redirect_stdout(sys.stderr if as_json else sys.stdout):
            outcome = _compute(root, options)
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_diagnostics(outcome)
    if as_json:
        click.echo(outcome.plan.model_dump_json(indent=2))
        return

    release_plan = outcome.plan
    if not release_plan.entries:
        click.echo("Nothing to release.")
        return
    click.echo(f"\nRelease {release_plan.release_name} ({release_plan.workspace_tag})")
    for entry in release_plan.entries:
        click.echo(f"  {entry.crate}: {entry.bump.old} → {entry.bump.new}")
        click.echo(f"    manifest:  {entry.manifest.path}")
        for dep, version in entry.manifest.dependencies.items():
            click.echo(f"      {dep} = {version}")
        click.echo(f"    changelog: {entry.changelog.path} ## {entry.changelog.heading}")
        click.echo(f"    tag:       {entry.tag}")
    for edit in release_plan.requirement_edits:
        click.echo(f"  requirements: {edit.path}")
        for dep, version in edit.dependencies.items():
            click.echo(f"      {dep} = {version}")
    if release_plan.workspace_changelog is not None:
        click.echo(
            f"  workspace changelog: {release_plan.workspace_changelog.path}"
            f" ## {release_plan.workspace_changelog.title}"
        )


@cli.command()
@selection_options
@click.option("--dry-run", is_flag=True, help="Compute the plan but write nothing.")
@click.option("--commit", is_flag=True, help="Commit the release edits.")
@click.option("--tag", is_flag=True, help="Create crate and workspace tags.")
@click.option(
    "--develop-bump",
    is_flag=True,
    help="Afterwards move released crates to -dev versions.",
)
@click.pass_obj
def release(
    root: Path,
    dry_run: bool,
    commit: bool,
    tag: bool,
    develop_bump: bool,
    **options: Any,
) -> None:
    """Apply the release plan: manifests, changelogs, commit and tags."""
    if tag and not commit:
        raise click.UsageError("--tag requires --commit; tags must point at the release commit.")
    try:
        if dry_run:
            outcome = _compute(root, options)
        else:
            outcome = run_release(
                root,
                _config(root, options),
                release_name=options["release_name"],
                date=options["date"],
                commit=commit,
                tag=tag,
                develop_bump=develop_bump,
            )
    except ReleaseError as exc:
        raise click.ClickException(str(exc)) from exc
    except subprocess.CalledProcessError as exc:
        raise click.ClickException(f"git failed: {(exc.stderr or '').strip()}") from exc

    _echo_diagnostics(outcome)
    if not outcome.plan.entries:
        click.echo("Nothing to release.")
    elif dry_run:
        click.echo(f"[dry-run] would release: {', '.join(outcome.plan.tags)}")
