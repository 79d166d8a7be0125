from __future__ import annotations

import logging
from pathlib import Path

import click

from mpca import __version__
from mpca.errors import (
    ConfigNotFound,
    MpcaError,
    NotARepository,
    NotInitialized,
    VerificationFailed,
)
from mpca.feature import FeaturePaths
from mpca.runtime import Runtime
from mpca.tools import ToolRegistry


def _resolve_repo_root(tools: ToolRegistry) -> Path:
    cwd = Path.cwd().resolve()
    try:
        return tools.vcs.repository_root(cwd)
    except NotARepository:
        return cwd


def _load_runtime(*, require_config: bool = True) -> Runtime:
    tools = ToolRegistry.local()
    repo_root = _resolve_repo_root(tools)
    try:
        return Runtime.from_repo(repo_root, require_config=require_config, tools=tools)
    except ConfigNotFound as exc:
        raise click.ClickException(str(NotInitialized(repo_root))) from exc
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.version_option(__version__, prog_name="mpca")
@click.option("--verbose", is_flag=True, default=False, help="Log debug output.")
def cli(verbose: bool) -> None:
    """Plan, implement and verify features in isolated git worktrees."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


@cli.command("init")
def init_command() -> None:
    runtime = _load_runtime(require_config=False)
    try:
        runtime.init_project()
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc
    config = runtime.config
    click.echo(f"Initialized mpca in {config.repo_root}")
    click.echo(f"Config: {config.config_file}")
    click.echo(f"Specs: {config.specs_dir}")
    click.echo(f"Worktrees: {config.trees_dir}")


@cli.command("plan")
@click.argument("feature_slug")
def plan_command(feature_slug: str) -> None:
    runtime = _load_runtime()
    try:
        paths = runtime.plan_feature(feature_slug)
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Planned feature {feature_slug}")
    click.echo(f"Specs: {paths.specs_dir}")


@cli.command("run")
@click.argument("feature_slug")
def run_command(feature_slug: str) -> None:
    runtime = _load_runtime()
    try:
        outcome = runtime.run_feature(feature_slug)
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc
    verb = "Resumed" if outcome.resumed else "Started"
    click.echo(f"{verb} feature {feature_slug}")
    click.echo(f"Worktree: {outcome.worktree}")
    click.echo(f"Branch: {outcome.branch}")


@cli.command("verify")
@click.argument("feature_slug")
def verify_command(feature_slug: str) -> None:
    runtime = _load_runtime()
    try:
        result = runtime.verify_feature(feature_slug)
    except VerificationFailed as exc:
        click.echo(f"Report: {FeaturePaths.for_slug(runtime.config, feature_slug).report}")
        raise click.ClickException(str(exc)) from exc
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"Verification passed: {result.passed} passed, {result.failed} failed, "
        f"{result.ignored} ignored"
    )
    click.echo(f"Report: {FeaturePaths.for_slug(runtime.config, feature_slug).report}")


@cli.command("status")
@click.argument("feature_slug")
def status_command(feature_slug: str) -> None:
    runtime = _load_runtime()
    try:
        state = runtime.feature_status(feature_slug)
    except MpcaError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Feature: {feature_slug}")
    click.echo(f"Phase: {state.phase}")
    click.echo(f"Turns: {state.turns}")
    click.echo(f"Cost (USD): {state.cost_usd:.4f}")


if __name__ == "__main__":
    cli()
