"""Rollback command - redeploy every service's previous tag."""

from __future__ import annotations

import typer

from forge.cli.commands._helpers import exit_with_code
from forge.cli.context import build_context
from forge.core.result import Err
from forge.output.errors import print_error, rollback_error_exit_code
from forge.services.rollback import (
    ReleaseDeployer,
    RollbackPlan,
    build_rollback_plan,
    count_applied_migrations,
    run_rollback,
)


def rollback(
    env: str | None = typer.Option(
        None, "--env", help="'staging', 'all' or an environment name", show_default=False
    ),
    force: bool = typer.Option(False, "--force", help="Skip the confirmation prompt"),
    skip_health_check: bool = typer.Option(
        False, "--skip-health-check", help="Do not health-check between services"
    ),
    token: str | None = typer.Option(
        None, "--token", help="Registry token (default: discovered)", show_default=False
    ),
) -> None:
    """Roll every service of the product back to its previous tag."""
    ctx = build_context()

    planned = build_rollback_plan(ctx.config, ctx.store, env)
    if isinstance(planned, Err):
        print_error(planned.error.message, planned.error.hint, ctx.console)
        exit_with_code(rollback_error_exit_code(planned.error))
    plan = planned.value

    deployer = ReleaseDeployer(lambda name: ctx.release_context(ctx.service(name), token))

    result = run_rollback(
        plan,
        registry_for=lambda entry: ctx.registry_factory(ctx.service(entry.service), token)(),
        deployer=deployer,
        cluster=ctx.cluster,
        store=ctx.store,
        vcs=ctx.vcs,
        console=ctx.console,
        git_remote=ctx.config.product.git_remote,
        git_branch=ctx.config.product.git_branch,
        migration_count=count_applied_migrations(ctx.repo.root, ctx.config.migrations),
        skip_health_check=skip_health_check,
        pod_selector=ctx.config.rollout.selector,
        confirm=None if force else _confirm,
    )
    if isinstance(result, Err):
        print_error(result.error.message, result.error.hint, ctx.console)
        exit_with_code(rollback_error_exit_code(result.error))


def _confirm(plan: RollbackPlan) -> bool:
    envs = ", ".join(t.environment for t in plan.targets)
    return typer.confirm(f"Roll back {plan.product} in {envs}?", default=True)
