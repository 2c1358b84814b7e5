"""Migrate command - run a service's database migrations as a Job."""

from __future__ import annotations

import typer

from forge.cli.commands._helpers import exit_with_code, resolve_sha
from forge.cli.context import build_context
from forge.core.result import Err, Ok
from forge.output.console import Style
from forge.output.errors import migration_error_exit_code
from forge.services.migration import MigrationJobRunner, MigrationSpec


def migrate(
    service: str = typer.Argument(..., help="Service name from forge.toml"),
    env: str | None = typer.Option(
        None, "--env", help="'staging', 'all' or an environment name", show_default=False
    ),
    tag: str | None = typer.Option(
        None, "--tag", help="Image tag to run migrations from", show_default=False
    ),
    sha: str | None = typer.Option(
        None, "--sha", help="Git sha (tag = <arch>-<sha>)", show_default=False
    ),
) -> None:
    """Run migrations from the release image and wait for the Job."""
    ctx = build_context()
    svc = ctx.service(service)
    if svc.migration is None or svc.migration.database == "none":
        ctx.console.info(f"{svc.name}: no migrations configured")
        return

    image_tag = tag or f"{ctx.config.release.arch}-{resolve_sha(ctx, sha)}"
    runner = MigrationJobRunner(ctx.cluster, ctx.console)

    for environment in ctx.environments(env):
        spec = MigrationSpec.for_service(
            svc, namespace=ctx.config.product.namespace_for(environment), tag=image_tag
        )
        match runner.run(spec):
            case Ok(result):
                ctx.console.success(
                    f"{spec.job_name} completed in {environment} "
                    f"({result.duration_seconds:.1f}s)"
                )
            case Err(error):
                ctx.console.error(error.message)
                for line in error.logs.splitlines()[-30:]:
                    ctx.console.print(f"  {line}", Style.DIM)
                exit_with_code(migration_error_exit_code(error))
