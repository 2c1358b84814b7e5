"""Rollout command - watch (or undo) a service's rollout."""

from __future__ import annotations

import typer

from forge.cli.commands._helpers import duration_option, exit_with_code
from forge.cli.context import build_context
from forge.core.result import Err
from forge.output.errors import rollout_error_exit_code
from forge.services.rollout import RolloutMonitor, RolloutSettings


def rollout(
    service: str = typer.Argument(..., help="Service name from forge.toml"),
    env: str | None = typer.Option(
        None, "--env", help="'staging', 'all' or an environment name", show_default=False
    ),
    undo: bool = typer.Option(False, "--undo", help="Roll back one revision, then watch"),
    safe: bool = typer.Option(False, "--safe", help="Abort on the first problem pod"),
    interval: int | None = typer.Option(
        None, "--interval", min=0, help="Seconds between polls", show_default=False
    ),
    timeout: str | None = typer.Option(
        None, "--timeout", help="Watch timeout (e.g. 10m, 90s)", show_default=False
    ),
) -> None:
    """Watch pods until the rollout converges or fails."""
    ctx = build_context()
    svc = ctx.service(service)

    settings = RolloutSettings.from_config(ctx.config.rollout).with_overrides(
        interval_seconds=interval,
        timeout_seconds=duration_option(ctx, timeout, "--timeout"),
        safe_mode=True if safe else None,
    )
    monitor = RolloutMonitor(ctx.cluster, ctx.console, settings)

    for environment in ctx.environments(env):
        namespace = ctx.config.product.namespace_for(environment)
        if undo:
            result = monitor.undo(namespace, svc.deployment_name)
        else:
            result = monitor.watch(namespace, svc.deployment_name)
        if isinstance(result, Err):
            ctx.console.error(result.error.message)
            exit_with_code(rollout_error_exit_code(result.error))
