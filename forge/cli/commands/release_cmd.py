"""Release command - run the release pipeline for one service."""

from __future__ import annotations

import typer

from forge.cli.commands._helpers import duration_option, exit_with_code, resolve_sha
from forge.cli.context import CLIContext, build_context
from forge.core.errors import ErrorCode
from forge.core.result import Err
from forge.output.console import Style
from forge.output.errors import release_error_exit_code
from forge.services.release import (
    DEFAULT_STEPS,
    DEPLOY_ONLY_STEPS,
    MINIMAL_STEPS,
    ReleaseStep,
    build_step_handlers,
    parse_steps,
    release_config_for,
    run_release,
)

_TAG_STEPS = frozenset({ReleaseStep.PUSH, ReleaseStep.DEPLOY, ReleaseStep.MIGRATE})
# The image is built and pushed once, then promoted through the environments.
_ONCE_STEPS = frozenset({ReleaseStep.BUILD, ReleaseStep.PUSH})


def release(
    service: str = typer.Argument(..., help="Service name from forge.toml"),
    env: str | None = typer.Option(
        None, "--env", help="'staging', 'all' or an environment name", show_default=False
    ),
    steps: str | None = typer.Option(
        None,
        "--steps",
        help="Comma-separated step ids (e.g. build,push,deploy)",
        show_default=False,
    ),
    minimal: bool = typer.Option(False, "--minimal", help="Push, deploy and reconcile only"),
    deploy_only: bool = typer.Option(
        False, "--deploy-only", help="Deploy and reconcile an already pushed tag"
    ),
    tag: str | None = typer.Option(
        None, "--tag", help="Explicit image tag (skips sha tagging)", show_default=False
    ),
    sha: str | None = typer.Option(
        None, "--sha", help="Git sha to tag the image with", show_default=False
    ),
    no_watch: bool = typer.Option(False, "--no-watch", help="Skip the rollout watch"),
    safe: bool = typer.Option(False, "--safe", help="Abort the rollout on the first problem pod"),
    timeout: str | None = typer.Option(
        None, "--timeout", help="Per-step timeout (e.g. 10m, 90s)", show_default=False
    ),
    token: str | None = typer.Option(
        None, "--token", help="Registry token (default: discovered)", show_default=False
    ),
) -> None:
    """Build, push and deploy a service, then watch it roll out."""
    ctx = build_context()
    svc = ctx.service(service)
    selected = _select_steps(ctx, steps, minimal=minimal, deploy_only=deploy_only)
    step_timeout = duration_option(ctx, timeout, "--timeout")

    git_sha = ""
    if tag is None and _TAG_STEPS & set(selected):
        git_sha = resolve_sha(ctx, sha)

    release_ctx = ctx.release_context(svc, token)
    handlers = build_step_handlers(release_ctx)

    for index, environment in enumerate(ctx.environments(env)):
        run_steps = selected if index == 0 else tuple(s for s in selected if s not in _ONCE_STEPS)
        config = release_config_for(
            release_ctx,
            environment,
            steps=run_steps,
            git_sha=git_sha,
            explicit_tag=tag,
            step_timeout_seconds=step_timeout,
            watch_rollout=not no_watch,
            safe_mode=safe,
        )
        result = run_release(config, handlers, ctx.console)
        if isinstance(result, Err):
            failure = result.error
            if failure.step is None:
                # Rejected before any step ran; the driver printed nothing.
                ctx.console.error(failure.error.message)
                if failure.error.hint:
                    ctx.console.print(f"hint: {failure.error.hint}", Style.DIM)
            exit_with_code(release_error_exit_code(failure.error))


def _select_steps(
    ctx: CLIContext, steps: str | None, *, minimal: bool, deploy_only: bool
) -> tuple[ReleaseStep, ...]:
    if sum((steps is not None, minimal, deploy_only)) > 1:
        ctx.console.error("--steps, --minimal and --deploy-only are mutually exclusive")
        exit_with_code(int(ErrorCode.USER_ERROR))

    if minimal:
        return MINIMAL_STEPS
    if deploy_only:
        return DEPLOY_ONLY_STEPS

    ids: list[str] | tuple[str, ...] | None = None
    if steps is not None:
        ids = [s for s in steps.split(",") if s.strip()]
    elif ctx.config.release.steps is not None:
        ids = ctx.config.release.steps
    if ids is None:
        return DEFAULT_STEPS

    parsed, unknown = parse_steps(ids)
    if unknown or not parsed:
        ctx.console.error(f"unknown step(s): {', '.join(unknown) or '<none>'}")
        ctx.console.print(f"available: {', '.join(s.cli_id for s in ReleaseStep)}", Style.DIM)
        exit_with_code(int(ErrorCode.USER_ERROR))
    return parsed
