"""Push command - push a built artifact to the registry."""

from __future__ import annotations

from pathlib import Path

import typer

from forge.cli.commands._helpers import exit_with_code, resolve_sha
from forge.cli.context import build_context
from forge.core.errors import ErrorCode
from forge.core.result import Err
from forge.output.console import Style
from forge.output.errors import print_registry_error, registry_error_exit_code
from forge.registry.client import auto_tags


def push(
    service: str = typer.Argument(..., help="Service name from forge.toml"),
    sha: str | None = typer.Option(
        None, "--sha", help="Git sha to tag the image with", show_default=False
    ),
    artifact: Path | None = typer.Option(
        None, "--artifact", help="Image archive (default: the service's image)", show_default=False
    ),
    retries: int | None = typer.Option(
        None, "--retries", min=1, help="Push attempts per tag", show_default=False
    ),
    token: str | None = typer.Option(
        None, "--token", help="Registry token (default: discovered)", show_default=False
    ),
) -> None:
    """Push <arch>-<sha> and <arch>-latest tags and record the new tag."""
    ctx = build_context()
    svc = ctx.service(service)
    release_ctx = ctx.release_context(svc, token)

    artifact_path = artifact if artifact is not None else release_ctx.service_dir / svc.image
    tag, latest = auto_tags(ctx.config.release.arch, resolve_sha(ctx, sha))

    client = release_ctx.registry()
    if isinstance(client, Err):
        print_registry_error(client.error, ctx.console)
        exit_with_code(registry_error_exit_code(client.error))
    registry = client.value

    for t in (tag, latest):
        pushed = registry.push(artifact_path, svc.registry, t, max_retries=retries)
        if isinstance(pushed, Err):
            print_registry_error(pushed.error, ctx.console)
            exit_with_code(registry_error_exit_code(pushed.error))
        ctx.console.success(f"pushed {svc.registry}:{t}")

    recorded = ctx.store.record_push(svc.name, tag)
    if isinstance(recorded, Err):
        ctx.console.error(f"image pushed but metadata not updated: {recorded.error.message}")
        exit_with_code(int(ErrorCode.IO_ERROR))

    info = recorded.value
    ctx.console.print(f"{ctx.store.path_for(svc.name)}: tag {info.tag}", Style.DIM)
    if info.previous_tag:
        ctx.console.print(f"previous tag: {info.previous_tag}", Style.DIM)
