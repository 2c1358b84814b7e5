"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import typer

from forge.core.durations import parse_duration
from forge.core.errors import ErrorCode
from forge.output.console import Style
from forge.registry.client import resolve_git_sha

if TYPE_CHECKING:
    from forge.cli.context import CLIContext


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)


def duration_option(ctx: CLIContext, value: str | None, flag: str) -> int | None:
    """Parse a ``--timeout``-style duration, exiting with a user error if invalid."""
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        ctx.console.error(f"invalid {flag}: {e}")
        exit_with_code(int(ErrorCode.USER_ERROR))


def resolve_sha(ctx: CLIContext, explicit: str | None) -> str:
    """Commit sha to tag with: ``--sha``, then CI variables, then HEAD."""
    if explicit:
        return explicit.strip()
    sha = resolve_git_sha(ctx.vcs)
    if sha is None:
        ctx.console.error("cannot determine the git sha to tag the image with")
        ctx.console.print("hint: pass --sha or set RELEASE_GIT_SHA", Style.DIM)
        exit_with_code(int(ErrorCode.ENV_ERROR))
    return sha
