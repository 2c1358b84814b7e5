from __future__ import annotations

import os
from pathlib import Path

import typer

from forge import __version__
from forge.cli.commands.migrate_cmd import migrate
from forge.cli.commands.push_cmd import push
from forge.cli.commands.release_cmd import release
from forge.cli.commands.rollback_cmd import rollback
from forge.cli.commands.rollout_cmd import rollout
from forge.core.errors import ErrorCode
from forge.core.repo import CONFIG_FILENAME, REPO_ROOT_ENV

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command()(push)
app.command()(rollout)
app.command()(rollback)
app.command()(migrate)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    repo: Path | None = typer.Option(
        None,
        "--repo",
        help=f"Repository root holding {CONFIG_FILENAME} (overrides auto detection)",
    ),
) -> None:
    if repo is not None:
        try:
            root = repo.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --repo: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not root.is_dir():
            typer.echo(f"error: --repo '{root}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not (root / CONFIG_FILENAME).is_file():
            typer.echo(f"error: --repo '{root}' has no {CONFIG_FILENAME}", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[REPO_ROOT_ENV] = str(root)


def main() -> None:
    app()
