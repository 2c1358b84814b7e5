"""Git repository abstraction.

forge only needs a handful of git operations: resolve the HEAD commit, stage
files, commit, and push to the configured remote. ``VCSClient`` is the seam the
release steps and the rollback orchestrator depend on; ``Repository`` is the
git implementation.

Usage:
    repo = Repository(root)
    match repo.commit("deploy: update api to amd64-abc123"):
        case Ok(_):
            pass
        case Err(e):
            console.error(e.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from forge.core.result import Err, Ok, Result
from forge.platform.process import ProcessError
from forge.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

__all__ = [
    "GitError",
    "Repository",
    "VCSClient",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class VCSClient(Protocol):
    def head_sha(self, *, short: bool = True) -> Result[str, GitError]: ...

    def add(self, paths: list[Path]) -> Result[None, GitError]: ...

    def commit(self, message: str) -> Result[None, GitError]: ...

    def push(self, remote: str, branch: str) -> Result[None, GitError]: ...


class Repository:
    """Git working copy at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def head_sha(self, *, short: bool = True) -> Result[str, GitError]:
        """Resolve the HEAD commit (``git rev-parse [--short] HEAD``)."""
        args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "HEAD"]
        result = self._run(args)
        match result:
            case Err(e):
                return Err(_git_error("rev-parse", e, "cannot resolve HEAD"))
            case Ok(stdout):
                sha = stdout.strip()
                if not sha:
                    return Err(GitError(command="rev-parse", message="empty HEAD sha"))
                return Ok(sha)

    def add(self, paths: list[Path]) -> Result[None, GitError]:
        if not paths:
            return Ok(None)
        result = self._run(["add", "--", *(str(p) for p in paths)])
        if isinstance(result, Err):
            return Err(_git_error("add", result.error, "git add failed"))
        return Ok(None)

    def commit(self, message: str) -> Result[None, GitError]:
        result = self._run(["commit", "-m", message])
        if isinstance(result, Err):
            return Err(_git_error("commit", result.error, "git commit failed"))
        return Ok(None)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        result = self._run(["push", remote, branch])
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, f"push to {remote}/{branch} failed"))
        return Ok(None)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push"}
            else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)


def _git_error(command: str, error: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=error.stderr.strip() or error.stdout.strip() or fallback,
        returncode=error.returncode,
    )
