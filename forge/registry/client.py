"""Container registry client (skopeo).

Pushes a built ``docker-archive`` artifact under one or more tags with a
bounded, fixed-backoff retry, and verifies that a tag's manifest exists before
a rollback redeploys it.

Usage:
    registry = SkopeoRegistry(credentials, cwd=repo_root, console=console)
    match registry.push_tags(Path("result"), "ghcr.io/acme/shop-api", auto_tags("amd64", sha)):
        case Ok(pushed):
            ...
        case Err(PushFailed(attempts=n, message=msg)):
            console.error(f"push failed after {n} attempts: {msg}")
"""

from __future__ import annotations

import os
from pathlib import Path
from time import sleep
from typing import Protocol

from forge.core.result import Err, Ok, Result
from forge.git.repository import VCSClient
from forge.output.console import ConsoleProtocol, Style
from forge.platform.process import run as run_process
from forge.platform.tools import tool_path

from .credentials import Credentials
from .errors import ArtifactMissing, PushFailed, RegistryError, TagNotFound

__all__ = [
    "DEFAULT_PUSH_RETRIES",
    "RETRY_DELAY_SECONDS",
    "RegistryClient",
    "SkopeoRegistry",
    "auto_tags",
    "resolve_git_sha",
]

DEFAULT_PUSH_RETRIES = 3
RETRY_DELAY_SECONDS = 2.0
_PUSH_TIMEOUT_SECONDS = 15 * 60.0
_INSPECT_TIMEOUT_SECONDS = 60.0


class RegistryClient(Protocol):
    def push(
        self, artifact_path: Path, registry: str, tag: str, max_retries: int | None = None
    ) -> Result[None, RegistryError]: ...

    def push_tags(
        self, artifact_path: Path, registry: str, tags: tuple[str, ...]
    ) -> Result[list[str], RegistryError]: ...

    def verify_tag_exists(self, registry: str, tag: str) -> Result[str, RegistryError]: ...


def auto_tags(arch: str, git_sha: str) -> tuple[str, str]:
    """Tags pushed for every release: the immutable sha tag and the moving latest tag."""
    return (f"{arch}-{git_sha}", f"{arch}-latest")


def resolve_git_sha(vcs: VCSClient) -> str | None:
    """Commit to tag artifacts with.

    ``RELEASE_GIT_SHA`` then ``GIT_SHA`` (set by CI), else the short HEAD sha.
    """
    for var in ("RELEASE_GIT_SHA", "GIT_SHA"):
        value = os.environ.get(var, "").strip()
        if value:
            return value
    head = vcs.head_sha(short=True)
    if isinstance(head, Err):
        return None
    return head.value


class SkopeoRegistry:
    def __init__(
        self,
        credentials: Credentials,
        *,
        cwd: Path,
        console: ConsoleProtocol,
        retries: int = DEFAULT_PUSH_RETRIES,
    ) -> None:
        self._credentials = credentials
        self._cwd = cwd
        self._console = console
        self._retries = max(1, retries)

    def push(
        self, artifact_path: Path, registry: str, tag: str, max_retries: int | None = None
    ) -> Result[None, RegistryError]:
        """Push one tag, retrying up to ``max_retries`` attempts in total.

        A missing artifact is reported before any network call and never retried.
        """
        if not artifact_path.exists():
            return Err(ArtifactMissing(path=artifact_path))

        attempts_allowed = max(1, max_retries if max_retries is not None else self._retries)
        reference = f"{registry}:{tag}"
        skopeo = tool_path("skopeo")
        cmd = [
            skopeo,
            "copy",
            "--insecure-policy",
            f"--dest-creds={self._credentials.pair}",
            f"docker-archive:{artifact_path}",
            f"docker://{reference}",
        ]

        last_error = ""
        for attempt in range(1, attempts_allowed + 1):
            self._console.print(
                f"skopeo copy docker-archive:{artifact_path} docker://{reference}", Style.DIM
            )
            result = run_process(cmd, cwd=self._cwd, timeout=_PUSH_TIMEOUT_SECONDS)
            if isinstance(result, Ok):
                return Ok(None)

            last_error = result.error.detail.replace(self._credentials.token, "***")
            if attempt < attempts_allowed:
                self._console.warning(f"push attempt {attempt} failed, retrying...")
                sleep(RETRY_DELAY_SECONDS)

        return Err(PushFailed(reference=reference, attempts=attempts_allowed, message=last_error))

    def push_tags(
        self, artifact_path: Path, registry: str, tags: tuple[str, ...]
    ) -> Result[list[str], RegistryError]:
        """Push tags in order, stopping at the first failure (earlier tags stay pushed)."""
        pushed: list[str] = []
        for tag in tags:
            result = self.push(artifact_path, registry, tag)
            if isinstance(result, Err):
                return result
            self._console.success(f"pushed {registry}:{tag}")
            pushed.append(tag)
        return Ok(pushed)

    def verify_tag_exists(self, registry: str, tag: str) -> Result[str, RegistryError]:
        """Return the manifest digest of ``registry:tag``. Read-only."""
        reference = f"{registry}:{tag}"
        result = run_process(
            [
                tool_path("skopeo"),
                "inspect",
                f"--creds={self._credentials.pair}",
                "--format",
                "{{.Digest}}",
                f"docker://{reference}",
            ],
            cwd=self._cwd,
            timeout=_INSPECT_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            detail = result.error.detail.replace(self._credentials.token, "***")
            return Err(TagNotFound(reference=reference, message=detail))

        digest = result.value.strip()
        if not digest:
            return Err(TagNotFound(reference=reference, message="empty digest"))
        return Ok(digest)
