"""Repository root detection.

The repository root is the directory holding ``forge.toml``. Deployment
manifests and the artifact metadata documents are resolved relative to it, and
git commits made by forge are made in it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result

__all__ = [
    "CONFIG_FILENAME",
    "REPO_ROOT_ENV",
    "RepoError",
    "RepoRoot",
    "detect_repo_root",
    "find_repo_root_upward",
]

CONFIG_FILENAME = "forge.toml"
REPO_ROOT_ENV = "FORGE_REPO_ROOT"


@dataclass(frozen=True, slots=True)
class RepoError:
    """Error when the repository root cannot be detected."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class RepoRoot:
    root: Path

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def deploy_dir(self) -> Path:
        """Directory holding ``<service>.artifact.json`` documents."""
        return self.root / "deploy"

    def resolve(self, relative: str) -> Path:
        path = Path(relative)
        if path.is_absolute():
            return path
        return self.root / path


def find_repo_root_upward(start: Path) -> Path | None:
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILENAME).is_file():
            return candidate
    return None


def detect_repo_root(start: Path | None = None) -> Result[RepoRoot, RepoError]:
    """Detect the repository root.

    Priority:
    1. FORGE_REPO_ROOT environment variable
    2. Nearest ancestor of ``start`` (default: cwd) containing forge.toml
    """
    override = os.environ.get(REPO_ROOT_ENV, "").strip()
    if override:
        root = Path(override).expanduser()
        if not (root / CONFIG_FILENAME).is_file():
            return Err(RepoError(f"{REPO_ROOT_ENV}={root} has no {CONFIG_FILENAME}", root))
        return Ok(RepoRoot(root=root.resolve()))

    origin = start or Path.cwd()
    found = find_repo_root_upward(origin)
    if found is None:
        return Err(
            RepoError(
                f"no {CONFIG_FILENAME} found in {origin} or any parent directory",
                searched_from=origin,
            )
        )
    return Ok(RepoRoot(root=found))
