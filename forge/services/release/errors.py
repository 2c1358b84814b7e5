from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .model import ReleaseStep, StepResult


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: Literal[
        "invalid_config",
        "missing_handler",
        "hook_failed",
        "artifact_missing",
        "push_failed",
        "credentials",
        "manifest_failed",
        "metadata_failed",
        "git_failed",
        "migration_failed",
        "rollout_failed",
    ]
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ReleaseFailure:
    """Why a pipeline run stopped.

    ``step`` is None when the run was rejected before any step executed.
    ``results`` holds every StepResult recorded, the failing one last.
    """

    error: ReleaseError
    step: ReleaseStep | None = None
    results: tuple[StepResult, ...] = ()
