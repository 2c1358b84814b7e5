from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReleaseStep(Enum):
    """One stage of the release pipeline. Value = CLI id."""

    BUILD = "build"
    PUSH = "push"
    DEPLOY = "deploy"
    RECONCILE = "reconcile"
    MIGRATE = "migrate"
    EXTRACT_SCHEMA = "extract-schema"
    UPDATE_FEDERATION = "update-federation"
    INTEGRATION_TESTS = "integration-tests"
    ROLLOUT = "rollout"

    @property
    def cli_id(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_cli(cls, value: str) -> ReleaseStep | None:
        v = value.strip().lower().replace("_", "-")
        for step in cls:
            if step.value == v:
                return step
        return None


_LABELS: dict[ReleaseStep, str] = {
    ReleaseStep.BUILD: "Build",
    ReleaseStep.PUSH: "Push",
    ReleaseStep.DEPLOY: "Deploy",
    ReleaseStep.RECONCILE: "Flux Reconcile",
    ReleaseStep.MIGRATE: "Migrate",
    ReleaseStep.EXTRACT_SCHEMA: "Extract Schema",
    ReleaseStep.UPDATE_FEDERATION: "Update Federation",
    ReleaseStep.INTEGRATION_TESTS: "Integration Tests",
    ReleaseStep.ROLLOUT: "Rollout",
}

DEFAULT_STEPS: tuple[ReleaseStep, ...] = (
    ReleaseStep.PUSH,
    ReleaseStep.DEPLOY,
    ReleaseStep.RECONCILE,
    ReleaseStep.MIGRATE,
    ReleaseStep.EXTRACT_SCHEMA,
    ReleaseStep.UPDATE_FEDERATION,
    ReleaseStep.ROLLOUT,
)

MINIMAL_STEPS: tuple[ReleaseStep, ...] = (
    ReleaseStep.PUSH,
    ReleaseStep.DEPLOY,
    ReleaseStep.RECONCILE,
)

DEPLOY_ONLY_STEPS: tuple[ReleaseStep, ...] = (
    ReleaseStep.DEPLOY,
    ReleaseStep.RECONCILE,
)


def parse_steps(ids: list[str] | tuple[str, ...]) -> tuple[tuple[ReleaseStep, ...], list[str]]:
    """Map CLI ids to steps, keeping order. Returns (steps, unknown ids)."""
    steps: list[ReleaseStep] = []
    unknown: list[str] = []
    for raw in ids:
        step = ReleaseStep.from_cli(raw)
        if step is None:
            unknown.append(raw)
        else:
            steps.append(step)
    return tuple(steps), unknown


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Everything one pipeline run needs. Built once, never mutated."""

    service: str
    product: str
    namespace: str
    environment: str
    registry: str = ""
    manifest_path: str = ""
    artifact_path: str = ""
    git_sha: str = ""
    arch: str = "amd64"
    # Deploy-only releases (rollback) name the tag instead of deriving it.
    explicit_tag: str | None = None
    steps: tuple[ReleaseStep, ...] = DEFAULT_STEPS
    step_timeout_seconds: int = 600
    watch_rollout: bool = True
    safe_mode: bool = False

    @property
    def image_tag(self) -> str | None:
        if self.explicit_tag:
            return self.explicit_tag
        if self.git_sha:
            return f"{self.arch}-{self.git_sha}"
        return None

    @property
    def latest_tag(self) -> str:
        return f"{self.arch}-latest"

    def validate(self) -> list[str]:
        """Return every problem with this config (empty list = valid)."""
        errors: list[str] = []
        steps = set(self.steps)
        if not self.service.strip():
            errors.append("service name is required")
        if not self.namespace.strip():
            errors.append("namespace is required")
        if ReleaseStep.PUSH in steps and not self.registry:
            errors.append("registry is required for the push step")
        if steps & {ReleaseStep.PUSH, ReleaseStep.BUILD} and not self.artifact_path:
            errors.append("artifact path is required for the build and push steps")
        if ReleaseStep.DEPLOY in steps and not self.manifest_path:
            errors.append("manifest path is required for the deploy step")
        needs_tag = steps & {ReleaseStep.PUSH, ReleaseStep.DEPLOY, ReleaseStep.MIGRATE}
        if needs_tag and self.image_tag is None:
            errors.append(
                "an image tag (git sha or explicit tag) is required for push, deploy and migrate"
            )
        return errors


@dataclass(frozen=True, slots=True)
class StepResult:
    step: ReleaseStep
    success: bool
    duration_seconds: float
    message: str | None = None


@dataclass(frozen=True, slots=True)
class Completed:
    pass


@dataclass(frozen=True, slots=True)
class Failed:
    step: ReleaseStep


ReleasePhase = Completed | Failed
