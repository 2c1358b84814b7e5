"""Release pipeline: step model, driver and default step handlers."""

from .errors import ReleaseError, ReleaseFailure
from .machine import StepHandler, StepHandlers, run_release
from .model import (
    DEFAULT_STEPS,
    DEPLOY_ONLY_STEPS,
    MINIMAL_STEPS,
    Completed,
    Failed,
    ReleaseConfig,
    ReleasePhase,
    ReleaseStep,
    StepResult,
    parse_steps,
)
from .steps import (
    RegistryFactory,
    ReleaseContext,
    build_step_handlers,
    deploy_commit_message,
    release_config_for,
)

__all__ = [
    "DEFAULT_STEPS",
    "DEPLOY_ONLY_STEPS",
    "MINIMAL_STEPS",
    "Completed",
    "Failed",
    "RegistryFactory",
    "ReleaseConfig",
    "ReleaseContext",
    "ReleaseError",
    "ReleaseFailure",
    "ReleasePhase",
    "ReleaseStep",
    "StepHandler",
    "StepHandlers",
    "StepResult",
    "build_step_handlers",
    "deploy_commit_message",
    "parse_steps",
    "release_config_for",
    "run_release",
]
