"""Error presentation utilities.

Centralized error formatting and exit code mapping, so every command reports
a failure the same way and exits with the documented code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from forge.core.errors import ErrorCode
from forge.output.console import Style
from forge.registry.errors import (
    ArtifactMissing,
    CredentialsNotFound,
    InvalidRegistry,
    PushFailed,
    RegistryError,
    TagNotFound,
    describe,
)
from forge.services.migration import MigrationError
from forge.services.release import ReleaseError
from forge.services.rollback import RollbackError
from forge.services.rollout import RolloutError

if TYPE_CHECKING:
    from forge.output.console import ConsoleProtocol

__all__ = [
    "migration_error_exit_code",
    "print_error",
    "print_registry_error",
    "registry_error_exit_code",
    "release_error_exit_code",
    "rollback_error_exit_code",
    "rollout_error_exit_code",
]


def print_error(message: str, hint: str | None, console: ConsoleProtocol) -> None:
    console.error(message)
    if hint:
        console.print(f"hint: {hint}", Style.DIM)


def print_registry_error(error: RegistryError, console: ConsoleProtocol) -> None:
    """Print registry error to console with appropriate formatting."""
    match error:
        case ArtifactMissing(hint=hint) | CredentialsNotFound(hint=hint):
            print_error(describe(error), hint, console)
        case _:
            print_error(describe(error), None, console)


def registry_error_exit_code(error: RegistryError) -> int:
    match error:
        case ArtifactMissing():
            return int(ErrorCode.IO_ERROR)
        case InvalidRegistry():
            return int(ErrorCode.USER_ERROR)
        case CredentialsNotFound():
            return int(ErrorCode.ENV_ERROR)
        case PushFailed() | TagNotFound():
            return int(ErrorCode.NETWORK_ERROR)


def release_error_exit_code(error: ReleaseError) -> int:
    match error.kind:
        case "invalid_config" | "missing_handler":
            return int(ErrorCode.USER_ERROR)
        case "credentials":
            return int(ErrorCode.ENV_ERROR)
        case "push_failed" | "git_failed":
            return int(ErrorCode.NETWORK_ERROR)
        case "artifact_missing" | "manifest_failed" | "metadata_failed":
            return int(ErrorCode.IO_ERROR)
        case "rollout_failed":
            return int(ErrorCode.ROLLOUT_ERROR)
        case _:
            return int(ErrorCode.RELEASE_ERROR)


def migration_error_exit_code(error: MigrationError) -> int:
    if error.kind == "invalid_database":
        return int(ErrorCode.USER_ERROR)
    return int(ErrorCode.RELEASE_ERROR)


def rollout_error_exit_code(error: RolloutError) -> int:
    if error.kind == "lookup_failed":
        return int(ErrorCode.ENV_ERROR)
    return int(ErrorCode.ROLLOUT_ERROR)


def rollback_error_exit_code(error: RollbackError) -> int:
    match error.kind:
        case "no_services" | "no_previous_tag" | "no_environments":
            return int(ErrorCode.USER_ERROR)
        case "registry_unavailable":
            return int(ErrorCode.ENV_ERROR)
        case "image_missing" | "git_failed":
            return int(ErrorCode.NETWORK_ERROR)
        case "metadata_failed" | "concurrent_modification":
            return int(ErrorCode.IO_ERROR)
        case "health_check_failed":
            return int(ErrorCode.ROLLOUT_ERROR)
        case _:
            return int(ErrorCode.RELEASE_ERROR)
