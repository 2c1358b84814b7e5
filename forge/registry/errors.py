from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class ArtifactMissing:
    path: Path
    hint: str = "Run: forge release --steps build"


@dataclass(frozen=True, slots=True)
class PushFailed:
    reference: str
    attempts: int
    message: str


@dataclass(frozen=True, slots=True)
class TagNotFound:
    reference: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class InvalidRegistry:
    registry: str


@dataclass(frozen=True, slots=True)
class CredentialsNotFound:
    hint: str = "Set GHCR_TOKEN or GITHUB_TOKEN, or run: gh auth login"


RegistryError = ArtifactMissing | PushFailed | TagNotFound | InvalidRegistry | CredentialsNotFound


def describe(error: RegistryError) -> str:
    match error:
        case ArtifactMissing(path=path):
            return f"artifact not found: {path}"
        case PushFailed(reference=ref, attempts=n, message=msg):
            return f"push of {ref} failed after {n} attempt(s): {msg}"
        case TagNotFound(reference=ref, message=msg):
            return f"image not found in registry: {ref}" + (f" ({msg})" if msg else "")
        case InvalidRegistry(registry=registry):
            return f"invalid registry URL: {registry} (expected host/organization/...)"
        case CredentialsNotFound():
            return "no registry credentials found"
