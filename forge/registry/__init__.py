"""Container registry push/verify (skopeo) and credential discovery."""

from .client import RegistryClient, SkopeoRegistry, auto_tags, resolve_git_sha
from .credentials import Credentials, discover_credentials, extract_organization
from .errors import (
    ArtifactMissing,
    CredentialsNotFound,
    InvalidRegistry,
    PushFailed,
    RegistryError,
    TagNotFound,
    describe,
)

__all__ = [
    "ArtifactMissing",
    "Credentials",
    "CredentialsNotFound",
    "InvalidRegistry",
    "PushFailed",
    "RegistryClient",
    "RegistryError",
    "SkopeoRegistry",
    "TagNotFound",
    "auto_tags",
    "describe",
    "discover_credentials",
    "extract_organization",
    "resolve_git_sha",
]
