"""Registry credential discovery.

The registry user is the organization segment of the registry URL
(``ghcr.io/<org>/...``). The token is looked up in priority order:

1. An explicitly provided token
2. ``GHCR_TOKEN`` environment variable
3. ``GITHUB_TOKEN`` environment variable
4. ``gh auth token``
5. The ``GHCR_TOKEN`` key of the ``github-runner-secret`` secret in the
   ``github-actions`` namespace (base64, as stored by Kubernetes)
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass, field
from pathlib import Path

from forge.core.result import Err, Ok, Result
from forge.platform.process import run as run_process
from forge.platform.tools import tool_path

from .errors import CredentialsNotFound, InvalidRegistry, RegistryError

__all__ = ["Credentials", "discover_credentials", "extract_organization"]

_LOOKUP_TIMEOUT_SECONDS = 15.0
_RUNNER_SECRET = "github-runner-secret"
_RUNNER_NAMESPACE = "github-actions"


@dataclass(frozen=True, slots=True)
class Credentials:
    organization: str
    token: str = field(repr=False)

    @property
    def pair(self) -> str:
        return f"{self.organization}:{self.token}"


def extract_organization(registry: str) -> Result[str, InvalidRegistry]:
    """``"ghcr.io/acme/shop/api"`` -> ``"acme"``."""
    parts = registry.strip().split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return Err(InvalidRegistry(registry=registry))
    return Ok(parts[1])


def _gh_token(cwd: Path) -> str | None:
    result = run_process(
        [tool_path("gh"), "auth", "token"], cwd=cwd, timeout=_LOOKUP_TIMEOUT_SECONDS
    )
    if isinstance(result, Err):
        return None
    return result.value.strip() or None


def _runner_secret_token(cwd: Path) -> str | None:
    result = run_process(
        [
            tool_path("kubectl"),
            "get",
            "secret",
            _RUNNER_SECRET,
            "-n",
            _RUNNER_NAMESPACE,
            "-o",
            "jsonpath={.data.GHCR_TOKEN}",
        ],
        cwd=cwd,
        timeout=_LOOKUP_TIMEOUT_SECONDS,
    )
    if isinstance(result, Err):
        return None
    encoded = result.value.strip()
    if not encoded:
        return None
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8").strip() or None
    except (binascii.Error, UnicodeDecodeError):
        return None


def discover_credentials(
    registry: str, *, token: str | None = None, cwd: Path | None = None
) -> Result[Credentials, RegistryError]:
    org = extract_organization(registry)
    if isinstance(org, Err):
        return org

    workdir = cwd or Path.cwd()
    candidates = (
        lambda: token.strip() if token else None,
        lambda: os.environ.get("GHCR_TOKEN", "").strip() or None,
        lambda: os.environ.get("GITHUB_TOKEN", "").strip() or None,
        lambda: _gh_token(workdir),
        lambda: _runner_secret_token(workdir),
    )
    # Lazy so that gh/kubectl only run when the cheaper sources are empty.
    for source in candidates:
        found = source()
        if found:
            return Ok(Credentials(organization=org.value, token=found))
    return Err(CredentialsNotFound())
