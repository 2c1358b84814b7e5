"""Persisted per-service artifact metadata.

Each service has ``deploy/<service>.artifact.json``::

    {
      "tag": "amd64-abc123",
      "built_at": "2026-03-01T12:00:00Z",
      "previous_tag": "amd64-def456"
    }

A successful push makes the new tag current and the old current tag
previous. A rollback swaps the two. The store assumes a single writer per
service; ``swap_all`` re-reads every document and refuses to write anything if
someone else changed one since the rollback was planned.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from forge.core.result import Err, Ok, Result
from forge.core.structured import as_str_dict, get_str
from forge.platform.files import atomic_write_text

__all__ = [
    "ARTIFACT_SUFFIX",
    "ArtifactError",
    "ArtifactErrorKind",
    "ArtifactInfo",
    "ArtifactStore",
    "utc_timestamp",
]

ARTIFACT_SUFFIX = ".artifact.json"

type ArtifactErrorKind = Literal[
    "missing",
    "invalid",
    "io",
    "no_previous_tag",
    "concurrent_modification",
]


@dataclass(frozen=True, slots=True)
class ArtifactError:
    kind: ArtifactErrorKind
    service: str
    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ArtifactInfo:
    tag: str
    built_at: str
    previous_tag: str = ""

    @property
    def has_previous(self) -> bool:
        return bool(self.previous_tag)

    def to_json(self) -> str:
        payload = {
            "tag": self.tag,
            "built_at": self.built_at,
            "previous_tag": self.previous_tag,
        }
        return json.dumps(payload, indent=2) + "\n"


def utc_timestamp(now: datetime | None = None) -> str:
    """RFC 3339 UTC timestamp with second precision (``2026-03-01T12:00:00Z``)."""
    moment = now or datetime.now(UTC)
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class ArtifactStore:
    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, service: str) -> Path:
        return self.directory / f"{service}{ARTIFACT_SUFFIX}"

    def read(self, service: str) -> Result[ArtifactInfo, ArtifactError]:
        path = self.path_for(service)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Err(
                ArtifactError(
                    kind="missing",
                    service=service,
                    message=f"no artifact metadata for {service}",
                    path=path,
                )
            )
        except OSError as e:
            return Err(ArtifactError(kind="io", service=service, message=str(e), path=path))

        try:
            obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(
                ArtifactError(
                    kind="invalid",
                    service=service,
                    message=f"invalid JSON: {e}",
                    path=path,
                )
            )

        data = as_str_dict(obj)
        tag = get_str(data, "tag") if data is not None else None
        if data is None or tag is None:
            return Err(
                ArtifactError(
                    kind="invalid",
                    service=service,
                    message="artifact metadata must be an object with a non-empty 'tag'",
                    path=path,
                )
            )

        return Ok(
            ArtifactInfo(
                tag=tag,
                built_at=get_str(data, "built_at") or "",
                previous_tag=get_str(data, "previous_tag") or "",
            )
        )

    def write(self, service: str, info: ArtifactInfo) -> Result[Path, ArtifactError]:
        path = self.path_for(service)
        try:
            atomic_write_text(path, info.to_json(), encoding="utf-8")
        except OSError as e:
            return Err(
                ArtifactError(
                    kind="io",
                    service=service,
                    message=f"failed to write artifact metadata: {e}",
                    path=path,
                )
            )
        return Ok(path)

    def record_push(
        self, service: str, tag: str, *, now: datetime | None = None
    ) -> Result[ArtifactInfo, ArtifactError]:
        """Make ``tag`` current after a successful push.

        The previous current tag becomes ``previous_tag``. Re-pushing the
        current tag refreshes ``built_at`` and keeps the existing previous tag.
        """
        previous = ""
        match self.read(service):
            case Ok(existing):
                previous = existing.previous_tag if existing.tag == tag else existing.tag
            case Err(ArtifactError(kind="missing")):
                pass
            case Err(e):
                return Err(e)

        info = ArtifactInfo(tag=tag, built_at=utc_timestamp(now), previous_tag=previous)
        written = self.write(service, info)
        if isinstance(written, Err):
            return written
        return Ok(info)

    def swap(
        self, service: str, expected_current: str, *, now: datetime | None = None
    ) -> Result[ArtifactInfo, ArtifactError]:
        """Make ``previous_tag`` current and ``expected_current`` previous.

        Fails with ``concurrent_modification`` if the persisted current tag is
        no longer ``expected_current``.
        """
        swapped = self.swap_all({service: expected_current}, now=now)
        if isinstance(swapped, Err):
            return swapped
        return Ok(swapped.value[0])

    def swap_all(
        self, expected: Mapping[str, str], *, now: datetime | None = None
    ) -> Result[tuple[ArtifactInfo, ...], ArtifactError]:
        """Swap several services as one unit.

        Every document is read and checked before anything is written. If a
        write fails, documents already written are restored to their old content.
        """
        originals: list[tuple[str, ArtifactInfo]] = []
        for service, expected_current in expected.items():
            checked = self._check_swappable(service, expected_current)
            if isinstance(checked, Err):
                return checked
            originals.append((service, checked.value))

        stamp = utc_timestamp(now)
        written: list[tuple[str, ArtifactInfo]] = []
        for service, existing in originals:
            swapped = ArtifactInfo(
                tag=existing.previous_tag, built_at=stamp, previous_tag=existing.tag
            )
            result = self.write(service, swapped)
            if isinstance(result, Err):
                return Err(self._restore(originals[: len(written)], result.error))
            written.append((service, swapped))
        return Ok(tuple(info for _, info in written))

    def _check_swappable(
        self, service: str, expected_current: str
    ) -> Result[ArtifactInfo, ArtifactError]:
        current = self.read(service)
        if isinstance(current, Err):
            return current

        existing = current.value
        if existing.tag != expected_current:
            return Err(
                ArtifactError(
                    kind="concurrent_modification",
                    service=service,
                    message=(
                        f"current tag changed from {expected_current} to {existing.tag} "
                        "since the rollback was planned"
                    ),
                    path=self.path_for(service),
                )
            )
        if not existing.has_previous:
            return Err(
                ArtifactError(
                    kind="no_previous_tag",
                    service=service,
                    message=f"{service} has no previous tag",
                    path=self.path_for(service),
                )
            )
        return Ok(existing)

    def _restore(
        self, originals: list[tuple[str, ArtifactInfo]], error: ArtifactError
    ) -> ArtifactError:
        failed = [
            service
            for service, info in originals
            if isinstance(self.write(service, info), Err)
        ]
        if not failed:
            return error
        return ArtifactError(
            kind=error.kind,
            service=error.service,
            message=f"{error.message}; could not restore {', '.join(failed)}",
            path=error.path,
        )
