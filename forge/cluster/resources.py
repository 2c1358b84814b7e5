"""Parsing of ``kubectl ... -o json`` documents.

Only the fields forge reasons about are extracted; everything else in the
Kubernetes objects is ignored. Parsers are pure and tolerate missing fields,
so they can be tested with hand-written JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from forge.core.structured import StrDict, as_obj_list, as_str_dict, get_path, get_str

__all__ = [
    "ContainerState",
    "JobState",
    "PodStatus",
    "WorkloadInfo",
    "image_tag",
    "parse_events",
    "parse_job_state",
    "parse_pod",
    "parse_pod_list",
    "parse_workload",
]

type ContainerStateName = Literal["waiting", "running", "terminated", "unknown"]
type JobState = Literal["complete", "failed", "active"]


@dataclass(frozen=True, slots=True)
class ContainerState:
    """State of a pod's first container."""

    state: ContainerStateName
    reason: str | None = None
    message: str | None = None
    restart_count: int = 0

    @property
    def key(self) -> str:
        """``state:reason``; two observations with the same key are the same state."""
        return f"{self.state}:{self.reason or ''}"


@dataclass(frozen=True, slots=True)
class PodStatus:
    name: str
    phase: str
    ready: bool
    image_tag: str
    container: ContainerState | None = None

    @property
    def restart_count(self) -> int:
        return self.container.restart_count if self.container else 0

    @property
    def reason(self) -> str | None:
        return self.container.reason if self.container else None


@dataclass(frozen=True, slots=True)
class WorkloadInfo:
    """What a Deployment or StatefulSet is converging towards."""

    kind: str
    name: str
    replicas: int
    image_tag: str


def image_tag(image: str) -> str:
    """Extract the tag of an image reference (``registry/name:tag``).

    Registry ports are not mistaken for tags; untagged references yield
    ``"unknown"``.
    """
    ref = image.split("@", 1)[0]
    last = ref.rsplit("/", 1)[-1]
    if ":" not in last:
        return "unknown"
    return last.rsplit(":", 1)[1] or "unknown"


def _first(items: object) -> StrDict | None:
    lst = as_obj_list(items)
    if not lst:
        return None
    return as_str_dict(lst[0])


def _container_state(status: StrDict) -> ContainerState:
    restarts_obj = status.get("restartCount")
    restarts = restarts_obj if isinstance(restarts_obj, int) else 0
    state = as_str_dict(status.get("state")) or {}

    for name in ("waiting", "running", "terminated"):
        detail = as_str_dict(state.get(name))
        if detail is None:
            continue
        message = get_str(detail, "message")
        if name == "running":
            started = get_str(detail, "startedAt")
            message = f"Started at {started}" if started else None
        return ContainerState(
            state=name,
            reason=get_str(detail, "reason"),
            message=message,
            restart_count=restarts,
        )
    return ContainerState(state="unknown", restart_count=restarts)


def parse_pod(obj: StrDict) -> PodStatus:
    name = get_path(obj, "metadata", "name")
    phase = get_path(obj, "status", "phase")
    container_status = _first(get_path(obj, "status", "containerStatuses"))
    container_spec = _first(get_path(obj, "spec", "containers"))

    image = get_str(container_spec, "image") if container_spec else None
    ready = bool(container_status.get("ready")) if container_status else False

    return PodStatus(
        name=name if isinstance(name, str) else "unknown",
        phase=phase if isinstance(phase, str) else "Unknown",
        ready=ready,
        image_tag=image_tag(image) if image else "unknown",
        container=_container_state(container_status) if container_status else None,
    )


def parse_pod_list(obj: object) -> list[PodStatus]:
    """Parse a ``PodList`` into statuses sorted by pod name."""
    root = as_str_dict(obj) or {}
    pods: list[PodStatus] = []
    for item in as_obj_list(root.get("items")) or []:
        pod = as_str_dict(item)
        if pod is not None:
            pods.append(parse_pod(pod))
    return sorted(pods, key=lambda p: p.name)


def parse_workload(obj: object, kind: str) -> WorkloadInfo | None:
    """Parse a Deployment/StatefulSet; ``None`` if the pod template has no container."""
    root = as_str_dict(obj)
    if root is None:
        return None
    container = _first(get_path(root, "spec", "template", "spec", "containers"))
    image = get_str(container, "image") if container else None
    if image is None:
        return None

    replicas = get_path(root, "spec", "replicas")
    name = get_path(root, "metadata", "name")
    return WorkloadInfo(
        kind=kind,
        name=name if isinstance(name, str) else "",
        # The API server defaults an omitted replica count to 1.
        replicas=replicas if isinstance(replicas, int) else 1,
        image_tag=image_tag(image),
    )


def _event_time(event: StrDict) -> str:
    for key in ("lastTimestamp", "eventTime", "firstTimestamp"):
        raw = get_str(event, key)
        if raw:
            try:
                return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%H:%M:%S")
            except ValueError:
                return raw
    return ""


def parse_events(obj: object) -> list[str]:
    """Format an ``EventList`` as ``[HH:MM:SS] Reason: message`` lines, oldest first."""
    root = as_str_dict(obj) or {}
    lines: list[str] = []
    for item in as_obj_list(root.get("items")) or []:
        event = as_str_dict(item)
        if event is None:
            continue
        reason = get_str(event, "reason")
        message = get_str(event, "message")
        when = _event_time(event)
        if reason is None or message is None or not when:
            continue
        lines.append(f"[{when}] {reason}: {message.strip()}")
    return sorted(lines)


def parse_job_state(obj: object) -> JobState:
    root = as_str_dict(obj) or {}
    for item in as_obj_list(get_path(root, "status", "conditions")) or []:
        cond = as_str_dict(item)
        if cond is None or get_str(cond, "status") != "True":
            continue
        match get_str(cond, "type"):
            case "Complete":
                return "complete"
            case "Failed":
                return "failed"
            case _:
                pass
    return "active"
