"""Cluster access through kubectl.

``ClusterClient`` is the narrow interface the rollout monitor, the migration
runner and the health check depend on. ``KubectlClient`` implements it by
shelling out to ``kubectl`` with ``-o json`` and parsing the documents in
``forge.cluster.resources``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from forge.core.result import Err, Ok, Result
from forge.core.structured import StrDict
from forge.platform.process import ProcessError
from forge.platform.process import run as run_process
from forge.platform.tools import tool_path

from .resources import (
    JobState,
    PodStatus,
    WorkloadInfo,
    parse_events,
    parse_job_state,
    parse_pod_list,
    parse_workload,
)

__all__ = ["ClusterClient", "ClusterError", "KubectlClient"]

_KUBECTL_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class ClusterError:
    """A kubectl call failed or returned something unusable.

    Attributes:
        operation: What forge was doing ("get", "logs", "apply", ...)
        resource: The object involved ("deployment/api", "job/api-migration")
        message: Error detail (usually kubectl's stderr)
    """

    operation: str
    resource: str
    message: str

    def __str__(self) -> str:
        return f"kubectl {self.operation} {self.resource}: {self.message}"


class ClusterClient(Protocol):
    def get_workload(self, namespace: str, name: str) -> Result[WorkloadInfo, ClusterError]: ...

    def list_pods(self, namespace: str, selector: str) -> Result[list[PodStatus], ClusterError]: ...

    def pod_events(self, namespace: str, pod: str) -> Result[list[str], ClusterError]: ...

    def pod_logs(self, namespace: str, pod: str, tail: int) -> Result[str, ClusterError]: ...

    def apply(self, manifest: StrDict) -> Result[None, ClusterError]: ...

    def job_state(self, namespace: str, name: str) -> Result[JobState, ClusterError]: ...

    def job_logs(self, namespace: str, name: str) -> Result[str, ClusterError]: ...

    def delete_job(self, namespace: str, name: str) -> Result[None, ClusterError]: ...

    def rollout_undo(self, namespace: str, name: str) -> Result[None, ClusterError]: ...

    def rollout_status(
        self, namespace: str, name: str, timeout_seconds: int
    ) -> Result[None, ClusterError]: ...


class KubectlClient:
    """ClusterClient backed by the ``kubectl`` binary and the current kube context."""

    def __init__(self, cwd: Path, *, kubectl: str | None = None) -> None:
        self._cwd = cwd
        self._kubectl = kubectl or tool_path("kubectl")

    def get_workload(self, namespace: str, name: str) -> Result[WorkloadInfo, ClusterError]:
        """Look up a Deployment, falling back to a StatefulSet of the same name."""
        errors: list[str] = []
        for kind in ("deployment", "statefulset"):
            result = self._get_json(["get", kind, name, "-n", namespace])
            match result:
                case Ok(obj):
                    info = parse_workload(obj, kind)
                    if info is None:
                        return Err(
                            ClusterError("get", f"{kind}/{name}", "no container image in spec")
                        )
                    return Ok(info)
                case Err(e):
                    errors.append(e.message)
        return Err(
            ClusterError(
                "get",
                f"deployment|statefulset/{name}",
                f"not found in namespace {namespace}: {errors[-1]}",
            )
        )

    def list_pods(self, namespace: str, selector: str) -> Result[list[PodStatus], ClusterError]:
        result = self._get_json(["get", "pods", "-n", namespace, "-l", selector])
        if isinstance(result, Err):
            return result
        return Ok(parse_pod_list(result.value))

    def pod_events(self, namespace: str, pod: str) -> Result[list[str], ClusterError]:
        result = self._get_json(
            [
                "get",
                "events",
                "-n",
                namespace,
                "--field-selector",
                f"involvedObject.name={pod}",
            ]
        )
        if isinstance(result, Err):
            return result
        return Ok(parse_events(result.value))

    def pod_logs(self, namespace: str, pod: str, tail: int) -> Result[str, ClusterError]:
        return self._text(["logs", pod, "-n", namespace, f"--tail={tail}"], "logs", f"pod/{pod}")

    def apply(self, manifest: StrDict) -> Result[None, ClusterError]:
        kind = str(manifest.get("kind", "object")).lower()
        meta = manifest.get("metadata")
        name = meta.get("name", "") if isinstance(meta, dict) else ""
        result = run_process(
            [self._kubectl, "apply", "-f", "-"],
            cwd=self._cwd,
            timeout=_KUBECTL_TIMEOUT_SECONDS,
            input_text=json.dumps(manifest),
        )
        if isinstance(result, Err):
            return Err(ClusterError("apply", f"{kind}/{name}", result.error.detail))
        return Ok(None)

    def job_state(self, namespace: str, name: str) -> Result[JobState, ClusterError]:
        result = self._get_json(["get", "job", name, "-n", namespace])
        if isinstance(result, Err):
            return result
        return Ok(parse_job_state(result.value))

    def job_logs(self, namespace: str, name: str) -> Result[str, ClusterError]:
        return self._text(["logs", f"job/{name}", "-n", namespace], "logs", f"job/{name}")

    def delete_job(self, namespace: str, name: str) -> Result[None, ClusterError]:
        result = self._text(
            ["delete", "job", name, "-n", namespace, "--ignore-not-found"],
            "delete",
            f"job/{name}",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def rollout_undo(self, namespace: str, name: str) -> Result[None, ClusterError]:
        result = self._text(
            ["rollout", "undo", f"deployment/{name}", "-n", namespace],
            "rollout undo",
            f"deployment/{name}",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def rollout_status(
        self, namespace: str, name: str, timeout_seconds: int
    ) -> Result[None, ClusterError]:
        result = self._text(
            [
                "rollout",
                "status",
                f"deployment/{name}",
                "-n",
                namespace,
                f"--timeout={timeout_seconds}s",
            ],
            "rollout status",
            f"deployment/{name}",
            # kubectl enforces --timeout itself; leave headroom before killing it.
            timeout=timeout_seconds + _KUBECTL_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def _run(self, args: list[str], timeout: float) -> Result[str, ProcessError]:
        return run_process([self._kubectl, *args], cwd=self._cwd, timeout=timeout)

    def _text(
        self,
        args: list[str],
        operation: str,
        resource: str,
        *,
        timeout: float = _KUBECTL_TIMEOUT_SECONDS,
    ) -> Result[str, ClusterError]:
        result = self._run(args, timeout)
        if isinstance(result, Err):
            return Err(ClusterError(operation, resource, result.error.detail))
        return Ok(result.value)

    def _get_json(self, args: list[str]) -> Result[object, ClusterError]:
        resource = "/".join(a for a in args[1:3] if not a.startswith("-"))
        result = self._run([*args, "-o", "json"], _KUBECTL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(ClusterError("get", resource, result.error.detail))
        try:
            return Ok(json.loads(result.value))
        except json.JSONDecodeError as e:
            return Err(ClusterError("get", resource, f"invalid JSON from kubectl: {e}"))
