from __future__ import annotations

from dataclasses import dataclass

from forge.cluster.client import ClusterClient
from forge.core.config import DEFAULT_POD_SELECTOR
from forge.core.result import Err, Ok, Result
from forge.output.console import ConsoleProtocol, Style

__all__ = ["HealthCheckError", "check_deployment_health"]


@dataclass(frozen=True, slots=True)
class HealthCheckError:
    deployment: str
    namespace: str
    message: str


def check_deployment_health(
    cluster: ClusterClient,
    console: ConsoleProtocol,
    *,
    namespace: str,
    deployment: str,
    timeout_seconds: int,
    selector: str = DEFAULT_POD_SELECTOR,
) -> Result[None, HealthCheckError]:
    """Wait for ``kubectl rollout status`` and require at least one Running pod.

    ``selector`` is a label selector template formatted with ``name=deployment``.
    """
    console.print(f"checking deployment/{deployment} in {namespace}", Style.DIM)

    status = cluster.rollout_status(namespace, deployment, timeout_seconds)
    if isinstance(status, Err):
        return Err(
            HealthCheckError(
                deployment=deployment,
                namespace=namespace,
                message=f"rollout not complete within {timeout_seconds}s: {status.error.message}",
            )
        )

    pods = cluster.list_pods(namespace, selector.format(name=deployment))
    if isinstance(pods, Err):
        return Err(HealthCheckError(deployment, namespace, str(pods.error)))
    if not any(p.phase == "Running" for p in pods.value):
        return Err(HealthCheckError(deployment, namespace, "no Running pod"))

    console.success(f"deployment/{deployment} healthy")
    return Ok(None)
