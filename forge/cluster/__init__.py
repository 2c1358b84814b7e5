"""Kubernetes cluster access (kubectl) and object parsing."""

from .client import ClusterClient, ClusterError, KubectlClient
from .resources import ContainerState, JobState, PodStatus, WorkloadInfo

__all__ = [
    "ClusterClient",
    "ClusterError",
    "ContainerState",
    "JobState",
    "KubectlClient",
    "PodStatus",
    "WorkloadInfo",
]
