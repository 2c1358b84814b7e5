"""forge: release orchestration for GitOps-managed Kubernetes services."""

__version__ = "0.4.0"
