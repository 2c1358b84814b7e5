"""Database migrations as one-shot Kubernetes Jobs.

The service image itself runs the migrations: the Job starts one container
from the release image with ``RUN_MODE`` selecting the migration entrypoint
for the database type. The Job name is deterministic (``<service>-migration``)
so a leftover Job from an earlier run is deleted before a new one is created.

Usage:
    runner = MigrationJobRunner(cluster, console)
    match runner.run(MigrationSpec.for_service(svc, namespace="shop-staging", tag=tag)):
        case Ok(result) if result.skipped:
            ...
        case Err(MigrationError(kind="job_failed", logs=logs)):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from time import monotonic, sleep
from typing import Literal

from forge.cluster.client import ClusterClient
from forge.core.config import MigrationConfig, ServiceConfig
from forge.core.result import Err, Ok, Result
from forge.core.structured import StrDict
from forge.output.console import ConsoleProtocol, Style

__all__ = [
    "RUN_MODES",
    "MigrationError",
    "MigrationJobRunner",
    "MigrationResources",
    "MigrationResult",
    "MigrationSpec",
    "build_job_manifest",
]

RUN_MODES: dict[str, str] = {
    "postgres": "migrate",
    "clickhouse": "migrate_clickhouse",
    "elasticsearch": "migrate_elasticsearch",
    "databend": "MIGRATE",
}

JOB_TTL_SECONDS = 300

type MigrationErrorKind = Literal[
    "invalid_database",
    "create_failed",
    "status_failed",
    "job_failed",
    "timeout",
]


@dataclass(frozen=True, slots=True)
class MigrationError:
    kind: MigrationErrorKind
    job_name: str
    message: str
    logs: str = ""


@dataclass(frozen=True, slots=True)
class MigrationResources:
    memory_request: str = "128Mi"
    memory_limit: str = "256Mi"
    cpu_request: str = "100m"
    cpu_limit: str = "500m"


@dataclass(frozen=True, slots=True)
class MigrationSpec:
    database: str
    service: str
    namespace: str
    image: str
    tag: str
    timeout_seconds: int = 300
    poll_interval_seconds: int = 2
    resources: MigrationResources = field(default_factory=MigrationResources)
    secret: str | None = None

    @property
    def job_name(self) -> str:
        return f"{self.service}-migration"

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.tag}"

    @property
    def secret_name(self) -> str:
        return self.secret or f"{self.service}-secrets"

    @property
    def skipped(self) -> bool:
        return self.database == "none"

    @classmethod
    def for_service(cls, service: ServiceConfig, *, namespace: str, tag: str) -> MigrationSpec:
        cfg = service.migration or MigrationConfig()
        return cls(
            database=cfg.database,
            service=service.name,
            namespace=namespace,
            image=service.registry,
            tag=tag,
            timeout_seconds=cfg.timeout_seconds,
            poll_interval_seconds=cfg.poll_interval_seconds,
            resources=MigrationResources(
                memory_request=cfg.memory_request,
                memory_limit=cfg.memory_limit,
                cpu_request=cfg.cpu_request,
                cpu_limit=cfg.cpu_limit,
            ),
            secret=cfg.secret,
        )


@dataclass(frozen=True, slots=True)
class MigrationResult:
    job_name: str
    skipped: bool = False
    duration_seconds: float = 0.0
    logs: str = ""


def build_job_manifest(spec: MigrationSpec, run_mode: str) -> StrDict:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "name": spec.job_name,
            "namespace": spec.namespace,
            "labels": {"app": spec.service, "forge/role": "migration"},
        },
        "spec": {
            "ttlSecondsAfterFinished": JOB_TTL_SECONDS,
            "backoffLimit": 0,
            "template": {
                "spec": {
                    "restartPolicy": "Never",
                    "containers": [
                        {
                            "name": "migrate",
                            "image": spec.image_ref,
                            "env": [{"name": "RUN_MODE", "value": run_mode}],
                            "envFrom": [
                                {"secretRef": {"name": spec.secret_name, "optional": True}}
                            ],
                            "resources": {
                                "requests": {
                                    "memory": spec.resources.memory_request,
                                    "cpu": spec.resources.cpu_request,
                                },
                                "limits": {
                                    "memory": spec.resources.memory_limit,
                                    "cpu": spec.resources.cpu_limit,
                                },
                            },
                        }
                    ],
                }
            },
        },
    }


class MigrationJobRunner:
    def __init__(self, cluster: ClusterClient, console: ConsoleProtocol) -> None:
        self._cluster = cluster
        self._console = console

    def run(self, spec: MigrationSpec) -> Result[MigrationResult, MigrationError]:
        if spec.skipped:
            self._console.print(f"no migrations configured for {spec.service}", Style.DIM)
            return Ok(MigrationResult(job_name=spec.job_name, skipped=True))

        run_mode = RUN_MODES.get(spec.database)
        if run_mode is None:
            return Err(
                MigrationError(
                    kind="invalid_database",
                    job_name=spec.job_name,
                    message=f"unsupported database type: {spec.database}",
                )
            )

        self._console.info(
            f"running {spec.database} migrations for {spec.service} (RUN_MODE={run_mode})"
        )
        start = monotonic()

        self._delete_job(spec)
        created = self._cluster.apply(build_job_manifest(spec, run_mode))
        if isinstance(created, Err):
            return Err(
                MigrationError(
                    kind="create_failed",
                    job_name=spec.job_name,
                    message=str(created.error),
                )
            )
        self._console.print(f"created job/{spec.job_name} ({spec.image_ref})", Style.DIM)

        outcome = self._wait(spec)
        logs = self._logs(spec)
        self._delete_job(spec)
        duration = monotonic() - start

        if isinstance(outcome, Err):
            return Err(
                MigrationError(
                    kind=outcome.error[0],
                    job_name=spec.job_name,
                    message=outcome.error[1],
                    logs=logs,
                )
            )

        self._console.success(f"migrations completed in {duration:.1f}s")
        return Ok(MigrationResult(job_name=spec.job_name, duration_seconds=duration, logs=logs))

    def _wait(self, spec: MigrationSpec) -> Result[None, tuple[MigrationErrorKind, str]]:
        """Poll the Job until it completes, fails or the poll budget is spent.

        A failed status read is retried on the next poll. It only becomes
        ``status_failed`` when the last poll of the budget could not read the Job.
        """
        interval = spec.poll_interval_seconds
        polls = spec.timeout_seconds // interval if interval > 0 else spec.timeout_seconds
        max_polls = max(1, polls)
        read_error: str | None = None

        for poll in range(1, max_polls + 1):
            state = self._cluster.job_state(spec.namespace, spec.job_name)
            match state:
                case Err(e):
                    read_error = str(e)
                    self._console.warning(
                        f"could not read job/{spec.job_name} status (poll {poll}/{max_polls}): "
                        f"{e.message}"
                    )
                case Ok("complete"):
                    return Ok(None)
                case Ok("failed"):
                    return Err(("job_failed", f"migration job {spec.job_name} failed"))
                case Ok(_):
                    read_error = None
            if poll < max_polls:
                sleep(interval)

        if read_error is not None:
            return Err(("status_failed", read_error))
        return Err(
            (
                "timeout",
                f"migration job {spec.job_name} did not finish within {spec.timeout_seconds}s",
            )
        )

    def _logs(self, spec: MigrationSpec) -> str:
        result = self._cluster.job_logs(spec.namespace, spec.job_name)
        if isinstance(result, Err):
            self._console.warning(f"could not fetch migration logs: {result.error.message}")
            return ""
        return result.value

    def _delete_job(self, spec: MigrationSpec) -> None:
        result = self._cluster.delete_job(spec.namespace, spec.job_name)
        if isinstance(result, Err):
            # The Job's TTL removes it eventually.
            self._console.warning(f"could not delete job/{spec.job_name}: {result.error.message}")
