"""Rollout health monitoring.

The monitor polls the pods of a workload until every replica runs the expected
image and is ready. Each pod's container state is tracked across polls so a
pod that is merely slow ("converging") can be told apart from one that is
stuck or crash-looping.

Classification of a pod, first match wins:

1. BAD: the container waits/terminated with a reason that never resolves on
   its own (CrashLoopBackOff, ImagePullBackOff, ...)
2. EXCESSIVE_RESTARTS: restart count reached the threshold, ready or not
3. STUCK: same ``state:reason`` for ``stuck_threshold`` polls, not ready and
   not Succeeded
4. UPDATED_READY: ready, Running and on the expected image tag
5. CONVERGING: anything else

In SAFE mode the first poll that finds a BAD/EXCESSIVE_RESTARTS/STUCK pod
prints diagnostics (container state, recent events, log tail) and aborts.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from time import sleep
from typing import Literal

from forge.cluster.client import ClusterClient
from forge.cluster.resources import PodStatus, WorkloadInfo
from forge.core.config import DEFAULT_POD_SELECTOR, RolloutConfig
from forge.core.durations import parse_duration
from forge.core.result import Err, Ok, Result
from forge.output.console import ConsoleProtocol, Style

__all__ = [
    "BAD_REASONS",
    "PodAssessment",
    "PodHealth",
    "PodStateHistory",
    "RolloutError",
    "RolloutMonitor",
    "RolloutReport",
    "RolloutSettings",
    "classify",
    "parse_duration",
    "update_history",
]

BAD_REASONS = frozenset(
    {
        "CrashLoopBackOff",
        "ImagePullBackOff",
        "ErrImagePull",
        "CreateContainerConfigError",
        "InvalidImageName",
        "CreateContainerError",
        "RunContainerError",
    }
)


class PodHealth(Enum):
    BAD = "bad"
    EXCESSIVE_RESTARTS = "excessive_restarts"
    STUCK = "stuck"
    UPDATED_READY = "updated_ready"
    CONVERGING = "converging"

    @property
    def is_problem(self) -> bool:
        return self in (PodHealth.BAD, PodHealth.EXCESSIVE_RESTARTS, PodHealth.STUCK)


@dataclass(frozen=True, slots=True)
class RolloutSettings:
    interval_seconds: int = 3
    timeout_seconds: int = 600
    stuck_threshold: int = 10
    restart_threshold: int = 3
    safe_mode: bool = False
    event_tail: int = 10
    log_tail: int = 30
    selector: str = DEFAULT_POD_SELECTOR

    @property
    def max_iterations(self) -> int:
        # A zero interval polls back to back; budget one poll per second of timeout.
        if self.interval_seconds <= 0:
            return max(1, self.timeout_seconds)
        return max(1, self.timeout_seconds // self.interval_seconds)

    def selector_for(self, name: str) -> str:
        return self.selector.format(name=name)

    @classmethod
    def from_config(cls, cfg: RolloutConfig) -> RolloutSettings:
        return cls(
            interval_seconds=cfg.interval_seconds,
            timeout_seconds=cfg.timeout_seconds,
            stuck_threshold=cfg.stuck_threshold,
            restart_threshold=cfg.restart_threshold,
            safe_mode=cfg.safe_mode,
            selector=cfg.selector,
        )

    def with_overrides(
        self,
        *,
        interval_seconds: int | None = None,
        timeout_seconds: int | None = None,
        safe_mode: bool | None = None,
    ) -> RolloutSettings:
        return replace(
            self,
            interval_seconds=(
                self.interval_seconds if interval_seconds is None else interval_seconds
            ),
            timeout_seconds=self.timeout_seconds if timeout_seconds is None else timeout_seconds,
            safe_mode=self.safe_mode if safe_mode is None else safe_mode,
        )


@dataclass(slots=True)
class PodStateHistory:
    """What the monitor remembers about one pod between polls."""

    last_state: str
    last_reason: str | None
    iterations_in_state: int = 1
    last_restart_count: int = 0


def state_key(pod: PodStatus) -> str:
    if pod.container is not None:
        return pod.container.key
    return f"{pod.phase}:"


def update_history(history: dict[str, PodStateHistory], pod: PodStatus) -> PodStateHistory:
    """Record one observation of ``pod`` and return its updated history."""
    key = state_key(pod)
    entry = history.get(pod.name)
    if entry is None:
        entry = PodStateHistory(last_state=key, last_reason=pod.reason)
        history[pod.name] = entry
    elif entry.last_state == key:
        entry.iterations_in_state += 1
    else:
        entry.last_state = key
        entry.last_reason = pod.reason
        entry.iterations_in_state = 1
    entry.last_restart_count = pod.restart_count
    return entry


def classify(
    pod: PodStatus,
    history: PodStateHistory,
    expected_tag: str,
    settings: RolloutSettings,
) -> PodHealth:
    if pod.reason in BAD_REASONS:
        return PodHealth.BAD
    if pod.restart_count >= settings.restart_threshold:
        return PodHealth.EXCESSIVE_RESTARTS
    if (
        history.iterations_in_state >= settings.stuck_threshold
        and not pod.ready
        and pod.phase != "Succeeded"
    ):
        return PodHealth.STUCK
    if pod.ready and pod.phase == "Running" and pod.image_tag == expected_tag:
        return PodHealth.UPDATED_READY
    return PodHealth.CONVERGING


@dataclass(frozen=True, slots=True)
class PodAssessment:
    pod: PodStatus
    health: PodHealth
    iterations_in_state: int


@dataclass(frozen=True, slots=True)
class RolloutReport:
    workload: WorkloadInfo
    iterations: int
    pods: tuple[PodAssessment, ...] = ()


type RolloutErrorKind = Literal["lookup_failed", "timeout", "unhealthy", "undo_failed"]


@dataclass(frozen=True, slots=True)
class RolloutError:
    kind: RolloutErrorKind
    message: str
    problems: tuple[PodAssessment, ...] = field(default_factory=tuple)


_HEALTH_STYLE = {
    PodHealth.BAD: Style.ERROR,
    PodHealth.EXCESSIVE_RESTARTS: Style.ERROR,
    PodHealth.STUCK: Style.WARNING,
    PodHealth.UPDATED_READY: Style.SUCCESS,
    PodHealth.CONVERGING: Style.INFO,
}


class RolloutMonitor:
    def __init__(
        self,
        cluster: ClusterClient,
        console: ConsoleProtocol,
        settings: RolloutSettings | None = None,
    ) -> None:
        self._cluster = cluster
        self._console = console
        self.settings = settings or RolloutSettings()

    def watch(self, namespace: str, name: str) -> Result[RolloutReport, RolloutError]:
        """Poll until the rollout converges, times out, or (SAFE mode) turns unhealthy."""
        settings = self.settings
        workload = self._cluster.get_workload(namespace, name)
        if isinstance(workload, Err):
            return Err(RolloutError(kind="lookup_failed", message=str(workload.error)))
        target = workload.value

        self._console.header(f"Rollout {namespace}/{name}")
        self._console.print(
            f"{target.kind} replicas: {target.replicas}, expected image tag: {target.image_tag}",
            Style.DIM,
        )
        self._console.print(
            f"polling every {settings.interval_seconds}s, "
            f"up to {settings.max_iterations} polls (~{settings.timeout_seconds}s)",
            Style.DIM,
        )

        selector = settings.selector_for(name)
        history: dict[str, PodStateHistory] = {}

        for iteration in range(1, settings.max_iterations + 1):
            listed = self._cluster.list_pods(namespace, selector)
            if isinstance(listed, Err):
                return Err(RolloutError(kind="lookup_failed", message=str(listed.error)))

            assessments = tuple(
                self._assess(pod, history, target.image_tag) for pod in listed.value
            )
            self._print_progress(assessments)

            problems = tuple(a for a in assessments if a.health.is_problem)
            if settings.safe_mode and problems:
                self._print_diagnostics(namespace, problems)
                return Err(
                    RolloutError(
                        kind="unhealthy",
                        message=(
                            f"rollout of {name} aborted: {len(problems)} problem pod(s) "
                            "detected in SAFE mode"
                        ),
                        problems=problems,
                    )
                )

            updated = sum(1 for a in assessments if a.health is PodHealth.UPDATED_READY)
            if updated == len(assessments) and updated == target.replicas:
                self._console.success(f"all {updated} pod(s) updated and ready")
                return Ok(RolloutReport(workload=target, iterations=iteration, pods=assessments))

            if iteration < settings.max_iterations:
                sleep(settings.interval_seconds)

        return Err(
            RolloutError(
                kind="timeout",
                message=(
                    f"rollout of {name} did not converge after {settings.max_iterations} polls "
                    f"(~{settings.timeout_seconds}s)"
                ),
            )
        )

    def undo(self, namespace: str, name: str) -> Result[RolloutReport, RolloutError]:
        """Roll the Deployment back one revision and watch the result."""
        self._console.print(f"kubectl rollout undo deployment/{name} -n {namespace}", Style.DIM)
        undone = self._cluster.rollout_undo(namespace, name)
        if isinstance(undone, Err):
            return Err(RolloutError(kind="undo_failed", message=str(undone.error)))
        self._console.success(f"rollback of deployment/{name} initiated")
        return self.watch(namespace, name)

    def _assess(
        self, pod: PodStatus, history: dict[str, PodStateHistory], expected_tag: str
    ) -> PodAssessment:
        entry = update_history(history, pod)
        return PodAssessment(
            pod=pod,
            health=classify(pod, entry, expected_tag, self.settings),
            iterations_in_state=entry.iterations_in_state,
        )

    def _print_progress(self, assessments: tuple[PodAssessment, ...]) -> None:
        self._console.print(
            f"{datetime.now().strftime('%H:%M:%S')} - rollout progress (pods: {len(assessments)})",
            Style.BOLD,
        )
        for a in assessments:
            pod = a.pod
            parts = [f"image: {pod.image_tag}"]
            if pod.container is not None:
                parts.append(f"state: {pod.container.state}")
                if pod.container.reason:
                    parts.append(f"reason: {pod.container.reason}")
                if pod.container.restart_count:
                    parts.append(f"restarts: {pod.container.restart_count}")
            else:
                parts.append(f"phase: {pod.phase}")
            if a.health is PodHealth.STUCK:
                stuck_for = a.iterations_in_state * self.settings.interval_seconds
                parts.append(f"STUCK ({stuck_for}s)")
            self._console.print(
                f"  {a.health.value:<18} {pod.name} | {' | '.join(parts)}",
                _HEALTH_STYLE[a.health],
            )

    def _print_diagnostics(self, namespace: str, problems: tuple[PodAssessment, ...]) -> None:
        self._console.error("problems detected, collecting diagnostics")
        for a in problems:
            pod = a.pod
            self._console.header(f"diagnostics for {pod.name}: {a.health.value}")
            if pod.container is not None:
                self._console.print(f"container state: {pod.container.state}", Style.ERROR)
                if pod.container.reason:
                    self._console.print(f"reason: {pod.container.reason}", Style.ERROR)
                if pod.container.message:
                    self._console.print(f"message: {pod.container.message}", Style.ERROR)
                self._console.print(
                    f"restart count: {pod.container.restart_count}", Style.ERROR
                )

            match self._cluster.pod_events(namespace, pod.name):
                case Ok(events) if events:
                    self._console.print("recent events:", Style.BOLD)
                    for line in list(reversed(events))[: self.settings.event_tail]:
                        self._console.print(f"  {line}", Style.DIM)
                case Ok(_):
                    pass
                case Err(e):
                    self._console.warning(f"failed to get events: {e.message}")

            match self._cluster.pod_logs(namespace, pod.name, self.settings.log_tail):
                case Ok(logs) if logs.strip():
                    self._console.print(
                        f"recent logs (last {self.settings.log_tail} lines):", Style.BOLD
                    )
                    for line in logs.splitlines()[-self.settings.log_tail :]:
                        self._console.print(f"  {line}", Style.DIM)
                case Ok(_):
                    pass
                case Err(e):
                    self._console.warning(f"failed to get logs: {e.message}")
