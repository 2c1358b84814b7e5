"""Tests for pod classification and the rollout polling loop."""

from __future__ import annotations

import pytest

from forge.cluster.client import ClusterError
from forge.cluster.resources import ContainerState, ContainerStateName, PodStatus, WorkloadInfo
from forge.core.config import RolloutConfig
from forge.core.result import Err, Ok, Result
from forge.output.console import MockConsole
from forge.services.rollout import (
    PodHealth,
    PodStateHistory,
    RolloutMonitor,
    RolloutSettings,
    classify,
    update_history,
)

TAG = "amd64-abc123"
SETTINGS = RolloutSettings(interval_seconds=3, timeout_seconds=30)


def _pod(
    name: str = "api-1",
    *,
    phase: str = "Running",
    ready: bool = True,
    tag: str = TAG,
    state: ContainerStateName = "running",
    reason: str | None = None,
    restarts: int = 0,
) -> PodStatus:
    return PodStatus(
        name=name,
        phase=phase,
        ready=ready,
        image_tag=tag,
        container=ContainerState(state, reason=reason, restart_count=restarts),
    )


class FakeCluster:
    """Returns one scripted pod list per poll, repeating the last one."""

    def __init__(self, polls: list[list[PodStatus]], replicas: int = 1) -> None:
        self.polls = polls
        self.workload = WorkloadInfo("deployment", "api", replicas, TAG)
        self.list_calls = 0
        self.diagnostics: list[str] = []
        self.undone = False
        self.undo_error: ClusterError | None = None

    def get_workload(self, namespace: str, name: str) -> Result[WorkloadInfo, ClusterError]:
        return Ok(self.workload)

    def list_pods(self, namespace: str, selector: str) -> Result[list[PodStatus], ClusterError]:
        assert selector == "app=api"
        index = min(self.list_calls, len(self.polls) - 1)
        self.list_calls += 1
        return Ok(self.polls[index])

    def pod_events(self, namespace: str, pod: str) -> Result[list[str], ClusterError]:
        self.diagnostics.append(f"events:{pod}")
        return Ok(["Warning BackOff restarting failed container"])

    def pod_logs(self, namespace: str, pod: str, tail: int) -> Result[str, ClusterError]:
        self.diagnostics.append(f"logs:{pod}")
        return Ok("panic: missing DATABASE_URL\n")

    def rollout_undo(self, namespace: str, name: str) -> Result[None, ClusterError]:
        if self.undo_error is not None:
            return Err(self.undo_error)
        self.undone = True
        return Ok(None)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr("forge.services.rollout.sleep", recorded.append)
    return recorded


def _monitor(
    cluster: FakeCluster, settings: RolloutSettings = SETTINGS, console: MockConsole | None = None
) -> RolloutMonitor:
    return RolloutMonitor(cluster, console or MockConsole(), settings)  # type: ignore[arg-type]


class TestSettings:
    @pytest.mark.parametrize(
        ("interval", "timeout", "expected"),
        [(3, 600, 200), (5, 3, 1), (0, 20, 20), (10, 0, 1)],
    )
    def test_max_iterations(self, interval: int, timeout: int, expected: int) -> None:
        settings = RolloutSettings(interval_seconds=interval, timeout_seconds=timeout)
        assert settings.max_iterations == expected

    def test_from_config_and_overrides(self) -> None:
        cfg = RolloutConfig(interval_seconds=5, timeout="2m", safe_mode=False)

        settings = RolloutSettings.from_config(cfg).with_overrides(safe_mode=True)

        assert settings.interval_seconds == 5
        assert settings.timeout_seconds == 120
        assert settings.safe_mode is True


class TestHistory:
    def test_same_state_counts_up(self) -> None:
        history: dict[str, PodStateHistory] = {}
        pod = _pod(ready=False, state="waiting", reason="ContainerCreating")

        counts = [update_history(history, pod).iterations_in_state for _ in range(4)]

        assert counts == [1, 2, 3, 4]

    def test_state_change_resets(self) -> None:
        history: dict[str, PodStateHistory] = {}
        waiting = _pod(ready=False, state="waiting", reason="ContainerCreating")
        update_history(history, waiting)
        update_history(history, waiting)

        entry = update_history(history, _pod())

        assert entry.iterations_in_state == 1
        assert entry.last_state == "running:"


class TestClassify:
    def _history(self, iterations: int = 1) -> PodStateHistory:
        return PodStateHistory("waiting:x", "x", iterations_in_state=iterations)

    @pytest.mark.parametrize("reason", ["CrashLoopBackOff", "ImagePullBackOff", "ErrImagePull"])
    def test_bad_reasons(self, reason: str) -> None:
        pod = _pod(ready=False, state="waiting", reason=reason, restarts=5)
        assert classify(pod, self._history(), TAG, SETTINGS) is PodHealth.BAD

    def test_excessive_restarts_even_when_ready(self) -> None:
        pod = _pod(restarts=3)
        assert classify(pod, self._history(), TAG, SETTINGS) is PodHealth.EXCESSIVE_RESTARTS

    def test_below_restart_threshold(self) -> None:
        pod = _pod(restarts=2)
        assert classify(pod, self._history(), TAG, SETTINGS) is PodHealth.UPDATED_READY

    def test_stuck(self) -> None:
        pod = _pod(ready=False, state="waiting", reason="ContainerCreating")
        assert classify(pod, self._history(10), TAG, SETTINGS) is PodHealth.STUCK
        assert classify(pod, self._history(9), TAG, SETTINGS) is PodHealth.CONVERGING

    def test_succeeded_is_never_stuck(self) -> None:
        pod = _pod(phase="Succeeded", ready=False, state="terminated", reason="Completed")
        assert classify(pod, self._history(50), TAG, SETTINGS) is PodHealth.CONVERGING

    def test_old_image_is_converging(self) -> None:
        pod = _pod(tag="amd64-old")
        assert classify(pod, self._history(), TAG, SETTINGS) is PodHealth.CONVERGING


class TestWatch:
    def test_converges(self, sleeps: list[float]) -> None:
        old = _pod("api-old", tag="amd64-old")
        starting = _pod("api-new", ready=False, state="waiting", reason="ContainerCreating")
        cluster = FakeCluster([[old, starting], [old, _pod("api-new")], [_pod("api-new")]])

        result = _monitor(cluster).watch("shop-staging", "api")

        assert isinstance(result, Ok)
        assert result.value.iterations == 3
        assert sleeps == [3, 3]

    def test_ready_count_must_match_replicas(self, sleeps: list[float]) -> None:
        cluster = FakeCluster([[_pod("api-1")]], replicas=2)

        result = _monitor(cluster).watch("shop-staging", "api")

        assert isinstance(result, Err)
        assert result.error.kind == "timeout"
        assert cluster.list_calls == SETTINGS.max_iterations
        assert len(sleeps) == SETTINGS.max_iterations - 1

    def test_safe_mode_aborts_with_diagnostics(self, sleeps: list[float]) -> None:
        crashing = _pod(ready=False, state="waiting", reason="CrashLoopBackOff", restarts=4)
        cluster = FakeCluster([[crashing]])
        console = MockConsole()
        settings = SETTINGS.with_overrides(safe_mode=True)

        result = _monitor(cluster, settings, console).watch("shop-staging", "api")

        assert isinstance(result, Err)
        assert result.error.kind == "unhealthy"
        assert [p.health for p in result.error.problems] == [PodHealth.BAD]
        assert cluster.list_calls == 1
        assert cluster.diagnostics == ["events:api-1", "logs:api-1"]
        assert console.find("DATABASE_URL")
        assert sleeps == []

    def test_normal_mode_keeps_polling_through_problems(self, sleeps: list[float]) -> None:
        crashing = _pod(ready=False, state="waiting", reason="CrashLoopBackOff")
        cluster = FakeCluster([[crashing], [_pod()]])

        result = _monitor(cluster).watch("shop-staging", "api")

        assert isinstance(result, Ok)
        assert cluster.diagnostics == []

    def test_undo_then_watch(self, sleeps: list[float]) -> None:
        cluster = FakeCluster([[_pod()]])

        result = _monitor(cluster).undo("shop-staging", "api")

        assert isinstance(result, Ok)
        assert cluster.undone

    def test_undo_failure(self, sleeps: list[float]) -> None:
        cluster = FakeCluster([[_pod()]])
        cluster.undo_error = ClusterError("rollout", "deployment/api", "no revision")

        result = _monitor(cluster).undo("shop-staging", "api")

        assert isinstance(result, Err)
        assert result.error.kind == "undo_failed"
        assert cluster.list_calls == 0
