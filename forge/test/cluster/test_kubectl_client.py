from __future__ import annotations

import json
from pathlib import Path

import pytest

from forge.cluster.client import KubectlClient
from forge.core.result import Err, Ok, Result
from forge.platform.process import ProcessError


class FakeKubectl:
    """Replaces run_process; answers by the kubectl verb and resource."""

    def __init__(self, responses: dict[tuple[str, ...], Result[str, ProcessError]]) -> None:
        self.responses = responses
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
        input_text: str | None = None,
    ) -> Result[str, ProcessError]:
        self.calls.append(cmd)
        self.inputs.append(input_text)
        for prefix, response in self.responses.items():
            if tuple(cmd[1 : 1 + len(prefix)]) == prefix:
                return response
        return Err(ProcessError(tuple(cmd), 1, "", "Error from server (NotFound)"))


def _install(monkeypatch: pytest.MonkeyPatch, fake: FakeKubectl) -> None:
    monkeypatch.setattr("forge.cluster.client.run_process", fake)


def test_get_workload_falls_back_to_statefulset(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    sts = {
        "metadata": {"name": "db"},
        "spec": {"replicas": 2, "template": {"spec": {"containers": [{"image": "pg:16"}]}}},
    }
    fake = FakeKubectl({("get", "statefulset", "db"): Ok(json.dumps(sts))})
    _install(monkeypatch, fake)

    result = KubectlClient(tmp_path, kubectl="kubectl").get_workload("shop-staging", "db")

    assert isinstance(result, Ok)
    assert result.value.kind == "statefulset"
    assert result.value.replicas == 2
    assert [c[2] for c in fake.calls] == ["deployment", "statefulset"]


def test_get_workload_not_found(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, FakeKubectl({}))

    result = KubectlClient(tmp_path, kubectl="kubectl").get_workload("shop-staging", "api")

    assert isinstance(result, Err)
    assert "not found in namespace shop-staging" in result.error.message


def test_list_pods_uses_selector(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeKubectl({("get", "pods"): Ok(json.dumps({"items": []}))})
    _install(monkeypatch, fake)

    result = KubectlClient(tmp_path, kubectl="kubectl").list_pods("shop-staging", "app=api")

    assert result == Ok([])
    assert fake.calls[0] == "kubectl get pods -n shop-staging -l app=api -o json".split()


def test_invalid_json(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, FakeKubectl({("get", "job"): Ok("not json")}))

    result = KubectlClient(tmp_path, kubectl="kubectl").job_state("shop-staging", "api-migration")

    assert isinstance(result, Err)
    assert "invalid JSON" in result.error.message


def test_apply_pipes_manifest(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeKubectl({("apply",): Ok("job.batch/api-migration created")})
    _install(monkeypatch, fake)
    manifest: dict[str, object] = {"kind": "Job", "metadata": {"name": "api-migration"}}

    result = KubectlClient(tmp_path, kubectl="kubectl").apply(manifest)

    assert result == Ok(None)
    assert fake.calls[0] == ["kubectl", "apply", "-f", "-"]
    assert json.loads(fake.inputs[0] or "") == manifest


def test_delete_job_ignores_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeKubectl({("delete", "job"): Ok("")})
    _install(monkeypatch, fake)

    result = KubectlClient(tmp_path, kubectl="kubectl").delete_job("ns", "api-migration")

    assert result == Ok(None)
    assert "--ignore-not-found" in fake.calls[0]


def test_error_detail_from_stderr(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, FakeKubectl({}))

    result = KubectlClient(tmp_path, kubectl="kubectl").rollout_undo("ns", "api")

    assert isinstance(result, Err)
    assert result.error.operation == "rollout undo"
    assert str(result.error) == (
        "kubectl rollout undo deployment/api: Error from server (NotFound)"
    )
