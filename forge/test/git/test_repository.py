from __future__ import annotations

from pathlib import Path

import pytest

from forge.core.result import Err, Ok, Result
from forge.git.repository import GitError, Repository
from forge.platform.process import ProcessError


class FakeGit:
    def __init__(self, *, stdout: str = "", fail: str | None = None) -> None:
        self.stdout = stdout
        self.fail = fail
        self.calls: list[list[str]] = []
        self.timeouts: list[float | None] = []

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
        self.timeouts.append(timeout)
        if self.fail is not None:
            return Err(ProcessError(tuple(cmd), 128, "", self.fail))
        return Ok(self.stdout)


def _repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake: FakeGit) -> Repository:
    monkeypatch.setattr("forge.git.repository.run_process", fake)
    return Repository(tmp_path)


def test_head_sha(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGit(stdout="abc1234\n")

    assert _repo(tmp_path, monkeypatch, fake).head_sha() == Ok("abc1234")
    assert fake.calls[0] == ["git", "-C", str(tmp_path), "rev-parse", "--short", "HEAD"]


def test_head_sha_empty(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    result = _repo(tmp_path, monkeypatch, FakeGit(stdout="\n")).head_sha(short=False)

    assert result == Err(GitError(command="rev-parse", message="empty HEAD sha"))


def test_add_nothing_runs_nothing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGit()

    assert _repo(tmp_path, monkeypatch, fake).add([]) == Ok(None)
    assert fake.calls == []


def test_add_and_commit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGit()
    repo = _repo(tmp_path, monkeypatch, fake)
    path = tmp_path / "deploy" / "api.artifact.json"

    assert repo.add([path]) == Ok(None)
    assert repo.commit("chore: rollback shop (api:v1)") == Ok(None)
    assert fake.calls[0][3:] == ["add", "--", str(path)]
    assert fake.calls[1][3:] == ["commit", "-m", "chore: rollback shop (api:v1)"]


def test_push_failure_carries_stderr(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGit(fail="! [rejected] main -> main (fetch first)")

    result = _repo(tmp_path, monkeypatch, fake).push("origin", "main")

    assert isinstance(result, Err)
    assert result.error.command == "push"
    assert "fetch first" in result.error.message
    assert result.error.returncode == 128
    # Network commands get the longer timeout.
    assert fake.timeouts[0] is not None
    assert fake.timeouts[0] > 30
