from __future__ import annotations

from pathlib import Path

import pytest

from forge.core.repo import REPO_ROOT_ENV, RepoRoot, detect_repo_root
from forge.core.result import Err, Ok


def test_detects_nearest_ancestor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(REPO_ROOT_ENV, raising=False)
    (tmp_path / "forge.toml").write_text("[product]\nname = 'x'\n", encoding="utf-8")
    nested = tmp_path / "services" / "api"
    nested.mkdir(parents=True)

    result = detect_repo_root(nested)

    assert isinstance(result, Ok)
    assert result.value.root == tmp_path.resolve()


def test_missing_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(REPO_ROOT_ENV, raising=False)
    result = detect_repo_root(tmp_path)

    assert isinstance(result, Err)
    assert "forge.toml" in result.error.message


def test_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "forge.toml").write_text("", encoding="utf-8")
    monkeypatch.setenv(REPO_ROOT_ENV, str(tmp_path))

    result = detect_repo_root(Path("/"))

    assert isinstance(result, Ok)
    assert result.value.root == tmp_path.resolve()


def test_env_override_without_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(REPO_ROOT_ENV, str(tmp_path))

    result = detect_repo_root()

    assert isinstance(result, Err)
    assert REPO_ROOT_ENV in result.error.message


def test_resolve(tmp_path: Path) -> None:
    repo = RepoRoot(tmp_path)
    assert repo.resolve("k8s/a.yaml") == tmp_path / "k8s" / "a.yaml"
    assert repo.resolve("/abs/a.yaml") == Path("/abs/a.yaml")
    assert repo.deploy_dir == tmp_path / "deploy"
