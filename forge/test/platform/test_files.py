from __future__ import annotations

from pathlib import Path

import pytest

from forge.platform.files import atomic_write_text
from forge.platform.tools import tool_path


def test_atomic_write_creates_parents(tmp_path: Path) -> None:
    target = tmp_path / "deploy" / "api.artifact.json"

    atomic_write_text(target, '{"tag": "amd64-abc123"}\n')

    assert target.read_text(encoding="utf-8") == '{"tag": "amd64-abc123"}\n'
    assert [p.name for p in target.parent.iterdir()] == ["api.artifact.json"]


def test_atomic_write_replaces(tmp_path: Path) -> None:
    target = tmp_path / "kustomization.yaml"
    target.write_text("old", encoding="utf-8")

    atomic_write_text(target, "new")

    assert target.read_text(encoding="utf-8") == "new"


def test_tool_path_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SKOPEO_BIN", raising=False)
    assert tool_path("skopeo") == "skopeo"


def test_tool_path_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBECTL_BIN", "/opt/kube/kubectl")
    assert tool_path("kubectl") == "/opt/kube/kubectl"
