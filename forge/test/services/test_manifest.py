from __future__ import annotations

from pathlib import Path

from forge.core.result import Err, Ok
from forge.services.manifest import update_image_tag, update_kustomization

KUSTOMIZATION = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: shop-staging
resources:
  - deployment.yaml
images:
  # web frontend
  - name: ghcr.io/acme/shop/shop-web
    newTag: amd64-111111
  - name: ghcr.io/acme/shop/shop-api
    newName: ghcr.io/acme/shop/shop-api
    newTag: "amd64-abc123"
patches:
  - patch: |
      - op: replace
        path: /spec/replicas
        value: 2
"""

API = "ghcr.io/acme/shop/shop-api"


def test_rewrites_only_matching_entry() -> None:
    result = update_image_tag(KUSTOMIZATION, API, "amd64-def456")

    assert result is not None
    text, change = result
    assert change.old_tag == "amd64-abc123"
    assert change.new_tag == "amd64-def456"
    assert "    newTag: amd64-def456" in text
    assert "    newTag: amd64-111111" in text
    assert "# web frontend" in text
    assert text.endswith("value: 2\n")


def test_no_matching_entry() -> None:
    assert update_image_tag(KUSTOMIZATION, "ghcr.io/acme/shop/shop-worker", "v2") is None


def test_entry_without_new_tag_does_not_steal_next() -> None:
    content = """\
images:
  - name: ghcr.io/acme/shop/shop-api
    newName: other
  - name: ghcr.io/acme/shop/shop-web
    newTag: v1
"""
    assert update_image_tag(content, API, "v2") is None


def test_update_kustomization_writes(tmp_path: Path) -> None:
    path = tmp_path / "kustomization.yaml"
    path.write_text(KUSTOMIZATION, encoding="utf-8")

    result = update_kustomization(path, API, "amd64-def456")

    assert isinstance(result, Ok)
    assert result.value.changed
    assert 'newTag: "amd64-abc123"' not in path.read_text(encoding="utf-8")


def test_update_kustomization_same_tag_leaves_file(tmp_path: Path) -> None:
    path = tmp_path / "kustomization.yaml"
    path.write_text(KUSTOMIZATION, encoding="utf-8")

    result = update_kustomization(path, API, "amd64-abc123")

    assert isinstance(result, Ok)
    assert not result.value.changed
    assert path.read_text(encoding="utf-8") == KUSTOMIZATION


def test_update_kustomization_missing_file(tmp_path: Path) -> None:
    result = update_kustomization(tmp_path / "nope.yaml", API, "v1")

    assert isinstance(result, Err)
    assert "not found" in result.error.message
