"""Tests for the per-service artifact metadata store."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from forge.core.result import Err, Ok, Result
from forge.services.artifacts import ArtifactError, ArtifactInfo, ArtifactStore, utc_timestamp

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "deploy")


def _seed(store: ArtifactStore, service: str, tag: str, previous: str = "") -> None:
    info = ArtifactInfo(tag=tag, built_at="2026-02-01T00:00:00Z", previous_tag=previous)
    assert isinstance(store.write(service, info), Ok)


class ReadOnlyFor(ArtifactStore):
    """Store whose writes for one service fail."""

    def __init__(self, directory: Path, service: str) -> None:
        super().__init__(directory)
        self.failing = service

    def write(self, service: str, info: ArtifactInfo) -> Result[Path, ArtifactError]:
        if service == self.failing:
            return Err(ArtifactError(kind="io", service=service, message="read-only file system"))
        return super().write(service, info)


class TestReadWrite:
    def test_document_format(self, store: ArtifactStore) -> None:
        _seed(store, "api", "amd64-abc123", "amd64-def456")

        text = store.path_for("api").read_text(encoding="utf-8")

        assert store.path_for("api").name == "api.artifact.json"
        assert text.endswith("}\n")
        assert json.loads(text) == {
            "tag": "amd64-abc123",
            "built_at": "2026-02-01T00:00:00Z",
            "previous_tag": "amd64-def456",
        }

    def test_missing(self, store: ArtifactStore) -> None:
        result = store.read("api")
        assert isinstance(result, Err)
        assert result.error.kind == "missing"

    def test_invalid_json(self, store: ArtifactStore) -> None:
        store.directory.mkdir(parents=True)
        store.path_for("api").write_text("{", encoding="utf-8")

        result = store.read("api")

        assert isinstance(result, Err)
        assert result.error.kind == "invalid"

    def test_tag_required(self, store: ArtifactStore) -> None:
        store.directory.mkdir(parents=True)
        store.path_for("api").write_text('{"previous_tag": "v1"}', encoding="utf-8")

        result = store.read("api")

        assert isinstance(result, Err)
        assert result.error.kind == "invalid"

    def test_missing_previous_reads_as_empty(self, store: ArtifactStore) -> None:
        store.directory.mkdir(parents=True)
        store.path_for("api").write_text('{"tag": "v1"}', encoding="utf-8")

        result = store.read("api")

        assert result == Ok(ArtifactInfo(tag="v1", built_at="", previous_tag=""))
        assert not result.value.has_previous

    def test_utc_timestamp(self) -> None:
        assert utc_timestamp(NOW) == "2026-03-01T12:00:00Z"


class TestRecordPush:
    def test_first_push_has_no_previous(self, store: ArtifactStore) -> None:
        result = store.record_push("api", "amd64-abc123", now=NOW)

        assert result == Ok(ArtifactInfo("amd64-abc123", "2026-03-01T12:00:00Z", ""))

    def test_current_becomes_previous(self, store: ArtifactStore) -> None:
        _seed(store, "api", "amd64-abc123", "amd64-000000")

        result = store.record_push("api", "amd64-fff999", now=NOW)

        assert isinstance(result, Ok)
        assert result.value.tag == "amd64-fff999"
        assert result.value.previous_tag == "amd64-abc123"
        assert store.read("api") == result

    def test_repush_keeps_previous(self, store: ArtifactStore) -> None:
        _seed(store, "api", "amd64-abc123", "amd64-def456")

        result = store.record_push("api", "amd64-abc123", now=NOW)

        assert isinstance(result, Ok)
        assert result.value.previous_tag == "amd64-def456"

    def test_corrupt_metadata_is_not_overwritten(self, store: ArtifactStore) -> None:
        store.directory.mkdir(parents=True)
        store.path_for("api").write_text("[]", encoding="utf-8")

        result = store.record_push("api", "v2")

        assert isinstance(result, Err)
        assert store.path_for("api").read_text(encoding="utf-8") == "[]"


class TestSwap:
    def test_swap(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v2", "v1")

        result = store.swap("api", "v2", now=NOW)

        assert result == Ok(ArtifactInfo("v1", "2026-03-01T12:00:00Z", previous_tag="v2"))
        assert store.read("api") == result

    def test_two_swaps_restore_original_tags(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v2", "v1")

        assert isinstance(store.swap("api", "v2"), Ok)
        second = store.swap("api", "v1")

        assert isinstance(second, Ok)
        assert second.value.tag == "v2"
        assert second.value.previous_tag == "v1"

    def test_concurrent_modification(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v3", "v2")

        result = store.swap("api", "v2")

        assert isinstance(result, Err)
        assert result.error.kind == "concurrent_modification"
        # Nothing written.
        read = store.read("api")
        assert isinstance(read, Ok)
        assert read.value.tag == "v3"

    def test_no_previous(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v1")

        result = store.swap("api", "v1")

        assert isinstance(result, Err)
        assert result.error.kind == "no_previous_tag"


class TestSwapAll:
    def test_swaps_every_service(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v2", "v1")
        _seed(store, "web", "v9", "v8")

        result = store.swap_all({"api": "v2", "web": "v9"}, now=NOW)

        assert result == Ok(
            (
                ArtifactInfo("v1", "2026-03-01T12:00:00Z", previous_tag="v2"),
                ArtifactInfo("v8", "2026-03-01T12:00:00Z", previous_tag="v9"),
            )
        )

    def test_later_mismatch_writes_nothing(self, store: ArtifactStore) -> None:
        _seed(store, "api", "v2", "v1")
        _seed(store, "web", "v10", "v9")
        before = store.path_for("api").read_text(encoding="utf-8")

        result = store.swap_all({"api": "v2", "web": "v9"})

        assert isinstance(result, Err)
        assert result.error.kind == "concurrent_modification"
        assert result.error.service == "web"
        assert store.path_for("api").read_text(encoding="utf-8") == before

    def test_failed_write_restores_earlier_documents(self, tmp_path: Path) -> None:
        plain = ArtifactStore(tmp_path / "deploy")
        _seed(plain, "api", "v2", "v1")
        _seed(plain, "web", "v9", "v8")
        store = ReadOnlyFor(tmp_path / "deploy", "web")

        result = store.swap_all({"api": "v2", "web": "v9"})

        assert isinstance(result, Err)
        assert result.error.kind == "io"
        assert plain.read("api") == Ok(ArtifactInfo("v2", "2026-02-01T00:00:00Z", "v1"))
