"""Tests for parsing kubectl JSON documents."""

from __future__ import annotations

from forge.cluster.resources import (
    image_tag,
    parse_events,
    parse_job_state,
    parse_pod,
    parse_pod_list,
    parse_workload,
)


def _pod(
    name: str,
    *,
    phase: str = "Running",
    image: str = "ghcr.io/acme/api:amd64-abc123",
    ready: bool = True,
    state: dict[str, object] | None = None,
    restarts: int = 0,
) -> dict[str, object]:
    return {
        "metadata": {"name": name},
        "spec": {"containers": [{"name": "app", "image": image}]},
        "status": {
            "phase": phase,
            "containerStatuses": [
                {
                    "ready": ready,
                    "restartCount": restarts,
                    "state": state or {"running": {"startedAt": "2026-03-01T12:00:00Z"}},
                }
            ],
        },
    }


class TestImageTag:
    def test_tagged(self) -> None:
        assert image_tag("ghcr.io/acme/api:amd64-abc123") == "amd64-abc123"

    def test_registry_port_is_not_a_tag(self) -> None:
        assert image_tag("registry.local:5000/acme/api") == "unknown"
        assert image_tag("registry.local:5000/acme/api:v2") == "v2"

    def test_digest_suffix_ignored(self) -> None:
        assert image_tag("ghcr.io/acme/api:v1@sha256:deadbeef") == "v1"


class TestParsePod:
    def test_running_pod(self) -> None:
        pod = parse_pod(_pod("api-1"))

        assert pod.name == "api-1"
        assert pod.phase == "Running"
        assert pod.ready is True
        assert pod.image_tag == "amd64-abc123"
        assert pod.container is not None
        assert pod.container.state == "running"
        assert pod.container.message == "Started at 2026-03-01T12:00:00Z"
        assert pod.container.key == "running:"

    def test_waiting_pod(self) -> None:
        pod = parse_pod(
            _pod(
                "api-2",
                phase="Pending",
                ready=False,
                restarts=4,
                state={"waiting": {"reason": "CrashLoopBackOff", "message": "back-off 5m"}},
            )
        )

        assert pod.reason == "CrashLoopBackOff"
        assert pod.restart_count == 4
        assert pod.container is not None
        assert pod.container.key == "waiting:CrashLoopBackOff"

    def test_pod_without_container_status(self) -> None:
        pod = parse_pod({"metadata": {"name": "api-3"}, "status": {"phase": "Pending"}})

        assert pod.container is None
        assert pod.ready is False
        assert pod.image_tag == "unknown"
        assert pod.restart_count == 0

    def test_pod_list_sorted(self) -> None:
        pods = parse_pod_list({"items": [_pod("b"), _pod("a"), "junk"]})
        assert [p.name for p in pods] == ["a", "b"]


class TestParseWorkload:
    def test_deployment(self) -> None:
        obj = {
            "metadata": {"name": "api"},
            "spec": {
                "replicas": 3,
                "template": {"spec": {"containers": [{"image": "ghcr.io/acme/api:v2"}]}},
            },
        }
        info = parse_workload(obj, "deployment")

        assert info is not None
        assert info.replicas == 3
        assert info.image_tag == "v2"

    def test_replicas_default_to_one(self) -> None:
        obj = {"spec": {"template": {"spec": {"containers": [{"image": "x:v1"}]}}}}
        info = parse_workload(obj, "statefulset")
        assert info is not None
        assert info.replicas == 1

    def test_no_container(self) -> None:
        assert parse_workload({"spec": {}}, "deployment") is None


class TestEventsAndJobs:
    def test_events_formatted_and_sorted(self) -> None:
        events = parse_events(
            {
                "items": [
                    {
                        "reason": "BackOff",
                        "message": "Back-off restarting failed container",
                        "lastTimestamp": "2026-03-01T12:05:00Z",
                    },
                    {
                        "reason": "Pulled",
                        "message": "Successfully pulled image ",
                        "lastTimestamp": "2026-03-01T12:01:00Z",
                    },
                    {"reason": "NoTime", "message": "dropped"},
                ]
            }
        )
        assert events == [
            "[12:01:00] Pulled: Successfully pulled image",
            "[12:05:00] BackOff: Back-off restarting failed container",
        ]

    def test_job_states(self) -> None:
        complete = {"status": {"conditions": [{"type": "Complete", "status": "True"}]}}
        failed = {"status": {"conditions": [{"type": "Failed", "status": "True"}]}}
        pending = {"status": {"conditions": [{"type": "Failed", "status": "False"}]}}

        assert parse_job_state(complete) == "complete"
        assert parse_job_state(failed) == "failed"
        assert parse_job_state(pending) == "active"
        assert parse_job_state({}) == "active"
