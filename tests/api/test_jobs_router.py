"""
Tests for the jobs and engine routers.

The app lifespan starts a real engine over a temporary database; the
execution collaborator is replaced with the fake runner.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from job_engine.scheduler import CommandResult
from job_engine.scheduler.entities import to_iso, utc_now

from tests.helpers import wait_for_run_status


@pytest.fixture
def client(engine_client: TestClient) -> TestClient:
    """Create test client with the engine running inside the app lifespan."""
    return engine_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestSubmit:
    """Tests for POST /jobs."""

    def test_immediate_job_runs(self, client):
        response = client.post(
            "/jobs", json={"job_name": "t1", "command": "echo", "args": "hi"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["job"]["name"] == "t1"
        assert data["job"]["execution_type"] == "IMMEDIATE"
        assert data["run"]["job_id"] == data["job"]["job_id"]
        assert data["run"]["status"] in ("PENDING", "RUNNING", "SUCCESS")

        run = wait_for_run_status(client, data["run"]["run_id"], "SUCCESS")
        assert run["exit_code"] == 0
        assert run["end_time"].endswith("Z")
        assert run["duration_seconds"] is not None

    def test_scheduled_job_starts_scheduled(self, client):
        when = utc_now() + timedelta(hours=1)

        response = client.post(
            "/jobs",
            json={
                "job_name": "later",
                "command": "echo",
                "execution_type": "SCHEDULED",
                "scheduled_time": to_iso(when),
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["run"]["status"] == "SCHEDULED"
        assert data["run"]["start_time"] == to_iso(when)
        assert data["job"]["scheduled_time"] == to_iso(when)

    def test_past_schedule_rejected(self, client):
        response = client.post(
            "/jobs",
            json={
                "job_name": "late",
                "command": "echo",
                "execution_type": "SCHEDULED",
                "scheduled_time": "2020-01-01T00:00:00Z",
            },
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Scheduled time cannot be in the past."
        assert client.get("/jobs/runs").json()["total"] == 0

    def test_scheduled_without_time_rejected(self, client):
        response = client.post(
            "/jobs",
            json={"job_name": "x", "command": "echo", "execution_type": "SCHEDULED"},
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Please select a valid scheduled time."

    def test_blank_name_rejected(self, client):
        response = client.post("/jobs", json={"job_name": "   ", "command": "echo"})

        assert response.status_code == 422
        assert response.json()["detail"] == "Job name is required."

    @pytest.mark.parametrize(
        "payload",
        [
            {"job_name": "", "command": "echo"},
            {"job_name": "t1"},
            {"job_name": "t1", "command": "echo", "execution_type": "HOURLY"},
        ],
    )
    def test_invalid_payload(self, client, payload):
        response = client.post("/jobs", json=payload)
        assert response.status_code == 422


class TestRuns:
    """Tests for GET /jobs/runs and GET /jobs/runs/{run_id}/log."""

    def test_list_newest_first(self, client):
        ids = [
            client.post("/jobs", json={"job_name": f"t{i}", "command": "echo"}).json()["run"]["run_id"]
            for i in range(3)
        ]

        data = client.get("/jobs/runs").json()
        assert data["total"] == 3
        assert [r["run_id"] for r in data["runs"]] == ids[::-1]

        limited = client.get("/jobs/runs", params={"limit": 1}).json()
        assert [r["run_id"] for r in limited["runs"]] == [ids[-1]]
        assert limited["total"] == 3

    def test_limit_out_of_range(self, client):
        assert client.get("/jobs/runs", params={"limit": 0}).status_code == 422

    def test_view_log(self, client, fake_runner):
        fake_runner.set_result("ls", CommandResult(stdout="", stderr="ls: no such file", exit_code=2))
        run_id = client.post(
            "/jobs", json={"job_name": "t1", "command": "ls", "args": "/missing"}
        ).json()["run"]["run_id"]
        wait_for_run_status(client, run_id, "FAILED")

        response = client.get(f"/jobs/runs/{run_id}/log")

        assert response.status_code == 200
        data = response.json()
        assert data["command_line"] == "ls /missing"
        assert data["stderr"] == "ls: no such file"
        assert data["exit_code"] == 2
        assert data["run"]["job_name"] == "t1"

    def test_unknown_run(self, client):
        assert client.get("/jobs/runs/run-missing").status_code == 404
        assert client.get("/jobs/runs/run-missing/log").status_code == 404


class TestJobs:
    def test_get_job(self, client):
        job_id = client.post(
            "/jobs", json={"job_name": "t1", "command": "echo", "args": "a b"}
        ).json()["job"]["job_id"]

        response = client.get(f"/jobs/{job_id}")

        assert response.status_code == 200
        assert response.json()["args"] == "a b"

    def test_unknown_job(self, client):
        assert client.get("/jobs/job-missing").status_code == 404


class TestEngineStatus:
    def test_status(self, client):
        response = client.get("/engine/status")

        assert response.status_code == 200
        data = response.json()
        assert data["dispatcher_state"] == "RUNNING"
        assert data["is_running"] is True
        assert data["concurrency_limit"] == 2
        assert data["timeout_ms"] == 500
        assert set(data["status_counts"]) == {
            "SCHEDULED",
            "PENDING",
            "RUNNING",
            "SUCCESS",
            "FAILED",
            "TIMEOUT",
            "KILLED",
        }
