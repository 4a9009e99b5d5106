"""Tests for the HTTP API."""

import uuid
from unittest.mock import patch

from looptrack.auth.jwt import create_access_token
from looptrack.engine.dates import logical_today
from looptrack.errors import StoreUnavailableError

from tests.conftest import MONDAY


def push_body(*changes, last_sync_at=None):
    body = {"changes": list(changes)}
    if last_sync_at:
        body["lastSyncAt"] = last_sync_at
    return body


def task_create(title="Meditate", **data):
    return {"entity": "task", "entityId": str(uuid.uuid4()), "action": "create", "data": {"title": title, **data}}


class TestSyncEndpoints:
    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_push_then_pull(self, test_client):
        create = task_create()
        response = test_client.post("/sync/push", json=push_body(create))
        assert response.status_code == 200
        assert response.json() == {"applied": [create["entityId"]], "conflicts": []}

        pulled = test_client.get("/sync/pull").json()
        assert [t["id"] for t in pulled["tasks"]] == [create["entityId"]]
        assert pulled["tasks"][0]["daysOfWeek"] == [1, 2, 3, 4, 5]
        assert pulled["hasMore"] is False
        assert "syncTimestamp" in pulled

        again = test_client.get("/sync/pull", params={"since": pulled["syncTimestamp"]}).json()
        assert again["tasks"] == []

    def test_push_item_failures_are_200_with_conflicts(self, test_client):
        good = task_create()
        bad = {"entity": "task", "entityId": str(uuid.uuid4()), "action": "update", "data": {"title": "x"}}
        unknown = {"entity": "goal", "entityId": str(uuid.uuid4()), "action": "create"}

        response = test_client.post("/sync/push", json=push_body(good, bad, unknown))
        assert response.status_code == 200
        body = response.json()
        assert body["applied"] == [good["entityId"]]
        assert [c["entityId"] for c in body["conflicts"]] == [bad["entityId"], unknown["entityId"]]
        assert body["conflicts"][0]["clientData"] == {"title": "x"}

    def test_malformed_push_fails_whole_request(self, test_client, db_session, task_repository, test_user_id):
        """A non-UUID entityId is a validation failure: nothing is applied."""
        good = task_create()
        malformed = {"entity": "task", "entityId": "not-a-uuid", "action": "create"}
        response = test_client.post("/sync/push", json=push_body(good, malformed))
        assert response.status_code == 422
        assert task_repository.count_active(test_user_id) == 0

    def test_full_sync(self, test_client, make_task):
        existing = make_task()
        create = task_create()
        response = test_client.post("/sync", json=push_body(create))
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["push"]["applied"] == [create["entityId"]]
        assert existing.id in [t["id"] for t in body["pull"]["tasks"]]
        assert "serverTimestamp" in body

    def test_status(self, test_client, make_task):
        make_task()
        test_client.post("/sync/push", json=push_body())
        body = test_client.get("/sync/status").json()
        assert body["dataCounts"] == {"blocks": 0, "tasks": 1, "taskInstances": 0}
        assert body["lastSyncAt"] is not None

    def test_store_outage_is_503_with_retry_after(self, test_client):
        with patch("looptrack.sync.orchestrator.pull", side_effect=StoreUnavailableError("down")):
            response = test_client.get("/sync/pull")
        assert response.status_code == 503
        assert "Retry-After" in response.headers


class TestInstanceEndpoints:
    def test_complete_and_uncomplete(self, test_client, make_task, test_user):
        task = make_task()
        today = logical_today(test_user).isoformat()

        response = test_client.post(f"/tasks/{task.id}/complete", json={"date": today})
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

        streak = test_client.get("/insights/streak").json()
        assert streak["currentStreak"] == 1

        response = test_client.post(f"/tasks/{task.id}/uncomplete", json={"date": today})
        assert response.json()["status"] == "PENDING"

    def test_complete_without_body_uses_today(self, test_client, make_task, test_user):
        task = make_task()
        response = test_client.post(f"/tasks/{task.id}/complete")
        assert response.status_code == 200
        assert response.json()["date"].startswith(logical_today(test_user).isoformat())

    def test_unknown_task_is_404(self, test_client):
        response = test_client.post(f"/tasks/{uuid.uuid4()}/skip", json={"date": MONDAY.isoformat()})
        assert response.status_code == 404

    def test_notes_and_range(self, test_client, make_task):
        task = make_task()
        response = test_client.patch(f"/tasks/{task.id}/notes", json={"date": MONDAY.isoformat(), "notes": "hi"})
        assert response.status_code == 200
        assert response.json()["notes"] == "hi"

        listed = test_client.get("/task-instances", params={"start": MONDAY.isoformat(), "end": MONDAY.isoformat()})
        assert [i["notes"] for i in listed.json()] == ["hi"]

    def test_reversed_range_is_400(self, test_client):
        response = test_client.get("/task-instances", params={"start": "2024-01-05", "end": "2024-01-01"})
        assert response.status_code == 400


class TestInsightEndpoints:
    def test_daily_calendar_heatmap(self, test_client, make_task):
        task = make_task()
        test_client.post(f"/tasks/{task.id}/complete", json={"date": MONDAY.isoformat()})

        daily = test_client.get("/insights/daily", params={"date": MONDAY.isoformat()}).json()
        assert daily["status"] == "perfect"
        assert daily["percentage"] == 100

        calendar = test_client.get("/insights/calendar", params={"year": 2024, "month": 1}).json()
        assert len(calendar) == 31
        assert calendar[0]["status"] == "perfect"

        heatmap = test_client.get("/insights/heatmap", params={"year": 2024}).json()
        assert len(heatmap) == 366

    def test_summary_and_weekly(self, test_client):
        assert test_client.get("/insights/weekly-averages").json() == []
        summary = test_client.get("/insights/summary").json()
        assert summary["streak"]["currentStreak"] == 0
        assert summary["weeklyAverage"] == 0


class TestAuthentication:
    def test_missing_token_is_401(self, db_session):
        from fastapi.testclient import TestClient
        from looptrack.api.app import app
        from looptrack.database.database import get_db

        app.dependency_overrides[get_db] = lambda: db_session
        try:
            with TestClient(app) as client:
                assert client.get("/sync/status").status_code == 401
                assert client.get("/sync/status", headers={"Authorization": "Bearer nope"}).status_code == 401
        finally:
            app.dependency_overrides.clear()

    def test_valid_token_resolves_user(self, db_session, test_user_id):
        from fastapi.testclient import TestClient
        from looptrack.api.app import app
        from looptrack.database.database import get_db

        app.dependency_overrides[get_db] = lambda: db_session
        try:
            with TestClient(app) as client:
                token = create_access_token(test_user_id)
                response = client.get("/sync/status", headers={"Authorization": f"Bearer {token}"})
                assert response.status_code == 200
        finally:
            app.dependency_overrides.clear()
