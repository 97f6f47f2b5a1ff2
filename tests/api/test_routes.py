"""HTTP surface: webhook, training read/sync/submit, profile."""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from visiona.api.deps import get_training_provider
from visiona.db.session import get_db
from visiona.main import app
from visiona.models.user import User
from visiona.schemas.training import ProviderPayload
from visiona.training.errors import ProviderUnavailable
from visiona.training.provider import ReplicateTrainingClient

HEADERS = {"X-User-Id": "u1"}


@pytest.fixture
def provider():
    return MagicMock(spec=ReplicateTrainingClient)


@pytest.fixture
def client(db, provider):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_training_provider] = lambda: provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestWebhook:
    def test_success_delivery(self, client, make_job):
        make_job("T1", trigger_word="")
        body = {"id": "T1", "status": "succeeded", "output": {"version": "v9", "trigger_word": "zeta"}}

        response = client.post("/webhooks/replicate/completed", content=json.dumps(body))

        assert response.status_code == 200
        assert response.json() == {"success": True, "id": "T1", "status": "succeeded", "status_changed": True}

        again = client.post("/webhooks/replicate/completed", content=json.dumps(body))
        assert again.status_code == 200
        assert again.json()["status_changed"] is False

    def test_missing_id_is_400(self, client):
        response = client.post("/webhooks/replicate/completed", json={"status": "succeeded"})
        assert response.status_code == 400

    def test_unknown_job_is_404(self, client):
        response = client.post("/webhooks/replicate/completed", json={"id": "nope", "status": "failed"})
        assert response.status_code == 404


class TestTrainings:
    def test_requires_user(self, client, make_job):
        make_job("T1")
        assert client.get("/trainings/T1").status_code == 401

    def test_other_users_job_is_404(self, client, make_job):
        make_job("T1", user_id="someone-else")
        assert client.get("/trainings/T1", headers=HEADERS).status_code == 404

    def test_fresh_job_read_does_not_poll(self, client, make_job, provider):
        make_job("T1", updated_at=datetime.now(timezone.utc))

        response = client.get("/trainings/T1", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        provider.get_training.assert_not_called()

    def test_stale_job_read_polls_provider(self, client, make_job, provider):
        make_job("T1", trigger_word="zeta", updated_at=datetime.now(timezone.utc) - timedelta(hours=2))
        provider.get_training.return_value = ProviderPayload(id="T1", status="succeeded", output={"version": "v9"})

        response = client.get("/trainings/T1", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "succeeded"
        assert response.json()["version_id"] == "v9"

    def test_stale_read_survives_provider_outage(self, client, make_job, provider):
        make_job("T1", updated_at=datetime.now(timezone.utc) - timedelta(hours=2))
        provider.get_training.side_effect = ProviderUnavailable("timeout")

        response = client.get("/trainings/T1", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "processing"

    def test_sync_reports_change(self, client, make_job, provider):
        make_job("T1", trigger_word="zeta")
        provider.get_training.return_value = ProviderPayload(id="T1", status="failed", error="oom")

        response = client.post("/trainings/T1/sync", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "failed"
        assert data["previous_status"] == "processing"
        assert data["status_changed"] is True

    def test_sync_provider_outage_is_502(self, client, make_job, provider):
        make_job("T1")
        provider.get_training.side_effect = ProviderUnavailable("timeout")

        assert client.post("/trainings/T1/sync", headers=HEADERS).status_code == 502

    def test_submit_creates_processing_job(self, client, db, provider):
        provider.create_training.return_value = ProviderPayload(id="R123", status="starting")
        body = {"name": "My Face", "trigger_word": "zeta", "images_url": "https://storage/zip"}

        response = client.post("/trainings", json=body, headers=HEADERS)

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "R123"
        assert data["status"] == "processing"
        assert data["trigger_word"] == "zeta"
        provider.ensure_destination_model.assert_called_once()
        kwargs = provider.create_training.call_args.kwargs
        assert kwargs["destination"].endswith("/my-face")
        assert kwargs["webhook_url"].endswith("/webhooks/replicate/completed")

    def test_submit_over_quota_is_403(self, client, db, make_job, provider):
        for i in range(5):
            make_job(f"T{i}")

        body = {"name": "Sixth", "trigger_word": "zeta", "images_url": "https://storage/zip"}
        response = client.post("/trainings", json=body, headers=HEADERS)

        assert response.status_code == 403
        provider.create_training.assert_not_called()


def test_profile_quota(client, db, make_job):
    db.add(User(id="u1", email="u1@example.com", tier="free"))
    db.commit()
    for i in range(5):
        make_job(f"T{i}")

    response = client.get("/user/profile", headers=HEADERS)

    assert response.status_code == 200
    quota = response.json()["quota"]
    assert quota["tier"] == "free"
    assert quota["models"]["remaining"] == 0
    assert quota["generations"]["remaining"] == 20


def test_profile_store_failure_is_500(client, db, monkeypatch):
    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT users", {}, Exception("connection reset"))

    monkeypatch.setattr(db, "query", broken_query)

    response = client.get("/user/profile", headers=HEADERS)

    assert response.status_code == 500


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
