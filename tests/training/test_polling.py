"""Polling reconciler and the read-path staleness hook."""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from visiona.core.config import Settings
from visiona.models.training_job import TrainingJob
from visiona.schemas.training import ProviderPayload
from visiona.training.errors import ProviderUnavailable, TrainingJobNotFound
from visiona.training.polling import PollingReconciler
from visiona.training.provider import ReplicateTrainingClient
from visiona.training.transition import apply_provider_update
from visiona.training.webhook import WebhookReconciler

NOW = datetime(2026, 1, 1, 14, 0, tzinfo=timezone.utc)
STALE_AT = NOW - timedelta(minutes=61)
FRESH_AT = NOW - timedelta(minutes=59)


def _provider(payload: ProviderPayload | None = None, error: Exception | None = None) -> MagicMock:
    provider = MagicMock(spec=ReplicateTrainingClient)
    if error is not None:
        provider.get_training.side_effect = error
    else:
        provider.get_training.return_value = payload
    return provider


def test_reconcile_applies_provider_status(db, make_job, snapshot):
    make_job("T1", trigger_word="zeta")
    provider = _provider(ProviderPayload(id="T1", status="failed", error="oom"))

    result = PollingReconciler(db, provider).reconcile("T1", now=NOW)

    provider.get_training.assert_called_once_with("T1")
    assert result.status == "failed"
    assert result.status_changed is True
    assert snapshot("T1")["error_message"] == "oom"


def test_poll_failure_after_success_does_not_regress(db, make_job, snapshot):
    make_job("T1", trigger_word="")
    apply_provider_update(
        db,
        ProviderPayload(id="T1", status="succeeded", output={"version": "v9", "trigger_word": "zeta"}),
        now=NOW,
    )
    before = snapshot("T1")
    provider = _provider(ProviderPayload(id="T1", status="failed", error="oom"))

    result = PollingReconciler(db, provider).reconcile("T1", now=NOW + timedelta(hours=2))

    assert result.status == "succeeded"
    assert snapshot("T1") == before


def test_terminal_job_with_trigger_word_skips_network(db, make_job):
    make_job("T1", status="failed", trigger_word="zeta", error_message="oom")
    provider = _provider(ProviderPayload(id="T1", status="succeeded"))

    result = PollingReconciler(db, provider).reconcile("T1", now=NOW)

    provider.get_training.assert_not_called()
    assert result.status == "failed"
    assert result.status_changed is False


def test_terminal_job_missing_trigger_word_is_backfilled(db, make_job, snapshot):
    make_job("T1", status="succeeded", trigger_word="", version_id="v9", output_data={"version": "v9"}, trained_at=NOW)
    provider = _provider(ProviderPayload(id="T1", status="succeeded", output={"version": "v9", "trigger_word": "zeta"}))

    result = PollingReconciler(db, provider).reconcile("T1", now=NOW)

    assert result.backfilled is True
    assert snapshot("T1")["trigger_word"] == "zeta"


def test_provider_unavailable_leaves_record_unchanged(db, make_job, snapshot):
    make_job("T1", updated_at=STALE_AT)
    before = snapshot("T1")
    provider = _provider(error=ProviderUnavailable("timeout"))

    with pytest.raises(ProviderUnavailable):
        PollingReconciler(db, provider).reconcile("T1", now=NOW)

    assert snapshot("T1") == before


def test_response_id_cannot_redirect_write(db, make_job, snapshot):
    make_job("T1")
    make_job("OTHER")
    provider = _provider(ProviderPayload(id="OTHER", status="failed", error="oom"))

    PollingReconciler(db, provider).reconcile("T1", now=NOW)

    assert snapshot("T1")["status"] == "failed"
    assert snapshot("OTHER")["status"] == "processing"


def test_unknown_job_not_found(db):
    provider = _provider(ProviderPayload(id="nope", status="succeeded"))
    with pytest.raises(TrainingJobNotFound):
        PollingReconciler(db, provider).reconcile("nope", now=NOW)
    provider.get_training.assert_not_called()


class TestRefreshIfStale:
    def test_fresh_job_is_returned_without_polling(self, db, make_job):
        job = make_job("T1", updated_at=FRESH_AT)
        provider = _provider(ProviderPayload(id="T1", status="succeeded"))

        returned = PollingReconciler(db, provider).refresh_if_stale(job, now=NOW)

        provider.get_training.assert_not_called()
        assert returned.status == "processing"

    def test_stale_job_is_reconciled(self, db, make_job):
        job = make_job("T1", updated_at=STALE_AT, trigger_word="zeta")
        provider = _provider(ProviderPayload(id="T1", status="succeeded", output={"version": "v9"}))

        returned = PollingReconciler(db, provider).refresh_if_stale(job, now=NOW)

        provider.get_training.assert_called_once_with("T1")
        assert returned.status == "succeeded"
        assert returned.version_id == "v9"

    def test_provider_outage_returns_last_known_status(self, db, make_job):
        job = make_job("T1", updated_at=STALE_AT)
        provider = _provider(error=ProviderUnavailable("breaker open"))

        returned = PollingReconciler(db, provider).refresh_if_stale(job, now=NOW)

        assert returned.status == "processing"


@pytest.mark.parametrize(
    "payload",
    [
        {"id": "T1", "status": "succeeded", "output": {"version": "v9", "trigger_word": "zeta"}},
        {"id": "T1", "status": "failed", "error": "oom"},
        {"id": "T1", "status": "starting"},
        {"id": "T1", "status": "succeeded", "output": {"weights": "https://w.tar"}},
    ],
)
def test_webhook_and_poll_produce_identical_records(db, make_job, snapshot, payload):
    make_job("T1", trigger_word="")
    WebhookReconciler(db, Settings()).handle(json.dumps(payload).encode(), {}, now=NOW)
    via_webhook = snapshot("T1")

    db.query(TrainingJob).filter(TrainingJob.id == "T1").delete()
    db.commit()

    make_job("T1", trigger_word="")
    provider = _provider(ProviderPayload.model_validate(payload))
    PollingReconciler(db, provider).reconcile("T1", now=NOW)
    via_poll = snapshot("T1")

    assert via_webhook == via_poll
