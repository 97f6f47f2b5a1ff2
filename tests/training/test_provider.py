"""Replicate client against a mocked transport; no network."""
import json

import httpx
import pytest

from visiona.training.errors import ProviderUnavailable
from visiona.training.provider import ReplicateTrainingClient, _is_client_error


def _client(handler, token="r8_test") -> ReplicateTrainingClient:
    return ReplicateTrainingClient(
        api_token=token,
        api_url="https://replicate.test/v1",
        trainer_model="ostris/flux-dev-lora-trainer",
        trainer_version="abc123",
        transport=httpx.MockTransport(handler),
    )


def test_get_training_parses_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": "T1", "status": "succeeded", "output": {"version": "v9"}, "logs": "..."})

    payload = _client(handler).get_training("T1")

    assert seen["url"] == "https://replicate.test/v1/trainings/T1"
    assert seen["auth"] == "Bearer r8_test"
    assert payload.status == "succeeded"
    assert payload.version_id == "v9"


def test_server_error_is_provider_unavailable():
    client = _client(lambda request: httpx.Response(503, json={"detail": "busy"}))
    with pytest.raises(ProviderUnavailable) as exc:
        client.get_training("T1")
    assert exc.value.detail["status_code"] == 503


def test_timeout_is_provider_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderUnavailable):
        _client(handler).get_training("T1")


def test_malformed_body_is_provider_unavailable():
    client = _client(lambda request: httpx.Response(200, content=b"not json"))
    with pytest.raises(ProviderUnavailable):
        client.get_training("T1")


def test_missing_token_is_provider_unavailable():
    client = _client(lambda request: httpx.Response(200, json={}), token="")
    with pytest.raises(ProviderUnavailable):
        client.get_training("T1")


def test_existing_destination_model_is_accepted():
    client = _client(lambda request: httpx.Response(409, json={"detail": "exists"}))
    client.ensure_destination_model("visiona", "my-model", "desc")


def test_create_training_sends_webhook_filter():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "T1", "status": "starting"})

    payload = _client(handler).create_training(
        destination="visiona/my-model",
        training_input={"input_images": "https://zip", "trigger_word": "zeta"},
        webhook_url="https://app.test/webhooks/replicate/completed",
    )

    assert payload.id == "T1"
    assert seen["url"] == "https://replicate.test/v1/models/ostris/flux-dev-lora-trainer/versions/abc123/trainings"
    assert seen["body"]["destination"] == "visiona/my-model"
    assert seen["body"]["webhook_events_filter"] == ["completed"]


def test_client_errors_do_not_trip_breaker():
    request = httpx.Request("GET", "https://replicate.test")
    assert _is_client_error(httpx.HTTPStatusError("x", request=request, response=httpx.Response(404)))
    assert not _is_client_error(httpx.HTTPStatusError("x", request=request, response=httpx.Response(429)))
    assert not _is_client_error(httpx.HTTPStatusError("x", request=request, response=httpx.Response(500)))
