"""
Replicate trainings API client.
Poll source for the reconciler and the submission path for new trainings.
"""
import logging
import time
from typing import Any

import httpx
import pybreaker
from pydantic import ValidationError

from visiona.core.config import Settings
from visiona.schemas.training import ProviderPayload
from visiona.services.circuit_breaker import get_circuit_breaker
from visiona.training.errors import ProviderUnavailable
from visiona.utils.metrics import provider_request_duration_seconds, provider_requests_total

logger = logging.getLogger(__name__)


class ReplicateTrainingClient:
    """Thin synchronous client; callers bound duration through the configured timeout."""

    def __init__(
        self,
        api_token: str,
        api_url: str = "https://api.replicate.com/v1",
        timeout: float = 30.0,
        trainer_model: str = "ostris/flux-dev-lora-trainer",
        trainer_version: str = "",
        breaker: pybreaker.CircuitBreaker | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_token = api_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.trainer_model = trainer_model
        self.trainer_version = trainer_version
        self.breaker = breaker
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReplicateTrainingClient":
        return cls(
            api_token=settings.replicate_api_token,
            api_url=settings.replicate_api_url,
            timeout=settings.replicate_timeout,
            trainer_model=settings.replicate_trainer_model,
            trainer_version=settings.replicate_trainer_version,
            breaker=get_circuit_breaker("replicate", exclude=[_is_client_error]),
        )

    def is_available(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _send(self, operation: str, method: str, path: str, json: dict | None = None) -> httpx.Response:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.request(method, f"{self.api_url}{path}", headers=self._headers(), json=json)
        provider_requests_total.labels(operation=operation, status=str(response.status_code)).inc()
        return response

    def _request(self, operation: str, method: str, path: str, json: dict | None = None) -> httpx.Response:
        """Run one call through the breaker; every transport or HTTP failure becomes ProviderUnavailable."""
        if not self.is_available():
            raise ProviderUnavailable("Replicate provider not configured", {"operation": operation})
        start = time.monotonic()
        try:
            if self.breaker is not None:
                response = self.breaker.call(self._send_checked, operation, method, path, json)
            else:
                response = self._send_checked(operation, method, path, json)
        except pybreaker.CircuitBreakerError as e:
            raise ProviderUnavailable("Replicate circuit breaker is open", {"operation": operation}) from e
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(
                f"Replicate returned {e.response.status_code}",
                {"operation": operation, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(
                f"Replicate request failed: {type(e).__name__}",
                {"operation": operation, "error": type(e).__name__},
            ) from e
        finally:
            provider_request_duration_seconds.labels(operation=operation).observe(time.monotonic() - start)
        return response

    def _send_checked(self, operation: str, method: str, path: str, json: dict | None) -> httpx.Response:
        response = self._send(operation, method, path, json)
        if operation == "create_model" and response.status_code == 409:
            return response  # destination already exists
        response.raise_for_status()
        return response

    def _parse(self, operation: str, response: httpx.Response) -> ProviderPayload:
        try:
            return ProviderPayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderUnavailable("Malformed Replicate response", {"operation": operation}) from e

    def get_training(self, training_id: str) -> ProviderPayload:
        """Current provider view of a training: {id, status, output?, error?}."""
        response = self._request("get_training", "GET", f"/trainings/{training_id}")
        return self._parse("get_training", response)

    def ensure_destination_model(self, owner: str, name: str, description: str) -> None:
        """Create the private destination model; an existing one (409) is fine."""
        response = self._request(
            "create_model",
            "POST",
            "/models",
            json={
                "owner": owner,
                "name": name,
                "description": description,
                "visibility": "private",
                "hardware": "cpu",
            },
        )
        if response.status_code == 409:
            logger.info("replicate_destination_exists", extra={"job_id": f"{owner}/{name}"})

    def create_training(self, destination: str, training_input: dict[str, Any], webhook_url: str | None) -> ProviderPayload:
        body: dict[str, Any] = {"destination": destination, "input": training_input}
        if webhook_url:
            body["webhook"] = webhook_url
            body["webhook_events_filter"] = ["completed"]
        response = self._request(
            "create_training",
            "POST",
            f"/models/{self.trainer_model}/versions/{self.trainer_version}/trainings",
            json=body,
        )
        return self._parse("create_training", response)


def _is_client_error(exc: BaseException) -> bool:
    """4xx (except 429) is our fault, not the provider's: it must not trip the breaker."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return 400 <= code < 500 and code != 429
    return False
