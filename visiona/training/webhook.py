"""
Inbound Replicate webhook: validate, check signature policy, hand off to the transition function.

Signature policy: a delivery without signature headers is accepted with a warning,
because for many jobs this is the only notification channel. Set
WEBHOOK_REQUIRE_SIGNATURE=true to reject unsigned deliveries instead.
When a secret is configured, a present but wrong signature is always rejected.
"""
import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy.orm import Session

from visiona.core.config import Settings
from visiona.schemas.training import ProviderPayload
from visiona.training.errors import InvalidPayload, InvalidSignature
from visiona.training.transition import TransitionResult, apply_provider_update
from visiona.utils.metrics import training_webhooks_unsigned_total

logger = logging.getLogger(__name__)

# Replicate signs with the Standard Webhooks scheme
WEBHOOK_ID_HEADER = "webhook-id"
WEBHOOK_TIMESTAMP_HEADER = "webhook-timestamp"
WEBHOOK_SIGNATURE_HEADER = "webhook-signature"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def _secret_bytes(secret: str) -> bytes:
    raw = secret.split("_", 1)[1] if secret.startswith("whsec_") else secret
    try:
        return base64.b64decode(raw, validate=True)
    except ValueError:
        return raw.encode()


def compute_signature(secret: str, webhook_id: str, timestamp: str, body: bytes) -> str:
    signed = f"{webhook_id}.{timestamp}.".encode() + body
    digest = hmac.new(_secret_bytes(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(
    secret: str,
    headers: Mapping[str, str],
    body: bytes,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> None:
    """Raise InvalidSignature unless one of the "v1,<sig>" entries matches."""
    webhook_id = _header(headers, WEBHOOK_ID_HEADER)
    timestamp = _header(headers, WEBHOOK_TIMESTAMP_HEADER)
    signature = _header(headers, WEBHOOK_SIGNATURE_HEADER)
    if not (webhook_id and timestamp and signature):
        raise InvalidSignature("Incomplete signature headers")
    try:
        sent_at = int(timestamp)
    except ValueError as e:
        raise InvalidSignature("Bad webhook timestamp") from e
    now = time.time() if now is None else now
    if abs(now - sent_at) > tolerance_seconds:
        raise InvalidSignature("Webhook timestamp outside tolerance", {"timestamp": sent_at})

    expected = compute_signature(secret, webhook_id, timestamp, body)
    for candidate in signature.split():
        _, _, value = candidate.partition(",")
        if value and hmac.compare_digest(value, expected):
            return
    raise InvalidSignature("Webhook signature mismatch")


def parse_payload(body: bytes | str | dict[str, Any]) -> ProviderPayload:
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body or b"null")
        except ValueError as e:
            raise InvalidPayload("Webhook body is not valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayload("Webhook body must be a JSON object")
    try:
        return ProviderPayload.model_validate(body)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvalidPayload("Invalid webhook payload", {"fields": fields}) from e


class WebhookReconciler:
    """Push channel entry point; safe under at-least-once delivery."""

    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.settings = settings

    def check_signature(self, headers: Mapping[str, str], body: bytes) -> None:
        # only the Standard Webhooks header counts; anything else is an unsigned delivery
        signed = _header(headers, WEBHOOK_SIGNATURE_HEADER)
        if not signed:
            if self.settings.webhook_require_signature:
                raise InvalidSignature("Missing webhook signature")
            training_webhooks_unsigned_total.inc()
            logger.warning("training_webhook_unsigned", extra={"signature": "missing"})
            return
        if not self.settings.replicate_webhook_secret:
            return
        verify_signature(
            self.settings.replicate_webhook_secret,
            headers,
            body,
            tolerance_seconds=self.settings.webhook_tolerance_seconds,
        )

    def handle(
        self,
        body: bytes,
        headers: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> TransitionResult:
        """
        Apply one delivery. Returns the transition outcome whether or not anything changed.

        Raises InvalidPayload, InvalidSignature, TrainingJobNotFound or StoreFailure.
        """
        self.check_signature(headers or {}, body)
        payload = parse_payload(body)
        logger.info(
            "training_webhook_received",
            extra={"job_id": payload.id, "provider_status": payload.status},
        )
        return apply_provider_update(self.db, payload, now=now, channel="webhook")
