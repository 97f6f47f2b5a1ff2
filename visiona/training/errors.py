"""
Typed failures of the reconciliation boundary.
Routes map them to HTTP codes; none of them leaves a job partially updated.
"""
from typing import Any


class TrainingError(Exception):
    """Base class; detail holds structured context for logging."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class InvalidPayload(TrainingError):
    """Malformed or incomplete webhook body. Client error, not a system failure."""


class InvalidSignature(TrainingError):
    """Webhook signature did not verify, or was required and missing."""


class TrainingJobNotFound(TrainingError):
    """Job id unknown to the store."""

    def __init__(self, job_id: str):
        super().__init__(f"Training job not found: {job_id}", {"job_id": job_id})
        self.job_id = job_id


class ProviderUnavailable(TrainingError):
    """Provider fetch failed or timed out. The job record is left unchanged."""


class StoreFailure(TrainingError):
    """Store read/write failed; the transaction was rolled back."""


class QuotaExceeded(TrainingError):
    """The user has no remaining quota for the requested resource."""
