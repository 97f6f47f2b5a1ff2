"""
Training-job lifecycle: status mapping, the shared transition, webhook and polling reconcilers.
"""
from .errors import (
    InvalidPayload,
    InvalidSignature,
    ProviderUnavailable,
    QuotaExceeded,
    StoreFailure,
    TrainingError,
    TrainingJobNotFound,
)
from .polling import PollingReconciler
from .provider import ReplicateTrainingClient
from .staleness import is_stale
from .status import TrainingStatus, map_provider_status
from .transition import TransitionResult, apply_provider_update
from .webhook import WebhookReconciler

__all__ = [
    "InvalidPayload",
    "InvalidSignature",
    "ProviderUnavailable",
    "QuotaExceeded",
    "StoreFailure",
    "TrainingError",
    "TrainingJobNotFound",
    "PollingReconciler",
    "ReplicateTrainingClient",
    "is_stale",
    "TrainingStatus",
    "map_provider_status",
    "TransitionResult",
    "apply_provider_update",
    "WebhookReconciler",
]
