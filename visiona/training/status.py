"""
Canonical training states and the mapping from Replicate's free-text status.
"""
from enum import Enum


class TrainingStatus(str, Enum):
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TrainingStatus.SUCCEEDED, TrainingStatus.FAILED})

_PROVIDER_STATUS_MAP = {
    "succeeded": TrainingStatus.SUCCEEDED,
    "failed": TrainingStatus.FAILED,
}


def map_provider_status(provider_status: str | None) -> TrainingStatus:
    """
    Map a provider status to a canonical state.
    Exact match only. Total: starting, queued, processing, canceled, differently
    cased or padded values and anything unknown stay in PROCESSING.
    """
    return _PROVIDER_STATUS_MAP.get(provider_status or "", TrainingStatus.PROCESSING)


def is_terminal_status(value: str | None) -> bool:
    """Check a stored status string; unknown strings are not terminal."""
    try:
        return TrainingStatus(value).is_terminal
    except ValueError:
        return False
