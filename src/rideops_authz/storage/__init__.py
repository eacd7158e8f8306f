"""Reference collaborator implementations."""

from .memory import (
    InMemoryAuditSink,
    InMemoryDirectory,
    InMemoryTOTPSecretStore,
    RecordingChallengeDelivery,
)

__all__ = [
    "InMemoryAuditSink",
    "InMemoryDirectory",
    "InMemoryTOTPSecretStore",
    "RecordingChallengeDelivery",
]
