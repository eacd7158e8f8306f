from __future__ import annotations

"""Protocol interfaces for the engine's external collaborators.

These protocols are **runtime_checkable** so beartype `isinstance` calls succeed against
`unittest.mock.AsyncMock` as long as the mocked attributes exist. They cover only the
narrow surface the engine needs; persistence, delivery and audit storage stay out of
this package.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from ..models.access import Role, TemporaryAccessGrant, User
from ..models.audit import DataMaskingEvent, DecisionRecord, SecurityEvent
from ..models.mfa import MFAChallenge


@runtime_checkable
class DirectoryStore(Protocol):
    """Read-only user and role lookups."""

    async def get_user(self, user_id: str) -> User | None: ...

    async def get_role(self, role_id: str) -> Role | None: ...

    async def list_roles(self) -> Sequence[Role]: ...


@runtime_checkable
class GrantRepository(Protocol):
    """Persistence for issued temporary grants."""

    async def save_grant(self, grant: TemporaryAccessGrant) -> None: ...

    async def get_grant(self, grant_id: str) -> TemporaryAccessGrant | None: ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only audit trail. Calls are fire-and-forget."""

    async def log_access(self, record: DecisionRecord) -> None: ...

    async def log_security_event(self, event: SecurityEvent) -> None: ...

    async def log_data_masking(self, event: DataMaskingEvent) -> None: ...


@runtime_checkable
class ChallengeDelivery(Protocol):
    """Out-of-band delivery of one-time codes (SMS, email)."""

    async def deliver(self, challenge: MFAChallenge, code: str) -> None: ...


@runtime_checkable
class TOTPSecretStore(Protocol):
    """Lookup of a user's enrolled TOTP secret."""

    async def get_totp_secret(self, user_id: str) -> str | None: ...
