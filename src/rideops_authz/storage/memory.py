"""In-memory collaborators for local development and tests.

Each class satisfies one of the protocols in :mod:`rideops_authz.core.types`.
They hold plain dictionaries and lists guarded by nothing: they are meant
for a single event loop.
"""

import logging
from collections.abc import Iterable, Sequence

from beartype import beartype

from ..models.access import Role, TemporaryAccessGrant, User
from ..models.audit import DataMaskingEvent, DecisionRecord, SecurityEvent
from ..models.mfa import MFAChallenge

logger = logging.getLogger(__name__)


class InMemoryDirectory:
    """User/role directory that also stores temporary grants.

    Saving a grant folds it into the owning user's snapshot, replacing any
    earlier version with the same id, so the next ``get_user`` sees it.
    """

    def __init__(
        self, users: Iterable[User] = (), roles: Iterable[Role] = ()
    ) -> None:
        """Initialize directory with optional seed data."""
        self._users: dict[str, User] = {user.id: user for user in users}
        self._roles: dict[str, Role] = {role.id: role for role in roles}
        self._grants: dict[str, TemporaryAccessGrant] = {}
        for user in self._users.values():
            for grant in user.temporary_grants:
                self._grants[grant.id] = grant

    @beartype
    def put_user(self, user: User) -> None:
        self._users[user.id] = user
        for grant in user.temporary_grants:
            self._grants[grant.id] = grant

    @beartype
    def put_role(self, role: Role) -> None:
        self._roles[role.id] = role

    @beartype
    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    @beartype
    async def get_role(self, role_id: str) -> Role | None:
        return self._roles.get(role_id)

    @beartype
    async def list_roles(self) -> Sequence[Role]:
        return tuple(self._roles.values())

    @beartype
    async def save_grant(self, grant: TemporaryAccessGrant) -> None:
        user = self._users.get(grant.user_id)
        if user is None:
            raise KeyError(f"Unknown user {grant.user_id}")
        others = tuple(g for g in user.temporary_grants if g.id != grant.id)
        self._users[user.id] = user.model_copy(update={"temporary_grants": others + (grant,)})
        self._grants[grant.id] = grant

    @beartype
    async def get_grant(self, grant_id: str) -> TemporaryAccessGrant | None:
        return self._grants.get(grant_id)


class InMemoryAuditSink:
    """Audit sink that keeps every record in order."""

    def __init__(self) -> None:
        """Initialize empty audit trail."""
        self.access_records: list[DecisionRecord] = []
        self.security_events: list[SecurityEvent] = []
        self.masking_events: list[DataMaskingEvent] = []

    @beartype
    async def log_access(self, record: DecisionRecord) -> None:
        self.access_records.append(record)

    @beartype
    async def log_security_event(self, event: SecurityEvent) -> None:
        self.security_events.append(event)

    @beartype
    async def log_data_masking(self, event: DataMaskingEvent) -> None:
        self.masking_events.append(event)


class RecordingChallengeDelivery:
    """Delivery stub that remembers the last code per challenge."""

    def __init__(self) -> None:
        """Initialize empty outbox."""
        self.sent: dict[str, str] = {}

    @beartype
    async def deliver(self, challenge: MFAChallenge, code: str) -> None:
        logger.debug(
            "Delivering %s challenge %s to user %s",
            challenge.method.value,
            challenge.challenge_id,
            challenge.user_id,
        )
        self.sent[challenge.challenge_id] = code


class InMemoryTOTPSecretStore:
    """Enrolled TOTP secrets keyed by user id."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        """Initialize store with optional enrolled secrets."""
        self._secrets = dict(secrets or {})

    @beartype
    def enroll(self, user_id: str, secret: str) -> None:
        self._secrets[user_id] = secret

    @beartype
    async def get_totp_secret(self, user_id: str) -> str | None:
        return self._secrets.get(user_id)
