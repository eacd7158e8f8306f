"""Short-TTL decision cache.

Entries are keyed by user, resource fingerprint, action and the parts of
the invocation context that change the outcome. Every entry expires at
the earlier of its TTL and the next validity boundary of the user's
assignments and grants, so a hit is never staler than a fresh evaluation.
"""

from datetime import datetime, timedelta

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from ..models.policy import PolicyDecision


@beartype
class CacheEntry(BaseModel):
    """Cached decision with its expiry."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    user_id: str = Field(..., description="Owner of the cached decision")
    decision: PolicyDecision = Field(..., description="Cached decision")
    expires_at: datetime = Field(..., description="Entry is unusable at or after this instant")


class DecisionCache:
    """In-process decision cache with explicit invalidation."""

    def __init__(self, *, ttl_seconds: int = 300, max_entries: int = 10_000) -> None:
        """Initialize decision cache."""
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}
        self._keys_by_user: dict[str, set[str]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > timedelta(0)

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    @beartype
    def make_key(
        user_id: str,
        resource_fingerprint: str,
        action: str,
        *,
        mfa_present: bool,
        case_id: str | None,
        channel: str,
    ) -> str:
        """Build a cache key from everything that can change the outcome."""
        return "\x1f".join(
            [
                user_id,
                resource_fingerprint,
                action,
                "mfa" if mfa_present else "nomfa",
                case_id or "",
                channel,
            ]
        )

    @beartype
    async def get(self, key: str, now: datetime) -> PolicyDecision | None:
        """Return the cached decision, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            self._discard(key)
            return None
        return entry.decision

    @beartype
    async def set(
        self,
        key: str,
        user_id: str,
        decision: PolicyDecision,
        now: datetime,
        *,
        not_after: datetime | None = None,
    ) -> None:
        """Store a decision until the TTL or ``not_after``, whichever is earlier."""
        if not self.enabled:
            return
        expires_at = now + self._ttl
        if not_after is not None and not_after < expires_at:
            expires_at = not_after
        if expires_at <= now:
            return

        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._prune(now)

        self._entries[key] = CacheEntry(
            user_id=user_id, decision=decision, expires_at=expires_at
        )
        self._keys_by_user.setdefault(user_id, set()).add(key)

    @beartype
    async def invalidate_user(self, user_id: str) -> int:
        """Drop every entry for one user. Returns the number removed."""
        keys = self._keys_by_user.pop(user_id, set())
        for key in keys:
            self._entries.pop(key, None)
        return len(keys)

    @beartype
    async def clear(self) -> None:
        """Drop everything (role or workflow change)."""
        self._entries.clear()
        self._keys_by_user.clear()

    def _discard(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            keys = self._keys_by_user.get(entry.user_id)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._keys_by_user[entry.user_id]

    def _prune(self, now: datetime) -> None:
        """Remove expired entries, then the oldest until under capacity."""
        for key in [k for k, e in self._entries.items() if now >= e.expires_at]:
            self._discard(key)
        while len(self._entries) >= self._max_entries:
            self._discard(next(iter(self._entries)))
