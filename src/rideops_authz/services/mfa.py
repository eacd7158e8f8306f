# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Step-up MFA challenges tied to a specific permission.

State machine: ``created -> pending -> verified | expired | failed``. A
challenge is single-use; ``verify`` consumes it whatever the outcome.
One-time codes never leave this service except through the delivery
collaborator and are stored only as SHA-256 digests.
"""

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Final

import pyotp
from beartype import beartype

from ..catalog.permissions import Permission
from ..core.config import Settings
from ..core.result_types import Err, Ok, Result
from ..core.types import ChallengeDelivery, TOTPSecretStore
from ..models.audit import AuditEventType, RiskLevel, SecurityEvent
from ..models.base import utc_now
from ..models.mfa import (
    ChallengeContext,
    ChallengeTicket,
    MFAChallenge,
    MFAMethod,
    MFAStatus,
    VerificationOutcome,
)
from .audit import AuditEmitter

logger = logging.getLogger(__name__)

SENSITIVITY_LEVELS: Final[dict[Permission, float]] = {
    Permission.UNMASK_PII_WITH_MFA: 0.9,
    Permission.ACCESS_RAW_LOCATION_DATA: 0.9,
    Permission.APPROVE_PAYOUT_BATCH: 0.8,
    Permission.APPROVE_VEHICLE_DECOMMISSIONING: 0.8,
    Permission.APPROVE_VEHICLE_PURCHASES: 0.8,
    Permission.ASSIGN_ROLES: 0.7,
    Permission.CROSS_REGION_OVERRIDE: 0.7,
    Permission.EXPORT_AUDIT_DATA: 0.7,
    Permission.MANAGE_USERS: 0.6,
    Permission.CONFIGURE_ALERTS: 0.6,
}

DEFAULT_SENSITIVITY: Final = 0.5
CRITICAL_SENSITIVITY: Final = 0.8
HIGH_SENSITIVITY: Final = 0.7
# Role level at which unlisted actions still require step-up.
UNLISTED_ACTION_MFA_LEVEL: Final = 50

_ALL_METHODS: Final = (MFAMethod.TOTP, MFAMethod.SMS, MFAMethod.EMAIL)
_CRITICAL_METHODS: Final = (MFAMethod.TOTP, MFAMethod.SMS)


class MFAChallengeService:
    """Issues and verifies step-up challenges."""

    def __init__(
        self,
        delivery: ChallengeDelivery,
        totp_secrets: TOTPSecretStore,
        settings: Settings,
        audit: AuditEmitter,
        *,
        clock: Callable[[], datetime] = utc_now,
        sensitivity_levels: Mapping[Permission, float] | None = None,
    ) -> None:
        """Initialize challenge service with its collaborators."""
        self._delivery = delivery
        self._totp_secrets = totp_secrets
        self._settings = settings
        self._audit = audit
        self._clock = clock
        self._sensitivity = dict(sensitivity_levels or SENSITIVITY_LEVELS)
        self._challenges: dict[str, MFAChallenge] = {}

    @beartype
    def get_sensitivity_level(self, permission: Permission) -> float:
        """Numeric sensitivity in [0, 1]; unlisted actions are 0.5."""
        return self._sensitivity.get(permission, DEFAULT_SENSITIVITY)

    @beartype
    def allowed_methods(self, permission: Permission) -> tuple[MFAMethod, ...]:
        """Critical actions exclude email delivery."""
        if self.get_sensitivity_level(permission) >= CRITICAL_SENSITIVITY:
            return _CRITICAL_METHODS
        return _ALL_METHODS

    @beartype
    def requires_mfa_for_action(self, permission: Permission, user_level: int) -> bool:
        """Listed actions use the sensitivity threshold; unlisted ones the role level."""
        if permission in self._sensitivity:
            return self._sensitivity[permission] >= self._settings.mfa_sensitivity_threshold
        return user_level >= UNLISTED_ACTION_MFA_LEVEL

    @beartype
    def challenge_lifetime(self, permission: Permission) -> timedelta:
        if self.get_sensitivity_level(permission) >= CRITICAL_SENSITIVITY:
            return timedelta(minutes=self._settings.mfa_critical_expiry_minutes)
        return timedelta(minutes=self._settings.mfa_default_expiry_minutes)

    @beartype
    def get_challenge(self, challenge_id: str) -> MFAChallenge | None:
        return self._challenges.get(challenge_id)

    @beartype
    async def create_challenge(
        self,
        user_id: str,
        method: MFAMethod,
        context: ChallengeContext,
    ) -> Result[ChallengeTicket, str]:
        """Create a challenge and deliver its code.

        Args:
            user_id: User who must complete the challenge
            method: Delivery/verification method
            context: Permission being protected plus session details

        Returns:
            Result containing the ticket (never the code) or error
        """
        if not user_id:
            return Err("user_id is required to create a challenge")

        allowed = self.allowed_methods(context.permission)
        if method not in allowed:
            return Err(
                f"Method {method.value} is not allowed for {context.permission.value}. "
                f"Use one of: {', '.join(m.value for m in allowed)}"
            )

        now = self._clock()
        self._prune(now)
        sensitivity = self.get_sensitivity_level(context.permission)
        challenge = MFAChallenge(
            user_id=user_id,
            method=method,
            permission=context.permission,
            sensitivity=sensitivity,
            created_at=now,
            expires_at=now + self.challenge_lifetime(context.permission),
            session_id=context.session_id,
        )

        try:
            if method is MFAMethod.TOTP:
                secret = await self._totp_secrets.get_totp_secret(user_id)
                if not secret:
                    return Err(
                        f"TOTP is not enrolled for user {user_id}. "
                        "Enroll an authenticator app or choose another method"
                    )
            else:
                code = self._generate_code()
                challenge = challenge.model_copy(
                    update={"code_digest": self._digest(code)}
                )
                self._challenges[challenge.challenge_id] = challenge
                await self._delivery.deliver(challenge, code)
        except Exception as e:
            self._challenges[challenge.challenge_id] = challenge.model_copy(
                update={"status": MFAStatus.FAILED, "consumed_at": now}
            )
            logger.warning("Challenge delivery failed for user %s: %s", user_id, e)
            return Err(f"Failed to deliver challenge: {str(e)}")

        challenge = challenge.model_copy(update={"status": MFAStatus.PENDING})
        self._challenges[challenge.challenge_id] = challenge

        await self._audit.security_event(
            SecurityEvent(
                event_type=AuditEventType.MFA_CHALLENGE_CREATED,
                risk_level=RiskLevel.LOW,
                actor_id=user_id,
                subject_id=user_id,
                action=context.permission.value,
                description=f"MFA challenge issued via {method.value}",
                event_data={
                    "challenge_id": challenge.challenge_id,
                    "sensitivity": sensitivity,
                    "case_id": context.case_id,
                },
            )
        )

        return Ok(
            ChallengeTicket(
                challenge_id=challenge.challenge_id,
                method=challenge.method,
                expires_at=challenge.expires_at,
                status=challenge.status,
            )
        )

    @beartype
    async def verify(self, challenge_id: str, code: str) -> VerificationOutcome:
        """Verify and consume a challenge."""
        now = self._clock()
        challenge = self._challenges.get(challenge_id)

        if challenge is None or challenge.status is not MFAStatus.PENDING:
            # Unknown, undelivered or already consumed.
            return VerificationOutcome(challenge_id=challenge_id, status=MFAStatus.FAILED)

        status = MFAStatus.FAILED
        if challenge.is_expired(now):
            status = MFAStatus.EXPIRED
        else:
            try:
                if await self._check_code(challenge, code, now):
                    status = MFAStatus.VERIFIED
            except Exception as e:
                logger.warning(
                    "MFA verification failed for challenge %s: %s", challenge_id, e
                )

        self._challenges[challenge_id] = challenge.model_copy(
            update={"status": status, "consumed_at": now}
        )

        verified = status is MFAStatus.VERIFIED
        await self._audit.security_event(
            SecurityEvent(
                event_type=(
                    AuditEventType.MFA_VERIFIED if verified else AuditEventType.MFA_FAILED
                ),
                risk_level=RiskLevel.LOW if verified else RiskLevel.MEDIUM,
                actor_id=challenge.user_id,
                subject_id=challenge.user_id,
                action=challenge.permission.value,
                description=f"MFA challenge {status.value}",
                event_data={"challenge_id": challenge_id, "method": challenge.method.value},
            )
        )

        return VerificationOutcome(
            challenge_id=challenge_id,
            status=status,
            user_id=challenge.user_id,
            permission=challenge.permission,
            verified_at=now if verified else None,
        )

    async def _check_code(self, challenge: MFAChallenge, code: str, now: datetime) -> bool:
        if challenge.method is MFAMethod.TOTP:
            secret = await self._totp_secrets.get_totp_secret(challenge.user_id)
            if not secret:
                return False
            return pyotp.TOTP(secret).verify(code, for_time=now, valid_window=1)
        if challenge.code_digest is None:
            return False
        return hmac.compare_digest(challenge.code_digest, self._digest(code))

    def _prune(self, now: datetime) -> None:
        """Drop consumed and expired challenges."""
        stale = [
            challenge_id
            for challenge_id, challenge in self._challenges.items()
            if challenge.consumed_at is not None or challenge.is_expired(now)
        ]
        for challenge_id in stale:
            del self._challenges[challenge_id]

    def _generate_code(self) -> str:
        length = self._settings.mfa_code_length
        return f"{secrets.randbelow(10**length):0{length}d}"

    @staticmethod
    def _digest(code: str) -> str:
        return hashlib.sha256(code.strip().encode("utf-8")).hexdigest()
