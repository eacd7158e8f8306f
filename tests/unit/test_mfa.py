"""Unit tests for step-up MFA challenges."""

from datetime import timedelta

import pyotp
import pytest

from rideops_authz.catalog.permissions import Permission
from rideops_authz.models.audit import AuditEventType
from rideops_authz.models.mfa import ChallengeContext, MFAMethod, MFAStatus
from rideops_authz.services.mfa import MFAChallengeService
from tests.fixtures.test_data import NOW


class FailingDelivery:
    """Delivery channel that is always down."""

    async def deliver(self, challenge, code):
        raise ConnectionError("sms gateway unavailable")


class FlakySecretStore:
    """Secret store that answers once and then goes down."""

    def __init__(self, secret: str) -> None:
        self._secret = secret
        self.calls = 0

    async def get_totp_secret(self, user_id):
        self.calls += 1
        if self.calls > 1:
            raise ConnectionError("secret store down")
        return self._secret


@pytest.fixture
def mfa(delivery, totp_store, settings, audit, clock) -> MFAChallengeService:
    return MFAChallengeService(delivery, totp_store, settings, audit, clock=clock)


def context(permission: Permission = Permission.APPROVE_PAYOUT_BATCH) -> ChallengeContext:
    return ChallengeContext(permission=permission, session_id="sess-1", case_id="CASE-1")


class TestSensitivity:
    @pytest.mark.parametrize(
        ("permission", "level"),
        [
            (Permission.UNMASK_PII_WITH_MFA, 0.9),
            (Permission.APPROVE_PAYOUT_BATCH, 0.8),
            (Permission.ASSIGN_ROLES, 0.7),
            (Permission.CONFIGURE_ALERTS, 0.6),
            (Permission.VIEW_LIVE_MAP, 0.5),
        ],
    )
    def test_levels(self, mfa, permission, level):
        assert mfa.get_sensitivity_level(permission) == level

    def test_critical_actions_exclude_email(self, mfa):
        assert mfa.allowed_methods(Permission.UNMASK_PII_WITH_MFA) == (
            MFAMethod.TOTP,
            MFAMethod.SMS,
        )
        assert MFAMethod.EMAIL in mfa.allowed_methods(Permission.ASSIGN_ROLES)

    def test_critical_challenges_expire_sooner(self, mfa, settings):
        assert mfa.challenge_lifetime(Permission.APPROVE_PAYOUT_BATCH) == timedelta(
            minutes=settings.mfa_critical_expiry_minutes
        )
        assert mfa.challenge_lifetime(Permission.MANAGE_USERS) == timedelta(
            minutes=settings.mfa_default_expiry_minutes
        )

    @pytest.mark.parametrize(
        ("permission", "user_level", "expected"),
        [
            (Permission.EXPORT_AUDIT_DATA, 0, True),
            (Permission.MANAGE_USERS, 100, False),
            (Permission.VIEW_LIVE_MAP, 50, True),
            (Permission.VIEW_LIVE_MAP, 49, False),
        ],
    )
    def test_requires_mfa_for_action(self, mfa, permission, user_level, expected):
        assert mfa.requires_mfa_for_action(permission, user_level) is expected


class TestCodeChallenges:
    """SMS and email codes are delivered once and kept only as digests."""

    async def test_sms_round_trip(self, mfa, delivery, audit_sink):
        ticket = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()

        assert ticket.status is MFAStatus.PENDING
        assert ticket.expires_at == NOW + timedelta(minutes=5)
        code = delivery.sent[ticket.challenge_id]
        stored = mfa.get_challenge(ticket.challenge_id)
        assert stored.code_digest is not None
        assert stored.code_digest != code

        outcome = await mfa.verify(ticket.challenge_id, code)

        assert outcome.verified
        assert outcome.user_id == "exec_1"
        assert outcome.permission is Permission.APPROVE_PAYOUT_BATCH
        assert outcome.verified_at == NOW
        assert [e.event_type for e in audit_sink.security_events] == [
            AuditEventType.MFA_CHALLENGE_CREATED,
            AuditEventType.MFA_VERIFIED,
        ]

    async def test_wrong_code_fails(self, mfa, delivery, audit_sink):
        ticket = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()
        code = delivery.sent[ticket.challenge_id]
        wrong = "000000" if code != "000000" else "111111"

        outcome = await mfa.verify(ticket.challenge_id, wrong)

        assert outcome.status is MFAStatus.FAILED
        assert audit_sink.security_events[-1].event_type is AuditEventType.MFA_FAILED

    async def test_challenge_is_single_use(self, mfa, delivery):
        ticket = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()
        code = delivery.sent[ticket.challenge_id]

        assert (await mfa.verify(ticket.challenge_id, code)).verified
        assert (await mfa.verify(ticket.challenge_id, code)).status is MFAStatus.FAILED

    async def test_expired_challenge(self, mfa, delivery, clock):
        ticket = (
            await mfa.create_challenge("ops_1", MFAMethod.EMAIL, context(Permission.MANAGE_USERS))
        ).unwrap()
        code = delivery.sent[ticket.challenge_id]
        clock.advance(minutes=10)

        outcome = await mfa.verify(ticket.challenge_id, code)

        assert outcome.status is MFAStatus.EXPIRED
        assert mfa.get_challenge(ticket.challenge_id).consumed_at == NOW + timedelta(minutes=10)

    async def test_unknown_challenge_fails(self, mfa):
        assert (await mfa.verify("missing", "123456")).status is MFAStatus.FAILED

    async def test_email_rejected_for_critical_action(self, mfa):
        result = await mfa.create_challenge(
            "exec_1", MFAMethod.EMAIL, context(Permission.UNMASK_PII_WITH_MFA)
        )

        assert result.unwrap_err() == (
            "Method email is not allowed for unmask_pii_with_mfa. Use one of: totp, sms"
        )

    async def test_blank_user_rejected(self, mfa):
        result = await mfa.create_challenge("", MFAMethod.SMS, context())

        assert result.unwrap_err() == "user_id is required to create a challenge"

    async def test_delivery_failure_consumes_challenge(self, totp_store, settings, audit, clock):
        service = MFAChallengeService(FailingDelivery(), totp_store, settings, audit, clock=clock)

        result = await service.create_challenge("exec_1", MFAMethod.SMS, context())

        assert result.unwrap_err() == "Failed to deliver challenge: sms gateway unavailable"


class TestTOTPChallenges:
    async def test_enrolled_user_verifies_with_current_code(self, mfa, totp_store, delivery):
        secret = pyotp.random_base32()
        totp_store.enroll("exec_1", secret)

        ticket = (await mfa.create_challenge("exec_1", MFAMethod.TOTP, context())).unwrap()
        outcome = await mfa.verify(ticket.challenge_id, pyotp.TOTP(secret).at(NOW))

        assert outcome.verified
        assert ticket.challenge_id not in delivery.sent

    async def test_adjacent_time_step_is_accepted(self, mfa, totp_store):
        secret = pyotp.random_base32()
        totp_store.enroll("exec_1", secret)
        ticket = (await mfa.create_challenge("exec_1", MFAMethod.TOTP, context())).unwrap()

        previous = pyotp.TOTP(secret).at(NOW - timedelta(seconds=30))

        assert (await mfa.verify(ticket.challenge_id, previous)).verified

    async def test_unenrolled_user_is_rejected(self, mfa):
        result = await mfa.create_challenge("exec_1", MFAMethod.TOTP, context())

        assert result.unwrap_err().startswith("TOTP is not enrolled for user exec_1")

    async def test_secret_store_failure_consumes_challenge(
        self, delivery, settings, audit, audit_sink, clock
    ):
        store = FlakySecretStore(pyotp.random_base32())
        service = MFAChallengeService(delivery, store, settings, audit, clock=clock)
        ticket = (await service.create_challenge("exec_1", MFAMethod.TOTP, context())).unwrap()

        outcome = await service.verify(ticket.challenge_id, "123456")

        assert outcome.status is MFAStatus.FAILED
        stored = service.get_challenge(ticket.challenge_id)
        assert stored.status is MFAStatus.FAILED
        assert stored.consumed_at == NOW
        assert audit_sink.security_events[-1].event_type is AuditEventType.MFA_FAILED
        assert (await service.verify(ticket.challenge_id, "123456")).status is MFAStatus.FAILED
        assert store.calls == 2


class TestChallengeRetention:
    async def test_consumed_challenges_are_pruned(self, mfa, delivery):
        first = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()
        await mfa.verify(first.challenge_id, delivery.sent[first.challenge_id])

        second = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()

        assert mfa.get_challenge(first.challenge_id) is None
        assert mfa.get_challenge(second.challenge_id).status is MFAStatus.PENDING
        replay = await mfa.verify(first.challenge_id, delivery.sent[first.challenge_id])
        assert replay.status is MFAStatus.FAILED

    async def test_expired_challenges_are_pruned(self, mfa, clock):
        stale = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()
        clock.advance(minutes=5)

        fresh = (await mfa.create_challenge("exec_1", MFAMethod.SMS, context())).unwrap()

        assert mfa.get_challenge(stale.challenge_id) is None
        assert mfa.get_challenge(fresh.challenge_id) is not None
