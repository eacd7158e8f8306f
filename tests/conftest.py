"""Test configuration and shared fixtures.

Every fixture builds isolated collaborators: an in-memory directory seeded
with the built-in roles, a recording audit sink, a fixed clock and the
built-in workflow table.
"""

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from rideops_authz.catalog.roles import BUILTIN_ROLES
from rideops_authz.catalog.workflows import BUILTIN_WORKFLOWS, build_workflow_table
from rideops_authz.core.cache import DecisionCache
from rideops_authz.core.config import Settings, clear_settings_cache
from rideops_authz.service import AccessControlService
from rideops_authz.services.audit import AuditEmitter
from rideops_authz.services.policy_engine import PolicyEngine
from rideops_authz.services.role_resolver import RoleGraph
from rideops_authz.storage.memory import (
    InMemoryAuditSink,
    InMemoryDirectory,
    InMemoryTOTPSecretStore,
    RecordingChallengeDelivery,
)
from tests.fixtures.test_data import FixedClock


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Keep the settings singleton from leaking between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def role_graph() -> RoleGraph:
    return RoleGraph.build(BUILTIN_ROLES)


@pytest.fixture
def workflows():
    return build_workflow_table(BUILTIN_WORKFLOWS)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def audit(audit_sink: InMemoryAuditSink) -> AuditEmitter:
    return AuditEmitter(audit_sink)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(roles=BUILTIN_ROLES)


@pytest.fixture
def decision_cache() -> DecisionCache:
    return DecisionCache(ttl_seconds=300)


@pytest.fixture
def engine(directory, role_graph, workflows, settings, audit, decision_cache, clock) -> PolicyEngine:
    """Policy engine wired to the in-memory collaborators."""
    return PolicyEngine(
        directory,
        role_graph,
        workflows,
        settings,
        audit,
        cache=decision_cache,
        clock=clock,
    )


@pytest.fixture
def delivery() -> RecordingChallengeDelivery:
    return RecordingChallengeDelivery()


@pytest.fixture
def totp_store() -> InMemoryTOTPSecretStore:
    return InMemoryTOTPSecretStore()


@pytest_asyncio.fixture
async def service(
    directory, audit_sink, delivery, totp_store, settings, clock
) -> AsyncGenerator[AccessControlService, None]:
    """Fully wired facade."""
    yield await AccessControlService.create(
        directory,
        delivery=delivery,
        totp_secrets=totp_store,
        audit_sink=audit_sink,
        settings=settings,
        clock=clock,
    )
