"""Audit emission glue.

:class:`AuditEmitter` wraps an :class:`AuditSink` so that a failing sink can
never fail or slow the decision path: every call is awaited inside a guard
that logs the failure and moves on. :class:`LoggingAuditSink` is a sink that
writes records to the standard logging tree, used when no durable sink is
configured.
"""

import logging

from beartype import beartype

from ..core.logging_utils import get_logger
from ..core.types import AuditSink
from ..models.audit import DataMaskingEvent, DecisionRecord, RiskLevel, SecurityEvent

logger = logging.getLogger(__name__)

_RISK_LOG_LEVELS = {
    RiskLevel.CRITICAL: logging.ERROR,
    RiskLevel.HIGH: logging.WARNING,
    RiskLevel.MEDIUM: logging.INFO,
    RiskLevel.LOW: logging.INFO,
    RiskLevel.INFO: logging.DEBUG,
}


class LoggingAuditSink:
    """Audit sink that writes to a dedicated logger."""

    def __init__(self, channel: str = "audit") -> None:
        """Initialize logging sink on ``rideops_authz.<channel>``."""
        self._logger = get_logger(channel)

    @beartype
    async def log_access(self, record: DecisionRecord) -> None:
        self._logger.info(
            "access user=%s action=%s decision=%s audit_level=%s reasons=%s",
            record.user_id,
            record.action,
            record.decision,
            record.audit_level,
            "; ".join(record.reasons),
        )

    @beartype
    async def log_security_event(self, event: SecurityEvent) -> None:
        self._logger.log(
            _RISK_LOG_LEVELS[event.risk_level],
            "security event=%s risk=%s actor=%s subject=%s: %s",
            event.event_type.value,
            event.risk_level.value,
            event.actor_id,
            event.subject_id,
            event.description,
        )

    @beartype
    async def log_data_masking(self, event: DataMaskingEvent) -> None:
        self._logger.info(
            "masking user=%s resource=%s fields=%s",
            event.user_id,
            event.resource_type,
            ",".join(event.masked_fields),
        )


class AuditEmitter:
    """Fire-and-forget front for an audit sink."""

    def __init__(self, sink: AuditSink) -> None:
        """Initialize emitter with dependency validation."""
        if not isinstance(sink, AuditSink):
            raise ValueError("Audit sink must implement log_access, log_security_event and log_data_masking")
        self._sink = sink

    @beartype
    async def access(self, record: DecisionRecord) -> None:
        try:
            await self._sink.log_access(record)
        except Exception as e:
            logger.warning("Audit sink rejected access record %s: %s", record.record_id, e)

    @beartype
    async def security_event(self, event: SecurityEvent) -> None:
        try:
            await self._sink.log_security_event(event)
        except Exception as e:
            logger.warning("Audit sink rejected security event %s: %s", event.event_id, e)

    @beartype
    async def data_masking(self, event: DataMaskingEvent) -> None:
        try:
            await self._sink.log_data_masking(event)
        except Exception as e:
            logger.warning("Audit sink rejected masking event %s: %s", event.event_id, e)
