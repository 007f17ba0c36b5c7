"""Audit sink: one record per successful mutation.

The sink is an external collaborator. Callers emit after commit and a failing
sink never fails the operation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)
_audit_logger = logging.getLogger("lt.audit")


@dataclass
class AuditRecord:
    action: str          # e.g. "LEDGER_ENTRY_CREATED", "DRAWING_EVALUATED"
    target_type: str
    target_id: str
    actor: str
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    async def emit(self, record: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Default sink: writes each record to the lt.audit logger."""

    async def emit(self, record: AuditRecord) -> None:
        _audit_logger.info(
            "%s %s=%s actor=%s details=%s",
            record.action,
            record.target_type,
            record.target_id,
            record.actor,
            record.details,
        )


async def emit_safely(sink: AuditSink, record: AuditRecord) -> None:
    """Emit and log sink failures instead of raising them."""
    try:
        await sink.emit(record)
    except Exception:
        logger.exception(
            "Audit emit failed: action=%s target=%s", record.action, record.target_id
        )
