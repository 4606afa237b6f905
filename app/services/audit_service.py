"""Audit trail consumer for committed admin actions."""

from typing import Callable

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity_log import AdminActivityLog
from app.services.workflow import AuditEvent, AuditSink
from core.db import async_session_factory
from core.logging import get_logger

logger = get_logger(__name__)


class DatabaseAuditLogger:
    """Writes AuditEvents to ``admin_activity_logs`` in a session of its own.

    Failures are logged and dropped; the status change stays committed.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_factory):
        self.session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        details = {
            "before": event.before,
            "after": event.after,
            "occurred_at": event.occurred_at.isoformat(),
            **event.details,
        }
        try:
            async with self.session_factory() as session:
                session.add(
                    AdminActivityLog(
                        admin_user_id=event.admin_id,
                        action=event.action,
                        entity_type=event.request_kind,
                        entity_id=event.request_id,
                        details=details,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.warning(
                f"Failed to write audit entry {event.action} for "
                f"{event.request_kind} {event.request_id}: {e}"
            )
            return

        logger.debug(f"Audit entry {event.action} for {event.request_kind} {event.request_id}")


def background_audit_sink(
    background_tasks: BackgroundTasks, audit_logger: DatabaseAuditLogger
) -> AuditSink:
    """Sink that records each event after the HTTP response has been sent."""

    def sink(event: AuditEvent) -> None:
        background_tasks.add_task(audit_logger.record, event)

    return sink
