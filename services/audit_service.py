"""
Audit logging service.

Audit entries are recorded against the caller's ORM session as pending
events and only written once that session commits; a rollback discards them.
Delivery happens through an AuditSink using its own session, so a failed
audit write is logged and never reaches the caller or undoes the mutation
that triggered it.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from database.models import AuditLog
from core.logger import logger

PENDING_EVENTS_KEY = "pending_audit_events"
REQUEST_CONTEXT_KEY = "audit_request_context"
AUDIT_SINK_KEY = "audit_sink"


@dataclass(frozen=True)
class AuditEvent:
    """Immutable description of one administrative action."""
    actor_id: Optional[int]
    action: str
    entity: str
    entity_id: Optional[str] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class AuditSink:
    """Writes delivered audit events to the audit_logs table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def deliver(self, events: List[AuditEvent]) -> None:
        session = None
        try:
            session = self.session_factory()
            for audit_event in events:
                session.add(AuditLog(
                    user_id=audit_event.actor_id,
                    action=audit_event.action,
                    entity=audit_event.entity,
                    entity_id=audit_event.entity_id,
                    details=audit_event.details,
                    ip_address=audit_event.ip_address,
                    user_agent=audit_event.user_agent,
                    created_at=audit_event.created_at,
                ))
            session.commit()
        except Exception as e:
            if session is not None:
                session.rollback()
            logger.error(f"Failed to write {len(events)} audit log entries: {e}", exc_info=True)
        finally:
            if session is not None:
                session.close()


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def record(
        db: Session,
        actor_id: Optional[int],
        action: str,
        entity: str,
        entity_id=None,
        details: Optional[str] = None
    ) -> AuditEvent:
        """
        Record an action to be written to the audit log after ``db`` commits.

        The client address and user agent are taken from the request context
        attached to ``db`` by ``bind_request``, when there is one.

        Args:
            db: Session carrying the mutation being audited
            actor_id: ID of the user performing the action
            action: Action verb (e.g., "ASSIGN_GRADE", "DROP_STUDENT")
            entity: Entity type (e.g., "ENROLLMENT", "COURSE")
            entity_id: ID of the affected entity
            details: Human-readable description

        Returns:
            The pending AuditEvent
        """
        ip_address, user_agent = db.info.get(REQUEST_CONTEXT_KEY, (None, None))
        audit_event = AuditEvent(
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.info.setdefault(PENDING_EVENTS_KEY, []).append(audit_event)
        return audit_event

    @staticmethod
    def bind_request(db: Session, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        """Attribute audit events recorded on ``db`` to the originating client."""
        db.info[REQUEST_CONTEXT_KEY] = (ip_address, user_agent)

    @staticmethod
    def install(session_factory: sessionmaker, sink: AuditSink) -> None:
        """Deliver pending events from sessions made by ``session_factory`` to ``sink``."""
        session_factory.configure(info={AUDIT_SINK_KEY: sink})
        event.listen(session_factory, "after_commit", _deliver_pending)
        event.listen(session_factory, "after_rollback", _discard_pending)


def _deliver_pending(session: Session) -> None:
    events = session.info.pop(PENDING_EVENTS_KEY, None)
    if not events:
        return
    sink = session.info.get(AUDIT_SINK_KEY)
    if sink is None:
        logger.warning(f"No audit sink configured; dropping {len(events)} audit events")
        return
    try:
        sink.deliver(events)
    except Exception as e:
        logger.error(f"Audit sink failed: {e}", exc_info=True)


def _discard_pending(session: Session) -> None:
    events = session.info.pop(PENDING_EVENTS_KEY, None)
    if events:
        logger.debug(f"Discarded {len(events)} audit events after rollback")
