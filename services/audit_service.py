"""Audit log service.

Appends events to the audit table. Writes join the caller's unit of work, so an
event is persisted exactly when the change it describes is.
"""
from typing import Any, Dict, List, Optional

from extensions import db
from models.audit_log import AuditLog, AuditAction, EntityType
from services.unit_of_work import atomic
import clock


def record_event(entity_type: EntityType,
                 entity_id,
                 action: AuditAction,
                 actor_id: Optional[int] = None,
                 metadata: Optional[Dict[str, Any]] = None,
                 ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None) -> AuditLog:
    """Append an audit event."""
    with atomic():
        event = AuditLog(
            entity_type=EntityType(entity_type).value,
            entity_id=str(entity_id),
            action=AuditAction(action).value,
            actor_id=actor_id,
            details=metadata or None,
            ip_address=ip_address,
            user_agent=(user_agent or '')[:255] or None,
            created_at=clock.utcnow()
        )
        db.session.add(event)
    return event


def get_events_for_entity(entity_type: EntityType, entity_id, limit: int = 50, offset: int = 0) -> List[AuditLog]:
    """Most recent events for one entity, newest first."""
    return db.session.execute(
        db.select(AuditLog)
        .where(AuditLog.entity_type == EntityType(entity_type).value,
               AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    ).scalars().all()


def last_event(entity_type: EntityType, entity_id, action: AuditAction) -> Optional[AuditLog]:
    return db.session.execute(
        db.select(AuditLog)
        .where(AuditLog.entity_type == EntityType(entity_type).value,
               AuditLog.entity_id == str(entity_id),
               AuditLog.action == AuditAction(action).value)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(1)
    ).scalar_one_or_none()
