"""Audit log model definition.
Append-only record of every state change. `entity_type` + `entity_id` form a
polymorphic reference with no foreign key, so deleting any referenced entity
never touches its history.
"""
import enum

from extensions import db
import clock


class EntityType(str, enum.Enum):
    USER = 'user'
    SWITCH = 'switch'
    RECIPIENT = 'recipient'
    MESSAGE = 'message'
    VERIFIER = 'verifier'
    VERIFICATION_REQUEST = 'verification_request'
    VERIFICATION_VOTE = 'verification_vote'
    EMAIL_DELIVERY = 'email_delivery'


class AuditAction(str, enum.Enum):
    # Switch
    SWITCH_CREATED = 'switch_created'
    SWITCH_UPDATED = 'switch_updated'
    SWITCH_DELETED = 'switch_deleted'
    SWITCH_CHECKED_IN = 'switch_checked_in'
    SWITCH_STATUS_CHANGED = 'switch_status_changed'
    SWITCH_PAUSED = 'switch_paused'
    SWITCH_RESUMED = 'switch_resumed'
    SWITCH_CANCELED = 'switch_canceled'
    SWITCH_REACTIVATED = 'switch_reactivated'
    SWITCH_EXECUTED = 'switch_executed'
    CHECK_IN_REMINDER_SENT = 'check_in_reminder_sent'

    # Recipient / message
    RECIPIENT_ADDED = 'recipient_added'
    RECIPIENT_UPDATED = 'recipient_updated'
    RECIPIENT_REMOVED = 'recipient_removed'
    MESSAGE_CREATED = 'message_created'
    MESSAGE_UPDATED = 'message_updated'
    MESSAGE_DELETED = 'message_deleted'
    MESSAGE_SENT = 'message_sent'
    MESSAGE_SEND_FAILED = 'message_send_failed'

    # Verifier
    VERIFIER_INVITED = 'verifier_invited'
    VERIFIER_ACCEPTED = 'verifier_accepted'
    VERIFIER_REVOKED = 'verifier_revoked'

    # Verification
    VERIFICATION_STARTED = 'verification_started'
    VERIFICATION_OTP_CREATED = 'verification_otp_created'
    VERIFICATION_OTP_FAILED = 'verification_otp_failed'
    VERIFICATION_VOTE_SUBMITTED = 'verification_vote_submitted'
    VERIFICATION_COMPLETED = 'verification_completed'
    VERIFICATION_EXPIRED = 'verification_expired'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    __table_args__ = (
        db.Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(50), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)
    details = db.Column('metadata', db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action': self.action,
            'actor_id': self.actor_id,
            'metadata': self.details,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<AuditLog {self.entity_type}:{self.entity_id} - {self.action}>'
