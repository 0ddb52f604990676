"""Email delivery model definition.
One ledger row per final message; the row is the serialisation point that
keeps a message from being sent more than once.
"""
import enum

from extensions import db
import clock


class DeliveryStatus(str, enum.Enum):
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'


class EmailDelivery(db.Model):
    __tablename__ = 'email_deliveries'

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('messages.id'), unique=True, nullable=False)
    provider = db.Column(db.String(50), default='smtp', nullable=False)
    status = db.Column(db.String(20), default=DeliveryStatus.PENDING.value, nullable=False, index=True)
    provider_message_id = db.Column(db.String(255), nullable=True)

    attempted_at = db.Column(db.DateTime, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    retry_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'message_id': self.message_id,
            'provider': self.provider,
            'status': self.status,
            'provider_message_id': self.provider_message_id,
            'attempted_at': self.attempted_at.isoformat() if self.attempted_at else None,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'failed_at': self.failed_at.isoformat() if self.failed_at else None,
            'error_message': self.error_message,
            'retry_count': self.retry_count
        }

    def __repr__(self):
        return f'<EmailDelivery {self.id} - message {self.message_id} - {self.status}>'
