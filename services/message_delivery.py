"""Message delivery.

Releases final messages through the e-mail delivery ledger. A message is
sent only by whoever claims its ledger row, so repeated or overlapping
scheduler runs deliver each message at most once.
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import AuditAction, DeliveryStatus, EmailDelivery, EntityType, Message
from services.audit_service import record_event
from services.encryption_service import get_encryption_service
from services.errors import DecryptionFailed, DeliveryFailed
from services.notification_service import get_notifier
from services.unit_of_work import atomic
import clock

SENT = 'sent'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass
class DeliveryResult:
    status: str
    delivery_id: Optional[int] = None
    error: Optional[str] = None


def _claim(message: Message) -> Optional[EmailDelivery]:
    """Move the ledger row to pending; None if another run owns or finished it."""
    now = clock.utcnow()
    delivery = EmailDelivery.query.filter_by(message_id=message.id).with_for_update().first()

    if delivery is None:
        delivery = EmailDelivery(
            message_id=message.id,
            provider=get_notifier().transport.provider,
            status=DeliveryStatus.PENDING.value,
            attempted_at=now
        )
        db.session.add(delivery)
        db.session.flush()
        return delivery

    if delivery.status != DeliveryStatus.FAILED.value:
        return None

    # Compare-and-swap so only one retry wins
    claimed = db.session.execute(
        db.update(EmailDelivery)
        .where(EmailDelivery.id == delivery.id, EmailDelivery.status == DeliveryStatus.FAILED.value)
        .values(status=DeliveryStatus.PENDING.value, attempted_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not claimed:
        return None
    return delivery


def deliver_message(message_id: int) -> DeliveryResult:
    """Send one final message unless it has already been sent or claimed."""
    message = db.session.get(Message, message_id)
    if message is None:
        return DeliveryResult(FAILED, error='Message not found')

    try:
        with atomic():
            delivery = _claim(message)
    except IntegrityError:
        # A concurrent run inserted the ledger row first
        return DeliveryResult(SKIPPED)

    if delivery is None:
        existing = EmailDelivery.query.filter_by(message_id=message.id).first()
        return DeliveryResult(SKIPPED, delivery_id=existing.id if existing else None)

    delivery_id = delivery.id
    try:
        encryption = get_encryption_service()
        content = encryption.decrypt(message.encrypted_content)
        subject = encryption.decrypt(message.encrypted_subject) if message.encrypted_subject else None
        provider_message_id = get_notifier().send_final_message(message.recipient, subject, content)
    except (DecryptionFailed, DeliveryFailed) as e:
        _mark_failed(delivery_id, message, str(e))
        current_app.logger.error(f'Delivery of message {message.id} failed: {e}')
        return DeliveryResult(FAILED, delivery_id=delivery_id, error=str(e))

    with atomic():
        delivery = db.session.get(EmailDelivery, delivery_id)
        delivery.status = DeliveryStatus.SENT.value
        delivery.provider_message_id = provider_message_id
        delivery.sent_at = clock.utcnow()
        delivery.error_message = None
        record_event(EntityType.MESSAGE, message.id, AuditAction.MESSAGE_SENT,
                     metadata={'switch_id': message.switch_id,
                               'recipient_id': message.recipient_id,
                               'email_delivery_id': delivery_id})

    current_app.logger.info(f'Message {message.id} delivered')
    return DeliveryResult(SENT, delivery_id=delivery_id)


def _mark_failed(delivery_id: int, message: Message, error: str) -> None:
    with atomic():
        delivery = db.session.get(EmailDelivery, delivery_id)
        delivery.status = DeliveryStatus.FAILED.value
        delivery.failed_at = clock.utcnow()
        delivery.error_message = error[:1000]
        delivery.retry_count = (delivery.retry_count or 0) + 1
        record_event(EntityType.MESSAGE, message.id, AuditAction.MESSAGE_SEND_FAILED,
                     metadata={'switch_id': message.switch_id,
                               'recipient_id': message.recipient_id,
                               'email_delivery_id': delivery_id,
                               'retry_count': delivery.retry_count})


def deliver_switch_messages(switch) -> dict:
    """Deliver every message of a switch. Returns counts per outcome."""
    counts = {SENT: 0, SKIPPED: 0, FAILED: 0}
    for message in switch.messages.order_by(Message.id).all():
        counts[deliver_message(message.id).status] += 1
    return counts
