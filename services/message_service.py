"""Message service functions.

Each recipient has at most one message. Content and subject are encrypted
before they reach the database and decrypted only for the owner or for
delivery.
"""
from typing import Dict, Optional

from extensions import db
from models import AuditAction, EntityType, Message
from services.audit_service import record_event
from services.encryption_service import get_encryption_service
from services.errors import NotFound, ValidationError
from services.recipient_service import get_owned_recipient
from services.unit_of_work import atomic

MAX_CONTENT_LENGTH = 50000
MAX_SUBJECT_LENGTH = 200


def _validate(content, subject):
    if not isinstance(content, str) or not content.strip():
        raise ValidationError('Message content is required')
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f'Message content must be at most {MAX_CONTENT_LENGTH} characters')
    if subject is not None:
        if not isinstance(subject, str):
            raise ValidationError('Subject must be a string')
        subject = subject.strip() or None
        if subject and len(subject) > MAX_SUBJECT_LENGTH:
            raise ValidationError(f'Subject must be at most {MAX_SUBJECT_LENGTH} characters')
    return content, subject


def set_message(recipient_id: int, owner_id: int, content: str, subject: Optional[str] = None,
                ip_address=None, user_agent=None) -> Message:
    """Create or replace the message for a recipient."""
    recipient = get_owned_recipient(recipient_id, owner_id)
    if recipient.switch.status == 'EXECUTED':
        raise ValidationError('Cannot change messages of an executed switch')

    content, subject = _validate(content, subject)
    encryption = get_encryption_service()

    with atomic():
        message = recipient.message
        if message is None:
            message = Message(switch_id=recipient.switch_id, recipient_id=recipient.id)
            db.session.add(message)
            action = AuditAction.MESSAGE_CREATED
        else:
            action = AuditAction.MESSAGE_UPDATED

        message.encrypted_content = encryption.encrypt(content)
        message.encrypted_subject = encryption.encrypt(subject) if subject else None
        db.session.flush()

        record_event(EntityType.MESSAGE, message.id, action, actor_id=owner_id,
                     metadata={'switch_id': recipient.switch_id, 'recipient_id': recipient.id},
                     ip_address=ip_address, user_agent=user_agent)

    return message


def get_message(recipient_id: int, owner_id: int) -> Dict:
    """Decrypted message for its owner."""
    recipient = get_owned_recipient(recipient_id, owner_id)
    message = recipient.message
    if message is None:
        raise NotFound('Message not found')

    encryption = get_encryption_service()
    return {
        **message.to_dict(),
        'subject': encryption.decrypt(message.encrypted_subject) if message.encrypted_subject else None,
        'content': encryption.decrypt(message.encrypted_content)
    }


def delete_message(recipient_id: int, owner_id: int, ip_address=None, user_agent=None) -> None:
    recipient = get_owned_recipient(recipient_id, owner_id)
    message = recipient.message
    if message is None:
        raise NotFound('Message not found')
    if recipient.switch.status == 'EXECUTED':
        raise ValidationError('Cannot change messages of an executed switch')

    with atomic():
        record_event(EntityType.MESSAGE, message.id, AuditAction.MESSAGE_DELETED, actor_id=owner_id,
                     metadata={'switch_id': recipient.switch_id, 'recipient_id': recipient.id},
                     ip_address=ip_address, user_agent=user_agent)
        db.session.delete(message)
