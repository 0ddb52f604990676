"""Recipient service functions.

The people a switch's final messages are released to.
"""
from typing import List, Optional

from extensions import db
from models import AuditAction, EntityType, Recipient, Switch, SwitchStatus
from services.audit_service import record_event
from services.errors import AuthorizationError, NotFound, ValidationError
from services.unit_of_work import atomic

NAME_MAX_LENGTH = 100


def _normalize_email(email) -> str:
    email = (email or '').strip().lower() if isinstance(email, str) else ''
    if not email or '@' not in email or len(email) > 120:
        raise ValidationError('A valid email address is required')
    return email


def _normalize_name(name) -> Optional[str]:
    if name is None:
        return None
    name = str(name).strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f'name must be at most {NAME_MAX_LENGTH} characters')
    return name or None


def _ensure_editable(switch: Switch, action: str) -> None:
    if switch.status_enum == SwitchStatus.EXECUTED:
        raise ValidationError(f'Cannot {action} an executed switch')


def get_owned_recipient(recipient_id: int, owner_id: int) -> Recipient:
    recipient = db.session.get(Recipient, recipient_id)
    if recipient is None:
        raise NotFound('Recipient not found')
    if recipient.switch.user_id != owner_id:
        raise AuthorizationError('You do not have access to this recipient')
    return recipient


def _email_taken(switch_id: int, email: str, exclude_id: Optional[int] = None) -> bool:
    query = Recipient.query.filter_by(switch_id=switch_id, email=email)
    if exclude_id is not None:
        query = query.filter(Recipient.id != exclude_id)
    return query.first() is not None


def add_recipient(switch_id: int, owner_id: int, email: str, name: Optional[str] = None,
                  ip_address=None, user_agent=None) -> Recipient:
    switch = db.session.get(Switch, switch_id)
    if switch is None:
        raise NotFound('Switch not found')
    if switch.user_id != owner_id:
        raise AuthorizationError('You do not have access to this switch')
    _ensure_editable(switch, 'add recipients to')

    email = _normalize_email(email)
    if _email_taken(switch.id, email):
        raise ValidationError('Recipient with this email already exists for this switch')

    with atomic():
        recipient = Recipient(switch_id=switch.id, email=email, name=_normalize_name(name))
        db.session.add(recipient)
        db.session.flush()

        record_event(EntityType.RECIPIENT, recipient.id, AuditAction.RECIPIENT_ADDED, actor_id=owner_id,
                     metadata={'switch_id': switch.id, 'email': email},
                     ip_address=ip_address, user_agent=user_agent)

    return recipient


def update_recipient(recipient_id: int, owner_id: int, email: Optional[str] = None, name: Optional[str] = None,
                     ip_address=None, user_agent=None) -> Recipient:
    recipient = get_owned_recipient(recipient_id, owner_id)
    _ensure_editable(recipient.switch, 'update recipients of')

    changes = {}
    if email is not None:
        email = _normalize_email(email)
        if email != recipient.email:
            if _email_taken(recipient.switch_id, email, exclude_id=recipient.id):
                raise ValidationError('Recipient with this email already exists for this switch')
            changes['email'] = email
    if name is not None:
        changes['name'] = _normalize_name(name)

    if not changes:
        return recipient

    with atomic():
        for field, value in changes.items():
            setattr(recipient, field, value)
        record_event(EntityType.RECIPIENT, recipient.id, AuditAction.RECIPIENT_UPDATED, actor_id=owner_id,
                     metadata={'switch_id': recipient.switch_id, 'changes': changes},
                     ip_address=ip_address, user_agent=user_agent)

    return recipient


def remove_recipient(recipient_id: int, owner_id: int, ip_address=None, user_agent=None) -> None:
    """Remove a recipient together with their message."""
    recipient = get_owned_recipient(recipient_id, owner_id)
    _ensure_editable(recipient.switch, 'remove recipients from')

    with atomic():
        record_event(EntityType.RECIPIENT, recipient.id, AuditAction.RECIPIENT_REMOVED, actor_id=owner_id,
                     metadata={'switch_id': recipient.switch_id, 'email': recipient.email},
                     ip_address=ip_address, user_agent=user_agent)
        db.session.delete(recipient)


def list_recipients(switch_id: int, owner_id: int) -> List[Recipient]:
    switch = db.session.get(Switch, switch_id)
    if switch is None:
        raise NotFound('Switch not found')
    if switch.user_id != owner_id:
        raise AuthorizationError('You do not have access to this switch')
    return switch.recipients.order_by(Recipient.created_at, Recipient.id).all()
