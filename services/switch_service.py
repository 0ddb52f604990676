"""Switch lifecycle service functions.

Owner- and admin-facing operations on switches. Ownership is checked here;
status and timer changes are delegated to the state machine.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from flask import current_app

from extensions import db
from models import AuditAction, AuditLog, CheckInToken, EntityType, Switch, SwitchStatus, User
from services import state_machine
from services.audit_service import get_events_for_entity, record_event
from services.encryption_service import EncryptionService
from services.errors import AuthorizationError, InvalidTransition, NotFound, ValidationError
from services.unit_of_work import atomic
import clock

# (min, max) for each integer setting
SETTING_BOUNDS = {
    'check_in_interval_days': (1, 365),
    'grace_period_days': (1, 30),
    'verification_window_days': (1, 30),
    'final_delay_hours': (1, 168),
    'required_confirmations': (1, 10),
}
NAME_MAX_LENGTH = 100

EDITABLE_STATES = frozenset({SwitchStatus.ACTIVE, SwitchStatus.OVERDUE, SwitchStatus.PAUSED, SwitchStatus.CANCELED})


def _validate_setting(field: str, value) -> int:
    low, high = SETTING_BOUNDS[field]
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer') from None
    if not low <= value <= high:
        raise ValidationError(f'{field} must be between {low} and {high}')
    return value


def _validate_name(name) -> str:
    name = (name or '').strip() if isinstance(name, str) else ''
    if not name or len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f'name must be between 1 and {NAME_MAX_LENGTH} characters')
    return name


def _default(value, fallback):
    return fallback if value is None else value


def _get_owned_switch(switch_id: int, owner_id: int) -> Switch:
    switch = db.session.get(Switch, switch_id)
    if switch is None:
        raise NotFound('Switch not found')
    if switch.user_id != owner_id:
        raise AuthorizationError('You do not have access to this switch')
    return switch


def _require_admin(admin_id: int) -> User:
    admin = db.session.get(User, admin_id)
    if admin is None or not admin.is_admin:
        raise AuthorizationError('Administrator access required')
    return admin


def create_switch(owner_id: int,
                  name: str,
                  check_in_interval_days: int,
                  grace_period_days: int,
                  verification_window_days: Optional[int] = None,
                  final_delay_hours: Optional[int] = None,
                  use_verifiers: bool = False,
                  required_confirmations: Optional[int] = None,
                  ip_address: Optional[str] = None,
                  user_agent: Optional[str] = None) -> Switch:
    """Create an ACTIVE switch whose first check-in is due one interval from now."""
    if db.session.get(User, owner_id) is None:
        raise NotFound('User not found')

    cfg = current_app.config
    settings = {
        'check_in_interval_days': check_in_interval_days,
        'grace_period_days': grace_period_days,
        'verification_window_days': _default(verification_window_days, cfg['DEFAULT_VERIFICATION_WINDOW_DAYS']),
        'final_delay_hours': _default(final_delay_hours, cfg['DEFAULT_FINAL_DELAY_HOURS']),
        'required_confirmations': _default(required_confirmations, cfg['DEFAULT_REQUIRED_CONFIRMATIONS']),
    }
    settings = {field: _validate_setting(field, value) for field, value in settings.items()}
    name = _validate_name(name)

    with atomic():
        now = clock.utcnow()
        switch = Switch(
            user_id=owner_id,
            name=name,
            status=SwitchStatus.ACTIVE.value,
            use_verifiers=bool(use_verifiers),
            last_check_in_at=now,
            next_check_in_due_at=now + timedelta(days=settings['check_in_interval_days']),
            created_at=now,
            **settings
        )
        db.session.add(switch)
        db.session.flush()

        record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_CREATED, actor_id=owner_id,
                     metadata={'name': name, 'use_verifiers': switch.use_verifiers, **settings},
                     ip_address=ip_address, user_agent=user_agent)

    current_app.logger.info(f'Switch {switch.id} created for user {owner_id}')
    return switch


def update_switch(switch_id: int,
                  owner_id: int,
                  changes: Dict[str, Any],
                  ip_address: Optional[str] = None,
                  user_agent: Optional[str] = None) -> Switch:
    """Change a switch's name or settings while it is not mid-escalation."""
    switch = _get_owned_switch(switch_id, owner_id)
    if switch.status_enum not in EDITABLE_STATES:
        raise InvalidTransition(f'Cannot update switch in {switch.status} state')

    updates = {}
    for field, value in changes.items():
        if field == 'name':
            updates['name'] = _validate_name(value)
        elif field == 'use_verifiers':
            updates['use_verifiers'] = bool(value)
        elif field in SETTING_BOUNDS:
            updates[field] = _validate_setting(field, value)
        else:
            raise ValidationError(f'Unknown field: {field}')

    if not updates:
        return switch

    with atomic():
        for field, value in updates.items():
            setattr(switch, field, value)

        if ('check_in_interval_days' in updates and switch.status_enum == SwitchStatus.ACTIVE
                and switch.last_check_in_at):
            switch.next_check_in_due_at = switch.last_check_in_at + timedelta(days=switch.check_in_interval_days)

        record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_UPDATED, actor_id=owner_id,
                     metadata={'changes': updates}, ip_address=ip_address, user_agent=user_agent)

    return switch


def delete_switch(switch_id: int,
                  owner_id: int,
                  ip_address: Optional[str] = None,
                  user_agent: Optional[str] = None) -> None:
    """Delete a switch and everything attached to it. The audit trail survives."""
    switch = _get_owned_switch(switch_id, owner_id)
    if switch.status_enum == SwitchStatus.EXECUTED:
        raise InvalidTransition('Cannot delete an executed switch')

    with atomic():
        record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_DELETED, actor_id=owner_id,
                     metadata={'name': switch.name, 'status': switch.status},
                     ip_address=ip_address, user_agent=user_agent)
        db.session.delete(switch)

    current_app.logger.info(f'Switch {switch_id} deleted by user {owner_id}')


def check_in(switch_id: int, owner_id: int) -> Switch:
    _get_owned_switch(switch_id, owner_id)
    switch = state_machine.check_in(switch_id, actor_id=owner_id)
    current_app.logger.info(f'Check-in recorded for switch {switch_id}')
    return switch


def create_check_in_token(switch: Switch) -> CheckInToken:
    """Issue a single-use link token that lets the owner check in from an e-mail."""
    days = current_app.config.get('CHECK_IN_TOKEN_EXPIRY_DAYS', 7)
    with atomic():
        now = clock.utcnow()
        token = CheckInToken(
            switch_id=switch.id,
            token=EncryptionService.generate_token(),
            created_at=now,
            expires_at=now + timedelta(days=days)
        )
        db.session.add(token)
    return token


def check_in_url(token: CheckInToken) -> str:
    return f"{current_app.config['APP_URL'].rstrip('/')}/checkin/{token.token}"


def check_in_with_token(token: str) -> Switch:
    """Check in from an e-mailed link. Following a used link again is a no-op."""
    record = CheckInToken.query.filter_by(token=token).first() if token else None
    if record is None:
        raise NotFound('Invalid check-in link')

    if record.expires_at < clock.utcnow():
        raise ValidationError('This check-in link has expired')

    if record.used_at is not None:
        return record.switch

    with atomic():
        switch = state_machine.check_in(record.switch_id, actor_id=record.switch.user_id)
        record.used_at = clock.utcnow()

    current_app.logger.info(f'Check-in via link recorded for switch {switch.id}')
    return switch


def cleanup_expired_check_in_tokens() -> int:
    """Delete check-in tokens past their expiry. Returns the number removed."""
    with atomic():
        expired = CheckInToken.query.filter(CheckInToken.expires_at < clock.utcnow()).all()
        for token in expired:
            db.session.delete(token)
    return len(expired)


def _owner_transition(switch: Switch, target: SwitchStatus, actor_id: int, action: AuditAction,
                      metadata: Optional[Dict[str, Any]] = None, ip_address=None, user_agent=None) -> Switch:
    with atomic():
        state_machine.apply_transition(switch.id, target, actor_id=actor_id, metadata=metadata).raise_for_error()
        record_event(EntityType.SWITCH, switch.id, action, actor_id=actor_id, metadata=metadata,
                     ip_address=ip_address, user_agent=user_agent)
    return switch


def cancel_switch(switch_id: int, owner_id: int, ip_address=None, user_agent=None) -> Switch:
    switch = _get_owned_switch(switch_id, owner_id)
    return _owner_transition(switch, SwitchStatus.CANCELED, owner_id, AuditAction.SWITCH_CANCELED,
                             ip_address=ip_address, user_agent=user_agent)


def reactivate_switch(switch_id: int, owner_id: int, ip_address=None, user_agent=None) -> Switch:
    """Bring a canceled switch back to ACTIVE with a fresh check-in period."""
    switch = _get_owned_switch(switch_id, owner_id)
    if switch.status_enum != SwitchStatus.CANCELED:
        raise InvalidTransition(f'Only canceled switches can be reactivated, not {switch.status}')
    return _owner_transition(switch, SwitchStatus.ACTIVE, owner_id, AuditAction.SWITCH_REACTIVATED,
                             ip_address=ip_address, user_agent=user_agent)


def pause_switch(switch_id: int, admin_id: int, reason: Optional[str] = None,
                 ip_address=None, user_agent=None) -> Switch:
    """Administrative hold. Any open verification request is closed."""
    _require_admin(admin_id)
    switch = db.session.get(Switch, switch_id)
    if switch is None:
        raise NotFound('Switch not found')
    metadata = {'reason': reason} if reason else None
    return _owner_transition(switch, SwitchStatus.PAUSED, admin_id, AuditAction.SWITCH_PAUSED, metadata,
                             ip_address=ip_address, user_agent=user_agent)


def resume_switch(switch_id: int, admin_id: int, ip_address=None, user_agent=None) -> Switch:
    _require_admin(admin_id)
    switch = db.session.get(Switch, switch_id)
    if switch is None:
        raise NotFound('Switch not found')
    if switch.status_enum != SwitchStatus.PAUSED:
        raise InvalidTransition(f'Only paused switches can be resumed, not {switch.status}')
    return _owner_transition(switch, SwitchStatus.ACTIVE, admin_id, AuditAction.SWITCH_RESUMED,
                             ip_address=ip_address, user_agent=user_agent)


def get_switch(switch_id: int, owner_id: int) -> Switch:
    return _get_owned_switch(switch_id, owner_id)


def list_switches(owner_id: int, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Switch]:
    """An owner's switches, newest first."""
    query = Switch.query.filter_by(user_id=owner_id)
    if status:
        try:
            query = query.filter_by(status=SwitchStatus(status).value)
        except ValueError:
            raise ValidationError(f'Unknown status: {status}') from None
    return query.order_by(Switch.created_at.desc(), Switch.id.desc()).limit(limit).offset(offset).all()


def get_audit_trail(switch_id: int, owner_id: int, limit: int = 50, offset: int = 0) -> List[AuditLog]:
    _get_owned_switch(switch_id, owner_id)
    return get_events_for_entity(EntityType.SWITCH, switch_id, limit=limit, offset=offset)
