"""Switch lifecycle state machine.

The only code that writes `Switch.status` and the timer columns. Every change
is a single read-modify-write on a locked row inside the caller's unit of
work, followed by an audit event.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Optional
import uuid

from extensions import db
from models.audit_log import AuditAction, EntityType
from models.switch import Switch, SwitchStatus, TIMER_FIELDS
from models.verification import VerificationRequest, VerificationResult
from services.audit_service import record_event
from services.errors import (
    FinalNoteError, InvalidCheckIn, InvalidTransition, NotFound, PreconditionFailed
)
from services.unit_of_work import atomic, lock
import clock

S = SwitchStatus

TRANSITIONS: Dict[SwitchStatus, FrozenSet[SwitchStatus]] = {
    S.ACTIVE: frozenset({S.OVERDUE, S.CANCELED, S.PAUSED}),
    S.OVERDUE: frozenset({S.GRACE_PERIOD, S.ACTIVE, S.CANCELED, S.PAUSED}),
    S.GRACE_PERIOD: frozenset({S.PENDING_VERIFICATION, S.VERIFIED, S.ACTIVE, S.CANCELED, S.PAUSED}),
    S.PENDING_VERIFICATION: frozenset({S.VERIFIED, S.ACTIVE, S.CANCELED, S.PAUSED}),
    S.VERIFIED: frozenset({S.EXECUTED, S.ACTIVE, S.CANCELED, S.PAUSED}),
    S.EXECUTED: frozenset(),
    S.CANCELED: frozenset({S.ACTIVE}),
    S.PAUSED: frozenset({S.ACTIVE, S.CANCELED}),
}

CHECK_IN_STATES = frozenset({S.ACTIVE, S.OVERDUE, S.GRACE_PERIOD, S.PENDING_VERIFICATION, S.VERIFIED})

# The one timer column that is meaningful in each status
STATUS_TIMER: Dict[SwitchStatus, str] = {
    S.ACTIVE: 'next_check_in_due_at',
    S.OVERDUE: 'next_check_in_due_at',
    S.GRACE_PERIOD: 'grace_period_ends_at',
    S.VERIFIED: 'scheduled_execution_at',
}


@dataclass
class TransitionResult:
    success: bool
    previous_status: Optional[SwitchStatus] = None
    new_status: Optional[SwitchStatus] = None
    error: Optional[FinalNoteError] = None

    def raise_for_error(self) -> 'TransitionResult':
        if self.error is not None:
            raise self.error
        return self


def is_valid_transition(current, target) -> bool:
    return SwitchStatus(target) in TRANSITIONS[SwitchStatus(current)]


def get_valid_next_states(current) -> List[SwitchStatus]:
    return sorted(TRANSITIONS[SwitchStatus(current)], key=lambda s: s.value)


def apply_timers(switch: Switch, target: SwitchStatus, now: datetime) -> None:
    """Set the timer for `target` and clear every timer it does not use."""
    if target == S.ACTIVE:
        switch.last_check_in_at = now
        switch.next_check_in_due_at = now + timedelta(days=switch.check_in_interval_days)
    elif target == S.GRACE_PERIOD:
        switch.grace_period_ends_at = now + timedelta(days=switch.grace_period_days)
    elif target == S.VERIFIED:
        switch.scheduled_execution_at = now + timedelta(hours=switch.final_delay_hours)

    keep = STATUS_TIMER.get(target)
    for field in TIMER_FIELDS:
        if field != keep:
            setattr(switch, field, None)


def close_open_requests(switch_id: int,
                        result: VerificationResult,
                        now: datetime,
                        actor_id: Optional[int] = None,
                        reason: Optional[str] = None,
                        correlation_id: Optional[str] = None) -> List[VerificationRequest]:
    """Complete every open verification request of a switch with `result`."""
    open_requests = db.session.execute(
        db.select(VerificationRequest)
        .where(VerificationRequest.switch_id == switch_id,
               VerificationRequest.completed_at.is_(None))
        .with_for_update()
    ).scalars().all()

    for request in open_requests:
        request.completed_at = now
        request.result = VerificationResult(result).value

        details = {'result': request.result, 'switch_id': switch_id}
        if reason:
            details['reason'] = reason
        if correlation_id:
            details['correlation_id'] = correlation_id
        record_event(EntityType.VERIFICATION_REQUEST, request.id, AuditAction.VERIFICATION_COMPLETED,
                     actor_id=actor_id, metadata=details)

    return open_requests


def apply_transition(switch_id: int,
                     target,
                     actor_id: Optional[int] = None,
                     metadata: Optional[Dict[str, Any]] = None,
                     only_if: Optional[Callable[[Switch], bool]] = None) -> TransitionResult:
    """Move a switch to `target` within the caller's unit of work.

    `only_if` is re-evaluated against the locked row; if it no longer holds
    the switch is left untouched and PreconditionFailed is returned.
    """
    target = SwitchStatus(target)
    switch = lock(Switch, switch_id)
    if switch is None:
        return TransitionResult(False, new_status=target, error=NotFound('Switch not found'))

    current = switch.status_enum
    if only_if is not None and not only_if(switch):
        return TransitionResult(False, current, target, PreconditionFailed(
            f'Switch {switch_id} changed before it could move to {target.value}',
            current=current.value, target=target.value))

    if not is_valid_transition(current, target):
        allowed = [s.value for s in get_valid_next_states(current)]
        return TransitionResult(False, current, target,
                                InvalidTransition(current=current.value, target=target.value, allowed=allowed))

    now = clock.utcnow()
    if current == S.PENDING_VERIFICATION and target != S.VERIFIED:
        close_open_requests(switch.id, VerificationResult.DENIED, now, actor_id=actor_id,
                            reason=f'switch_{target.value.lower()}')

    apply_timers(switch, target, now)
    switch.status = target.value

    details = {'from': current.value, 'to': target.value}
    if metadata:
        details.update(metadata)
    record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_STATUS_CHANGED,
                 actor_id=actor_id, metadata=details)
    db.session.flush()

    return TransitionResult(True, current, target)


def transition(switch_id: int,
               target,
               actor_id: Optional[int] = None,
               metadata: Optional[Dict[str, Any]] = None,
               only_if: Optional[Callable[[Switch], bool]] = None) -> TransitionResult:
    """Atomically move a switch to `target`.

    Expected failures (unknown switch, edge not in the table, guard no longer
    holding) come back in the result; database errors propagate.
    """
    with atomic():
        return apply_transition(switch_id, target, actor_id=actor_id, metadata=metadata, only_if=only_if)


def check_in(switch_id: int, actor_id: Optional[int] = None) -> Switch:
    """Record a check-in: force ACTIVE with fresh timers and close any open request."""
    with atomic():
        switch = lock(Switch, switch_id)
        if switch is None:
            raise NotFound('Switch not found')

        current = switch.status_enum
        if current not in CHECK_IN_STATES:
            raise InvalidCheckIn(current.value)

        now = clock.utcnow()
        correlation_id = uuid.uuid4().hex
        closed = close_open_requests(switch.id, VerificationResult.DENIED, now, actor_id=actor_id,
                                     reason='owner_checked_in', correlation_id=correlation_id)

        apply_timers(switch, S.ACTIVE, now)
        switch.status = S.ACTIVE.value

        if current != S.ACTIVE:
            record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_STATUS_CHANGED, actor_id=actor_id,
                         metadata={'from': current.value, 'to': S.ACTIVE.value, 'correlation_id': correlation_id})
        record_event(EntityType.SWITCH, switch.id, AuditAction.SWITCH_CHECKED_IN, actor_id=actor_id,
                     metadata={
                         'previous_status': current.value,
                         'next_check_in_due_at': switch.next_check_in_due_at.isoformat(),
                         'closed_requests': [r.id for r in closed],
                         'correlation_id': correlation_id
                     })
        db.session.flush()

    return switch
