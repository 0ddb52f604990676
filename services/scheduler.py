"""Scheduler.
Advances switches whose timers have run out. Each pass selects candidates,
then re-checks them under a row lock before acting, so a run can be repeated
or overlap with owner activity without double-applying anything.
"""
from dataclasses import dataclass, field
from datetime import timedelta
import logging
from typing import Callable, Iterable, List

from flask import current_app

from extensions import db
from models import (
    AuditAction, DeliveryStatus, EmailDelivery, EntityType, Message, Switch, SwitchStatus, VerificationRequest
)
from services import state_machine
from services import switch_service
from services.audit_service import last_event, record_event
from services.errors import PreconditionFailed
from services.message_delivery import FAILED, SENT, SKIPPED, deliver_message, deliver_switch_messages
from services.notification_service import get_notifier
from services.unit_of_work import atomic
from services.verification_service import VerificationService
import clock


logger = logging.getLogger('background_tasks')


@dataclass
class PassReport:
    name: str
    processed: int = 0
    acted: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'name': self.name,
            'processed': self.processed,
            'acted': self.acted,
            'errors': list(self.errors)
        }


class Scheduler:

    def __init__(self, notifier=None, verification_service=None):
        self.notifier = notifier or get_notifier()
        self.verification_service = verification_service or VerificationService()

    def run_all_jobs(self) -> List[PassReport]:
        """Run every pass once, in order."""
        reports = [
            self.process_overdue(),
            self.process_grace_transitions(),
            self.process_grace_expiry(),
            self.process_verification_expiry(),
            self.process_executions(),
            self.send_reminders(),
            self.retry_failed_deliveries(),
        ]

        acted = sum(r.acted for r in reports)
        errors = sum(len(r.errors) for r in reports)
        if acted or errors:
            logger.info(f"Scheduler run complete: {acted} action(s), {errors} error(s)")
        else:
            logger.debug("Scheduler run complete: nothing to do")
        return reports

    def _run_pass(self, name: str, ids: Iterable[int], handler: Callable[[int], bool]) -> PassReport:
        report = PassReport(name)
        for item_id in ids:
            report.processed += 1
            try:
                if handler(item_id):
                    report.acted += 1
            except Exception as e:
                db.session.rollback()
                logger.error(f"{name}: error processing {item_id}: {e}", exc_info=True)
                report.errors.append(f"{item_id}: {e}")
        return report

    @staticmethod
    def _switch_ids(*criteria) -> List[int]:
        return db.session.execute(
            db.select(Switch.id).where(*criteria).order_by(Switch.id)
        ).scalars().all()

    @staticmethod
    def _applied(result) -> bool:
        """True if the transition happened, False if the switch moved on; raise otherwise."""
        if result.success:
            return True
        if isinstance(result.error, PreconditionFailed):
            logger.debug(f"Skipping switch: {result.error.message}")
            return False
        raise result.error

    def _check_in_link(self, switch):
        return switch_service.check_in_url(switch_service.create_check_in_token(switch))

    # 1. ACTIVE -> OVERDUE

    def process_overdue(self) -> PassReport:
        now = clock.utcnow()
        ids = self._switch_ids(Switch.status == SwitchStatus.ACTIVE.value, Switch.next_check_in_due_at < now)

        def guard(s):
            return (s.status == SwitchStatus.ACTIVE.value and s.next_check_in_due_at is not None
                    and s.next_check_in_due_at < now)

        def handle(switch_id):
            if not self._applied(state_machine.transition(switch_id, SwitchStatus.OVERDUE, only_if=guard,
                                                          metadata={'reason': 'check_in_missed'})):
                return False
            switch = db.session.get(Switch, switch_id)
            self.notifier.send_overdue_notice(switch.owner, switch, self._check_in_link(switch))
            return True

        return self._run_pass('overdue', ids, handle)

    # 2. OVERDUE -> GRACE_PERIOD

    def process_grace_transitions(self) -> PassReport:
        ids = self._switch_ids(Switch.status == SwitchStatus.OVERDUE.value)

        def handle(switch_id):
            result = state_machine.transition(switch_id, SwitchStatus.GRACE_PERIOD,
                                              only_if=lambda s: s.status == SwitchStatus.OVERDUE.value)
            if not self._applied(result):
                return False
            switch = db.session.get(Switch, switch_id)
            self.notifier.send_grace_period_warning(switch.owner, switch, self._check_in_link(switch))
            return True

        return self._run_pass('grace_period', ids, handle)

    # 3. GRACE_PERIOD -> PENDING_VERIFICATION | VERIFIED

    def process_grace_expiry(self) -> PassReport:
        now = clock.utcnow()
        ids = self._switch_ids(Switch.status == SwitchStatus.GRACE_PERIOD.value, Switch.grace_period_ends_at < now)

        def guard(s):
            return (s.status == SwitchStatus.GRACE_PERIOD.value and s.grace_period_ends_at is not None
                    and s.grace_period_ends_at < now)

        def handle(switch_id):
            switch = db.session.get(Switch, switch_id)
            if switch.use_verifiers and self.verification_service.has_quorum_capacity(switch):
                try:
                    request, issued = self.verification_service.create_request(switch_id, only_if=guard)
                except PreconditionFailed as e:
                    logger.debug(f"Skipping switch: {e.message}")
                    return False
                sent = self.verification_service.send_requests(switch, issued)
                logger.info(f"Verification request {request.id} for switch {switch_id}: "
                            f"notified {sent}/{len(issued)} verifier(s)")
                return True

            if switch.use_verifiers:
                logger.warning(f"Switch {switch_id} uses verifiers but has too few accepted; "
                               f"proceeding to VERIFIED")
            return self._applied(state_machine.transition(switch_id, SwitchStatus.VERIFIED, only_if=guard,
                                                          metadata={'reason': 'grace_period_expired'}))

        return self._run_pass('grace_expiry', ids, handle)

    # 4. Open verification requests past their window -> PAUSED

    def process_verification_expiry(self) -> PassReport:
        now = clock.utcnow()
        ids = db.session.execute(
            db.select(VerificationRequest.id)
            .where(VerificationRequest.completed_at.is_(None), VerificationRequest.expires_at < now)
            .order_by(VerificationRequest.id)
        ).scalars().all()
        return self._run_pass('verification_expiry', ids, self.verification_service.expire_request)

    # 5. VERIFIED -> EXECUTED

    def process_executions(self) -> PassReport:
        now = clock.utcnow()
        ids = self._switch_ids(Switch.status == SwitchStatus.VERIFIED.value, Switch.scheduled_execution_at < now)

        def guard(s):
            return (s.status == SwitchStatus.VERIFIED.value and s.scheduled_execution_at is not None
                    and s.scheduled_execution_at < now)

        def handle(switch_id):
            switch = db.session.get(Switch, switch_id, populate_existing=True)
            if switch is None or not guard(switch):
                return False

            counts = deliver_switch_messages(switch)

            with atomic():
                result = state_machine.apply_transition(switch_id, SwitchStatus.EXECUTED, only_if=guard,
                                                        metadata={'reason': 'final_delay_elapsed'})
                if not self._applied(result):
                    return False
                record_event(EntityType.SWITCH, switch_id, AuditAction.SWITCH_EXECUTED,
                             metadata={'delivered': counts[SENT], 'failed': counts[FAILED],
                                       'skipped': counts[SKIPPED]})

            if counts[FAILED]:
                logger.warning(f"Switch {switch_id} executed with {counts[FAILED]} failed delivery(ies)")
            else:
                logger.info(f"Switch {switch_id} executed: {counts[SENT]} message(s) delivered")
            return True

        return self._run_pass('execution', ids, handle)

    # 6. Reminders before the check-in deadline

    def send_reminders(self) -> PassReport:
        now = clock.utcnow()
        horizon = now + timedelta(hours=current_app.config.get('REMINDER_LOOKAHEAD_HOURS', 24))
        ids = self._switch_ids(Switch.status == SwitchStatus.ACTIVE.value,
                               Switch.next_check_in_due_at >= now,
                               Switch.next_check_in_due_at <= horizon)

        def handle(switch_id):
            switch = db.session.get(Switch, switch_id)
            if self._reminded_this_period(switch):
                return False
            if not self.notifier.send_check_in_reminder(switch.owner, switch, self._check_in_link(switch)):
                return False
            with atomic():
                record_event(EntityType.SWITCH, switch.id, AuditAction.CHECK_IN_REMINDER_SENT,
                             metadata={'next_check_in_due_at': switch.next_check_in_due_at.isoformat()})
            return True

        return self._run_pass('reminders', ids, handle)

    def _reminded_this_period(self, switch) -> bool:
        """Check if a reminder was already sent since the last check-in."""
        previous = last_event(EntityType.SWITCH, switch.id, AuditAction.CHECK_IN_REMINDER_SENT)
        if previous is None:
            return False
        return switch.last_check_in_at is None or previous.created_at >= switch.last_check_in_at

    # 7. Failed final-message deliveries of executed switches

    def retry_failed_deliveries(self) -> PassReport:
        max_retries = current_app.config.get('NOTIFICATION_MAX_RETRIES', 3)
        ids = db.session.execute(
            db.select(EmailDelivery.message_id)
            .join(Message, Message.id == EmailDelivery.message_id)
            .join(Switch, Switch.id == Message.switch_id)
            .where(EmailDelivery.status == DeliveryStatus.FAILED.value,
                   EmailDelivery.retry_count < max_retries,
                   Switch.status == SwitchStatus.EXECUTED.value)
            .order_by(EmailDelivery.id)
        ).scalars().all()

        def handle(message_id):
            result = deliver_message(message_id)
            if result.status == FAILED:
                raise RuntimeError(result.error)
            return result.status == SENT

        return self._run_pass('delivery_retry', ids, handle)


def run_scheduler_once() -> List[PassReport]:
    """Convenience entry point for the cron endpoint and the background runner."""
    return Scheduler().run_all_jobs()
