"""
Unit tests for the scheduler passes.
"""
import pytest
from datetime import timedelta
from extensions import db
from models import AuditLog, CheckInToken, EmailDelivery, Switch, VerificationRequest
from services import message_service, recipient_service, switch_service
from services.scheduler import Scheduler, run_scheduler_once


def _status(switch_id):
    db.session.expire_all()
    return db.session.get(Switch, switch_id).status


def _mails_to(outbox, email):
    return [m for m in outbox if m.recipients == [email]]


@pytest.fixture
def scheduler(app):
    return Scheduler()


@pytest.fixture
def with_message(switch, owner):
    recipient = recipient_service.add_recipient(switch.id, owner.id, 'heir@example.com')
    return message_service.set_message(recipient.id, owner.id, 'Everything is in the blue folder.')


class TestOverduePass:
    """Test cases for ACTIVE -> OVERDUE."""

    def test_nothing_due(self, switch, scheduler, clock):
        clock.advance(days=6)
        report = scheduler.process_overdue()

        assert report.processed == 0
        assert report.acted == 0
        assert _status(switch.id) == 'ACTIVE'

    def test_missed_check_in(self, switch, scheduler, clock, outbox):
        clock.advance(days=7, minutes=1)
        report = scheduler.process_overdue()

        assert report.acted == 1
        assert _status(switch.id) == 'OVERDUE'
        notices = _mails_to(outbox, 'owner@example.com')
        assert len(notices) == 1
        token = CheckInToken.query.filter_by(switch_id=switch.id).one()
        assert f'http://testserver/checkin/{token.token}' in notices[0].body

    def test_exactly_at_deadline_is_not_overdue(self, switch, scheduler, clock):
        clock.advance(days=7)
        assert scheduler.process_overdue().acted == 0

    def test_repeat_run_does_nothing(self, switch, scheduler, clock):
        clock.advance(days=8)
        scheduler.process_overdue()
        report = scheduler.process_overdue()
        assert report.processed == 0

    def test_one_failure_does_not_stop_the_pass(self, owner, scheduler, clock, monkeypatch):
        first = switch_service.create_switch(owner.id, name='First', check_in_interval_days=1, grace_period_days=1)
        second = switch_service.create_switch(owner.id, name='Second', check_in_interval_days=1,
                                              grace_period_days=1)
        original = scheduler.notifier.send_overdue_notice

        def _flaky(user, sw, url):
            if sw.id == first.id:
                raise RuntimeError('template exploded')
            return original(user, sw, url)
        monkeypatch.setattr(scheduler.notifier, 'send_overdue_notice', _flaky)

        clock.advance(days=2)
        report = scheduler.process_overdue()

        assert report.processed == 2
        assert report.acted == 1
        assert len(report.errors) == 1
        assert 'template exploded' in report.errors[0]
        assert _status(second.id) == 'OVERDUE'


class TestGracePasses:
    """Test cases for the grace period and its expiry."""

    def test_overdue_enters_grace_with_warning(self, switch, scheduler, clock, move_to, outbox):
        move_to(switch.id, 'OVERDUE')
        report = scheduler.process_grace_transitions()

        assert report.acted == 1
        sw = db.session.get(Switch, switch.id)
        assert sw.status == 'GRACE_PERIOD'
        assert sw.grace_period_ends_at == clock.now + timedelta(days=3)
        assert 'URGENT' in _mails_to(outbox, 'owner@example.com')[0].subject

    def test_grace_not_over_yet(self, switch, scheduler, clock, move_to):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD')
        clock.advance(days=2)
        assert scheduler.process_grace_expiry().acted == 0
        assert _status(switch.id) == 'GRACE_PERIOD'

    def test_without_verifiers_goes_to_verified(self, switch, scheduler, clock, move_to):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD')
        clock.advance(days=3, minutes=1)

        assert scheduler.process_grace_expiry().acted == 1
        sw = db.session.get(Switch, switch.id)
        assert sw.status == 'VERIFIED'
        assert sw.scheduled_execution_at == clock.now + timedelta(hours=24)

    def test_with_verifiers_opens_request(self, verifier_switch, scheduler, clock, move_to, outbox):
        move_to(verifier_switch.id, 'OVERDUE', 'GRACE_PERIOD')
        clock.advance(days=3, minutes=1)

        assert scheduler.process_grace_expiry().acted == 1
        assert _status(verifier_switch.id) == 'PENDING_VERIFICATION'
        assert VerificationRequest.query.filter_by(switch_id=verifier_switch.id, completed_at=None).count() == 1
        for i in range(1, 4):
            mails = _mails_to(outbox, f'verifier{i}@example.com')
            assert len(mails) == 1
            assert 'verification code' in mails[0].body

    def test_with_too_few_verifiers_goes_to_verified(self, owner, scheduler, clock, move_to):
        sw = switch_service.create_switch(owner.id, name='Few', check_in_interval_days=7, grace_period_days=3,
                                          use_verifiers=True, required_confirmations=2)
        move_to(sw.id, 'OVERDUE', 'GRACE_PERIOD')
        clock.advance(days=4)

        assert scheduler.process_grace_expiry().acted == 1
        assert _status(sw.id) == 'VERIFIED'


class TestVerificationExpiryPass:
    """Test cases for closing expired verification requests."""

    def test_expired_request_pauses_switch(self, verifier_switch, pending_request, scheduler, clock):
        request, _ = pending_request
        clock.advance(days=6)
        assert scheduler.process_verification_expiry().processed == 0

        clock.advance(days=1, minutes=1)
        report = scheduler.process_verification_expiry()

        assert report.acted == 1
        assert _status(verifier_switch.id) == 'PAUSED'
        assert db.session.get(VerificationRequest, request.id).result == 'expired'


class TestExecutionPass:
    """Test cases for VERIFIED -> EXECUTED."""

    def test_waits_for_final_delay(self, switch, with_message, scheduler, clock, move_to, outbox):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED')
        clock.advance(hours=23)

        assert scheduler.process_executions().acted == 0
        assert _status(switch.id) == 'VERIFIED'
        assert _mails_to(outbox, 'heir@example.com') == []

    def test_executes_and_delivers_once(self, switch, with_message, scheduler, clock, move_to, outbox):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED')
        clock.advance(hours=24, minutes=1)

        assert scheduler.process_executions().acted == 1
        assert _status(switch.id) == 'EXECUTED'
        assert scheduler.process_executions().processed == 0

        mails = _mails_to(outbox, 'heir@example.com')
        assert len(mails) == 1
        assert mails[0].body == 'Everything is in the blue folder.'
        event = AuditLog.query.filter_by(action='switch_executed').one()
        assert event.details == {'delivered': 1, 'failed': 0, 'skipped': 0}

    def test_checked_in_switch_is_not_executed(self, switch, with_message, scheduler, clock, move_to, outbox):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED')
        switch_service.check_in(switch.id, switch.user_id)
        clock.advance(days=2)

        scheduler.process_executions()
        assert _status(switch.id) == 'ACTIVE'
        assert _mails_to(outbox, 'heir@example.com') == []

    def test_failed_delivery_still_executes_and_is_retried(self, app, switch, with_message, scheduler, clock,
                                                            move_to, outbox, monkeypatch):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED')
        clock.advance(days=2)
        transport = app.extensions['notifier'].transport
        real_send = transport.send

        def _fail(*args, **kwargs):
            raise ConnectionError('connection refused')
        monkeypatch.setattr(transport, 'send', _fail)

        scheduler.process_executions()
        assert _status(switch.id) == 'EXECUTED'
        assert AuditLog.query.filter_by(action='switch_executed').one().details['failed'] == 1

        monkeypatch.setattr(transport, 'send', real_send)
        report = scheduler.retry_failed_deliveries()

        assert report.acted == 1
        assert EmailDelivery.query.one().status == 'sent'
        assert len(_mails_to(outbox, 'heir@example.com')) == 1

    def test_retries_stop_at_limit(self, app, switch, with_message, scheduler, clock, move_to, monkeypatch):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED')
        clock.advance(days=2)

        def _fail(*args, **kwargs):
            raise ConnectionError('connection refused')
        monkeypatch.setattr(app.extensions['notifier'].transport, 'send', _fail)

        scheduler.process_executions()
        for _ in range(5):
            scheduler.retry_failed_deliveries()

        delivery = EmailDelivery.query.one()
        assert delivery.status == 'failed'
        assert delivery.retry_count == 3
        assert scheduler.retry_failed_deliveries().processed == 0


class TestReminderPass:
    """Test cases for check-in reminders."""

    def test_reminder_sent_once_per_period(self, switch, scheduler, clock, outbox):
        clock.advance(days=5)
        assert scheduler.send_reminders().processed == 0

        clock.advance(days=1, hours=1)
        assert scheduler.send_reminders().acted == 1
        clock.advance(hours=2)
        assert scheduler.send_reminders().acted == 0
        assert len(_mails_to(outbox, 'owner@example.com')) == 1

    def test_new_period_gets_new_reminder(self, switch, owner, scheduler, clock, outbox):
        clock.advance(days=6, hours=1)
        scheduler.send_reminders()

        clock.advance(hours=1)
        switch_service.check_in(switch.id, owner.id)
        clock.advance(days=6, hours=1)
        assert scheduler.send_reminders().acted == 1
        assert AuditLog.query.filter_by(action='check_in_reminder_sent').count() == 2


class TestRunAll:
    """Test cases for a full scheduler run."""

    def test_reports_every_pass_in_order(self, app):
        reports = run_scheduler_once()
        assert [r.name for r in reports] == [
            'overdue', 'grace_period', 'grace_expiry', 'verification_expiry',
            'execution', 'reminders', 'delivery_retry'
        ]
        assert all(r.to_dict()['errors'] == [] for r in reports)

    def test_missed_deadline_reaches_grace_in_one_run(self, switch, clock):
        clock.advance(days=7, minutes=1)
        run_scheduler_once()
        assert _status(switch.id) == 'GRACE_PERIOD'
