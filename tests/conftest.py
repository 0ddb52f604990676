"""
Pytest configuration and shared fixtures for the test suite.
"""
import pytest
from datetime import datetime, timedelta
from app import create_app, db
from extensions import mail
from models import Verifier, VerifierStatus
from services import create_user, switch_service, state_machine
from services.verification_service import VerificationService
import clock as clock_module


class FrozenClock:
    """Stands in for clock.utcnow; moves only when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def clock(monkeypatch):
    """Freeze time for every test."""
    frozen = FrozenClock(datetime(2026, 3, 2, 9, 0, 0))
    monkeypatch.setattr(clock_module, 'utcnow', frozen)
    return frozen


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app('testing')
    app.config.update({
        'SECRET_KEY': 'test-secret-key',
        'MAIL_SUPPRESS_SEND': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def db_session(app):
    """Create database session."""
    with app.app_context():
        yield db.session

@pytest.fixture
def outbox(app):
    """Capture every e-mail sent through Flask-Mail."""
    with mail.record_messages() as outbox:
        yield outbox


def _make_user(db_session, email, name=None, is_admin=False):
    return create_user(email, name=name, is_admin=is_admin)

@pytest.fixture
def owner(db_session):
    """Create test user."""
    return _make_user(db_session, 'owner@example.com', name='Olive Owner')

@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, 'stranger@example.com', name='Sam Stranger')

@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, 'admin@example.com', name='Ada Admin', is_admin=True)


@pytest.fixture
def login(client):
    """Log a user in by writing the session cookie the auth service would issue."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
        return client
    return _login


@pytest.fixture
def switch(owner):
    """A plain switch: 7 day interval, 3 day grace, no verifiers, 24h final delay."""
    return switch_service.create_switch(
        owner.id,
        name='Primary switch',
        check_in_interval_days=7,
        grace_period_days=3,
        final_delay_hours=24
    )


@pytest.fixture
def verifier_switch(db_session, owner):
    """A switch needing 2 confirmations, with three accepted verifiers."""
    sw = switch_service.create_switch(
        owner.id,
        name='Verified switch',
        check_in_interval_days=7,
        grace_period_days=3,
        final_delay_hours=24,
        use_verifiers=True,
        required_confirmations=2
    )
    for i in range(1, 4):
        db_session.add(Verifier(
            switch_id=sw.id,
            email=f'verifier{i}@example.com',
            name=f'Verifier {i}',
            status=VerifierStatus.ACCEPTED.value
        ))
    db_session.commit()
    return sw


@pytest.fixture
def verification_service(app):
    return VerificationService()


def _move_to(switch_id, *statuses):
    for status in statuses:
        result = state_machine.transition(switch_id, status)
        assert result.success, result.error


@pytest.fixture
def move_to(app):
    """Walk a switch through the given statuses, asserting each step succeeds."""
    return _move_to


@pytest.fixture
def pending_request(verifier_switch, verification_service):
    """Open a verification request; returns (request, issued tokens by verifier email)."""
    _move_to(verifier_switch.id, 'OVERDUE', 'GRACE_PERIOD')
    request, issued = verification_service.create_request(verifier_switch.id)
    return request, {item.verifier.email: item for item in issued}
