"""
Unit tests for recipients and their encrypted messages.
"""
import pytest
from extensions import db
from models import AuditLog, Message, Recipient
from services import message_service, recipient_service
from services.errors import AuthorizationError, NotFound, ValidationError


@pytest.fixture
def recipient(switch, owner):
    return recipient_service.add_recipient(switch.id, owner.id, ' Heir@Example.com ', name='Harper')


class TestRecipients:
    """Test cases for recipient management."""

    def test_add_recipient_normalizes_email(self, recipient):
        assert recipient.email == 'heir@example.com'
        assert recipient.name == 'Harper'
        assert AuditLog.query.filter_by(action='recipient_added').count() == 1

    def test_duplicate_email_rejected(self, switch, owner, recipient):
        with pytest.raises(ValidationError):
            recipient_service.add_recipient(switch.id, owner.id, 'HEIR@example.com')
        assert Recipient.query.count() == 1

    @pytest.mark.parametrize('email', ['', 'no-at-sign', None, 42])
    def test_invalid_email(self, switch, owner, email):
        with pytest.raises(ValidationError):
            recipient_service.add_recipient(switch.id, owner.id, email)

    def test_other_user_cannot_add(self, switch, other_user):
        with pytest.raises(AuthorizationError):
            recipient_service.add_recipient(switch.id, other_user.id, 'heir@example.com')

    def test_update_recipient(self, recipient, owner):
        updated = recipient_service.update_recipient(recipient.id, owner.id, email='new@example.com', name='H.')
        assert updated.email == 'new@example.com'
        assert updated.name == 'H.'

    def test_update_to_taken_email(self, switch, owner, recipient):
        second = recipient_service.add_recipient(switch.id, owner.id, 'second@example.com')
        with pytest.raises(ValidationError):
            recipient_service.update_recipient(second.id, owner.id, email='heir@example.com')

    def test_remove_recipient_removes_message(self, recipient, owner):
        message_service.set_message(recipient.id, owner.id, 'Goodbye')
        recipient_service.remove_recipient(recipient.id, owner.id)

        assert Recipient.query.count() == 0
        assert Message.query.count() == 0

    def test_list_recipients(self, switch, owner, recipient):
        recipient_service.add_recipient(switch.id, owner.id, 'second@example.com')
        emails = [r.email for r in recipient_service.list_recipients(switch.id, owner.id)]
        assert emails == ['heir@example.com', 'second@example.com']

    def test_executed_switch_is_frozen(self, switch, owner, recipient, move_to):
        move_to(switch.id, 'OVERDUE', 'GRACE_PERIOD', 'VERIFIED', 'EXECUTED')

        with pytest.raises(ValidationError):
            recipient_service.add_recipient(switch.id, owner.id, 'late@example.com')
        with pytest.raises(ValidationError):
            recipient_service.remove_recipient(recipient.id, owner.id)
        with pytest.raises(ValidationError):
            message_service.set_message(recipient.id, owner.id, 'Too late')

    def test_missing_recipient(self, owner):
        with pytest.raises(NotFound):
            recipient_service.get_owned_recipient(999, owner.id)


class TestMessages:
    """Test cases for encrypted message storage."""

    def test_message_is_stored_encrypted(self, recipient, owner):
        message = message_service.set_message(recipient.id, owner.id, 'The key is under the mat',
                                              subject='Practical things')

        stored = db.session.get(Message, message.id)
        assert 'under the mat' not in stored.encrypted_content
        assert 'Practical things' not in stored.encrypted_subject
        assert 'content' not in stored.to_dict()

    def test_owner_reads_plaintext(self, recipient, owner):
        message_service.set_message(recipient.id, owner.id, 'Hello there', subject='Hi')
        data = message_service.get_message(recipient.id, owner.id)

        assert data['content'] == 'Hello there'
        assert data['subject'] == 'Hi'

    def test_set_message_replaces(self, recipient, owner):
        first = message_service.set_message(recipient.id, owner.id, 'Draft')
        second = message_service.set_message(recipient.id, owner.id, 'Final')

        assert first.id == second.id
        assert Message.query.count() == 1
        assert message_service.get_message(recipient.id, owner.id)['content'] == 'Final'
        actions = [e.action for e in AuditLog.query.filter_by(entity_type='message').order_by(AuditLog.id)]
        assert actions == ['message_created', 'message_updated']

    def test_audit_never_contains_content(self, recipient, owner):
        message_service.set_message(recipient.id, owner.id, 'very private words')
        for event in AuditLog.query.all():
            assert 'very private words' not in str(event.details)

    @pytest.mark.parametrize('content', ['', '   ', None, 'x' * 50001])
    def test_invalid_content(self, recipient, owner, content):
        with pytest.raises(ValidationError):
            message_service.set_message(recipient.id, owner.id, content)

    def test_subject_too_long(self, recipient, owner):
        with pytest.raises(ValidationError):
            message_service.set_message(recipient.id, owner.id, 'ok', subject='s' * 201)

    def test_other_user_cannot_read(self, recipient, owner, other_user):
        message_service.set_message(recipient.id, owner.id, 'Private')
        with pytest.raises(AuthorizationError):
            message_service.get_message(recipient.id, other_user.id)

    def test_delete_message(self, recipient, owner):
        message_service.set_message(recipient.id, owner.id, 'Private')
        message_service.delete_message(recipient.id, owner.id)

        with pytest.raises(NotFound):
            message_service.get_message(recipient.id, owner.id)
