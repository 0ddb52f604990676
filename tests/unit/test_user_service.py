"""
Unit tests for the user service.
"""
import pytest
from services import create_user, get_user_by_email
from services.errors import ValidationError


class TestUserService:
    """Test cases for user records."""

    def test_create_user_normalizes_email(self, app):
        user = create_user('  Person@Example.COM ', name='Pat')
        assert user.email == 'person@example.com'
        assert user.is_admin is False
        assert get_user_by_email('PERSON@example.com').id == user.id

    def test_duplicate_email(self, owner):
        with pytest.raises(ValidationError):
            create_user('owner@example.com')

    @pytest.mark.parametrize('email', ['', None, 'not-an-email'])
    def test_invalid_email(self, app, email):
        with pytest.raises(ValidationError):
            create_user(email)

    def test_unknown_user(self, app):
        assert get_user_by_email('nobody@example.com') is None
