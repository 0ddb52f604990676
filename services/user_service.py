from typing import Optional

from extensions import db

# Import the User model from the models package aggregator
from models import User
from services.errors import ValidationError


def create_user(email: str, name: Optional[str] = None, is_admin: bool = False) -> User:
    """Create and persist a user record for an identity issued by the auth service."""
    email = (email or '').strip().lower()
    if not email or '@' not in email:
        raise ValidationError('A valid email address is required')
    if get_user_by_email(email) is not None:
        raise ValidationError('A user with this email already exists')

    user = User(email=email, name=name, is_admin=is_admin)
    db.session.add(user)
    db.session.commit()
    return user


def get_user_by_email(email: str) -> Optional[User]:
    return User.query.filter_by(email=(email or '').strip().lower()).first()
