"""User model definition.
Owners of switches and administrators. Credentials and sessions are managed by
the external authentication service; only the identity lives here.
"""
from extensions import db
import clock

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)

    # Relationships
    switches = db.relationship('Switch', backref='owner', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def display_name(self):
        return self.name or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'is_admin': self.is_admin,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<User {self.email}>'
