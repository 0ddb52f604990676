"""Verifier model definition.
Trusted third parties who may vote on a switch's verification request.
"""
import enum

from extensions import db
import clock


class VerifierStatus(str, enum.Enum):
    INVITED = 'INVITED'
    ACCEPTED = 'ACCEPTED'
    REVOKED = 'REVOKED'


class Verifier(db.Model):
    __tablename__ = 'verifiers'
    __table_args__ = (
        db.UniqueConstraint('switch_id', 'email', name='uq_verifier_switch_email'),
    )

    id = db.Column(db.Integer, primary_key=True)
    switch_id = db.Column(db.Integer, db.ForeignKey('switches.id'), nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), default=VerifierStatus.INVITED.value, nullable=False)

    # Invitation
    invite_token = db.Column(db.String(100), unique=True, nullable=True, index=True)
    token_expires_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), onupdate=lambda: clock.utcnow())

    @property
    def display_name(self):
        return self.name or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'switch_id': self.switch_id,
            'email': self.email,
            'name': self.name,
            'status': self.status,
            'token_expires_at': self.token_expires_at.isoformat() if self.token_expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Verifier {self.email} - {self.status}>'
