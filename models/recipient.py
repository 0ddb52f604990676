"""Recipient model definition."""
from extensions import db
import clock

class Recipient(db.Model):
    __tablename__ = 'recipients'
    __table_args__ = (
        db.UniqueConstraint('switch_id', 'email', name='uq_recipient_switch_email'),
    )

    id = db.Column(db.Integer, primary_key=True)
    switch_id = db.Column(db.Integer, db.ForeignKey('switches.id'), nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), onupdate=lambda: clock.utcnow())

    # Relationships
    message = db.relationship('Message', backref='recipient', uselist=False, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'switch_id': self.switch_id,
            'email': self.email,
            'name': self.name,
            'has_message': self.message is not None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Recipient {self.email}>'
