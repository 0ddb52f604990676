"""Message model definition.
Stores only ciphertext; decryption happens in the message and delivery services.
"""
from extensions import db
import clock

class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    switch_id = db.Column(db.Integer, db.ForeignKey('switches.id'), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey('recipients.id'), unique=True, nullable=False)
    encrypted_content = db.Column(db.Text, nullable=False)
    encrypted_subject = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), onupdate=lambda: clock.utcnow())

    # Relationships
    delivery = db.relationship('EmailDelivery', backref='message', uselist=False, cascade='all, delete-orphan')

    def to_dict(self):
        # Never exposes content, not even the ciphertext
        return {
            'id': self.id,
            'switch_id': self.switch_id,
            'recipient_id': self.recipient_id,
            'has_subject': self.encrypted_subject is not None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Message {self.id} -> recipient {self.recipient_id}>'
