"""Check-in token model definition.
Single-use links e-mailed to owners so they can check in without signing in.
"""
from extensions import db
import clock

class CheckInToken(db.Model):
    __tablename__ = 'check_in_tokens'

    id = db.Column(db.Integer, primary_key=True)
    switch_id = db.Column(db.Integer, db.ForeignKey('switches.id'), nullable=False, index=True)
    token = db.Column(db.String(100), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f'<CheckInToken switch {self.switch_id} - {self.created_at}>'
