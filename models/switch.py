"""Switch model definition.
A switch is the owner's recurring check-in obligation together with its
lifecycle status and the timer that is meaningful for that status.
"""
import enum

from extensions import db
import clock


class SwitchStatus(str, enum.Enum):
    ACTIVE = 'ACTIVE'
    OVERDUE = 'OVERDUE'
    GRACE_PERIOD = 'GRACE_PERIOD'
    PENDING_VERIFICATION = 'PENDING_VERIFICATION'
    VERIFIED = 'VERIFIED'
    EXECUTED = 'EXECUTED'
    CANCELED = 'CANCELED'
    PAUSED = 'PAUSED'


# Timer columns owned by the state machine
TIMER_FIELDS = ('next_check_in_due_at', 'grace_period_ends_at', 'scheduled_execution_at')


class Switch(db.Model):
    __tablename__ = 'switches'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(30), default=SwitchStatus.ACTIVE.value, nullable=False, index=True)

    # Settings
    check_in_interval_days = db.Column(db.Integer, nullable=False)
    grace_period_days = db.Column(db.Integer, nullable=False)
    verification_window_days = db.Column(db.Integer, default=7, nullable=False)
    final_delay_hours = db.Column(db.Integer, default=24, nullable=False)
    use_verifiers = db.Column(db.Boolean, default=False, nullable=False)
    required_confirmations = db.Column(db.Integer, default=2, nullable=False)

    # Timers
    last_check_in_at = db.Column(db.DateTime, nullable=True)
    next_check_in_due_at = db.Column(db.DateTime, nullable=True, index=True)
    grace_period_ends_at = db.Column(db.DateTime, nullable=True)
    scheduled_execution_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), onupdate=lambda: clock.utcnow())
    version = db.Column(db.Integer, nullable=False, default=1)

    # Relationships
    recipients = db.relationship('Recipient', backref='switch', lazy='dynamic', cascade='all, delete-orphan')
    messages = db.relationship('Message', backref='switch', lazy='dynamic', cascade='all, delete-orphan')
    verifiers = db.relationship('Verifier', backref='switch', lazy='dynamic', cascade='all, delete-orphan')
    verification_requests = db.relationship('VerificationRequest', backref='switch', lazy='dynamic',
                                            cascade='all, delete-orphan')
    check_in_tokens = db.relationship('CheckInToken', backref='switch', lazy='dynamic', cascade='all, delete-orphan')

    __mapper_args__ = {'version_id_col': version}

    @property
    def status_enum(self):
        return SwitchStatus(self.status)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'status': self.status,
            'check_in_interval_days': self.check_in_interval_days,
            'grace_period_days': self.grace_period_days,
            'verification_window_days': self.verification_window_days,
            'final_delay_hours': self.final_delay_hours,
            'use_verifiers': self.use_verifiers,
            'required_confirmations': self.required_confirmations,
            'last_check_in_at': self.last_check_in_at.isoformat() if self.last_check_in_at else None,
            'next_check_in_due_at': self.next_check_in_due_at.isoformat() if self.next_check_in_due_at else None,
            'grace_period_ends_at': self.grace_period_ends_at.isoformat() if self.grace_period_ends_at else None,
            'scheduled_execution_at': self.scheduled_execution_at.isoformat() if self.scheduled_execution_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Switch {self.id} - {self.status}>'
