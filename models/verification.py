"""Verification models definition.
A verification request asks the accepted verifiers of a switch to confirm or
deny the owner's incapacitation. Each verifier gets one single-use token,
gated by a one-time code, and can cast at most one vote per request.
"""
import enum

from extensions import db
import clock


class VerificationResult(str, enum.Enum):
    CONFIRMED = 'confirmed'
    DENIED = 'denied'
    EXPIRED = 'expired'


class VerificationVote(str, enum.Enum):
    CONFIRM = 'CONFIRM'
    DENY = 'DENY'


class VerificationRequest(db.Model):
    __tablename__ = 'verification_requests'
    __table_args__ = (
        # At most one open request per switch
        db.Index('uq_verification_request_open', 'switch_id', unique=True,
                 sqlite_where=db.text('completed_at IS NULL'),
                 postgresql_where=db.text('completed_at IS NULL')),
    )

    id = db.Column(db.Integer, primary_key=True)
    switch_id = db.Column(db.Integer, db.ForeignKey('switches.id'), nullable=False, index=True)
    started_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    required_confirmations = db.Column(db.Integer, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    result = db.Column(db.String(20), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    # Relationships
    tokens = db.relationship('VerificationToken', backref='request', lazy='dynamic', cascade='all, delete-orphan')
    votes = db.relationship('VoteRecord', backref='request', lazy='dynamic', cascade='all, delete-orphan')

    __mapper_args__ = {'version_id_col': version}

    @property
    def is_open(self):
        return self.completed_at is None

    def to_dict(self):
        return {
            'id': self.id,
            'switch_id': self.switch_id,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'required_confirmations': self.required_confirmations,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'result': self.result
        }

    def __repr__(self):
        return f'<VerificationRequest {self.id} - switch {self.switch_id} - {self.result or "open"}>'


class VerificationToken(db.Model):
    __tablename__ = 'verification_tokens'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'verifier_id', name='uq_verification_token_request_verifier'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('verification_requests.id'), nullable=False, index=True)
    verifier_id = db.Column(db.Integer, db.ForeignKey('verifiers.id'), nullable=False, index=True)
    token = db.Column(db.String(100), unique=True, nullable=False, index=True)
    otp_hash = db.Column(db.String(128), nullable=False)
    otp_expires_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)

    # Relationships
    verifier = db.relationship('Verifier', backref=db.backref('verification_tokens', lazy='dynamic',
                                                              cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<VerificationToken request {self.request_id} - verifier {self.verifier_id}>'


class VoteRecord(db.Model):
    __tablename__ = 'vote_records'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'verifier_id', name='uq_vote_request_verifier'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('verification_requests.id'), nullable=False, index=True)
    verifier_id = db.Column(db.Integer, db.ForeignKey('verifiers.id'), nullable=False, index=True)
    vote = db.Column(db.String(10), nullable=False)
    voted_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)

    # Requester metadata
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    # Relationships
    verifier = db.relationship('Verifier', backref=db.backref('votes', lazy='dynamic', cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'request_id': self.request_id,
            'verifier_id': self.verifier_id,
            'vote': self.vote,
            'voted_at': self.voted_at.isoformat() if self.voted_at else None
        }

    def __repr__(self):
        return f'<VoteRecord {self.vote} - request {self.request_id} - verifier {self.verifier_id}>'
