"""Service-layer exceptions.

Owner- and verifier-facing operations raise these; `create_app` renders them
as JSON using each class's `status_code`.
"""


class FinalNoteError(Exception):
    """Base class for expected, caller-facing failures."""
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(FinalNoteError):
    """Invalid input"""
    status_code = 400


class AuthorizationError(FinalNoteError):
    """Access denied"""
    status_code = 403


class NotFound(FinalNoteError):
    """Not found"""
    status_code = 404


class InvalidTransition(FinalNoteError):
    """Invalid state transition"""
    status_code = 409

    def __init__(self, message=None, current=None, target=None, allowed=None):
        if message is None and current is not None and target is not None:
            message = f'Invalid transition from {current} to {target}'
        super().__init__(message)
        self.current = current
        self.target = target
        self.allowed = allowed

    def to_dict(self):
        data = super().to_dict()
        if self.allowed is not None:
            data['allowed_transitions'] = self.allowed
        return data


class InvalidCheckIn(InvalidTransition):
    """Check-in is not allowed in the current state"""

    def __init__(self, current=None):
        message = f'Cannot check in from {current} state' if current else None
        super().__init__(message, current=current)


class PreconditionFailed(InvalidTransition):
    """The switch changed since it was selected"""


class VerificationError(FinalNoteError):
    """Verification failed"""
    status_code = 400

    INVALID_TOKEN = 'invalid_token'
    TOKEN_EXPIRED = 'token_expired'
    TOKEN_USED = 'token_used'
    INVALID_OTP = 'invalid_otp'
    OTP_EXPIRED = 'otp_expired'
    REQUEST_COMPLETED = 'request_completed'
    REQUEST_ALREADY_OPEN = 'request_already_open'
    ALREADY_VOTED = 'already_voted'
    VERIFIER_REVOKED = 'verifier_revoked'
    INVITATION_INVALID = 'invitation_invalid'
    INVITATION_EXPIRED = 'invitation_expired'
    INVITATION_REVOKED = 'invitation_revoked'

    MESSAGES = {
        INVALID_TOKEN: 'Invalid verification token',
        TOKEN_EXPIRED: 'Verification link has expired',
        TOKEN_USED: 'This verification link has already been used',
        INVALID_OTP: 'Invalid verification code',
        OTP_EXPIRED: 'Verification code has expired',
        REQUEST_COMPLETED: 'This verification request has already been completed',
        REQUEST_ALREADY_OPEN: 'A verification request is already open for this switch',
        ALREADY_VOTED: 'You have already submitted a vote for this verification',
        VERIFIER_REVOKED: 'This verifier has been revoked',
        INVITATION_INVALID: 'Invalid or expired invitation token',
        INVITATION_EXPIRED: 'Invitation token has expired',
        INVITATION_REVOKED: 'This invitation has been revoked',
    }

    def __init__(self, code, message=None):
        super().__init__(message or self.MESSAGES.get(code))
        self.code = code
        if code == self.ALREADY_VOTED:
            self.status_code = 409

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}


class InsufficientVerifiers(FinalNoteError):
    """Not enough accepted verifiers"""
    status_code = 409


class DecryptionFailed(FinalNoteError):
    """Decryption failed"""
    status_code = 500

    def __init__(self):
        super().__init__('Decryption failed')


class DeliveryFailed(FinalNoteError):
    """Message delivery failed"""
    status_code = 502
