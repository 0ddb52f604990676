"""Verification Service.
Manages a switch's trusted verifiers and runs the verification quorum:
each accepted verifier receives a single-use link gated by a one-time code,
any DENY ends the request, and enough CONFIRMs move the switch to VERIFIED.
"""
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models.audit_log import AuditAction, EntityType
from models.switch import Switch, SwitchStatus
from models.verification import (
    VerificationRequest, VerificationResult, VerificationToken, VerificationVote, VoteRecord
)
from models.verifier import Verifier, VerifierStatus
from services import state_machine
from services.audit_service import record_event
from services.encryption_service import EncryptionService
from services.errors import (
    AuthorizationError, InsufficientVerifiers, NotFound, PreconditionFailed, ValidationError, VerificationError
)
from services.notification_service import get_notifier
from services.unit_of_work import atomic, lock
import clock

DENY_POLICIES = {
    'pause': SwitchStatus.PAUSED,
    'reset': SwitchStatus.ACTIVE,
}


@dataclass
class IssuedToken:
    verifier: Verifier
    token: str
    otp: str
    expires_at: object
    otp_expires_at: object


@dataclass
class VoteOutcome:
    result: str
    vote: VoteRecord


class VerificationService:

    def _owned_switch(self, switch_id, owner_id):
        switch = db.session.get(Switch, switch_id)
        if switch is None:
            raise NotFound('Switch not found')
        if switch.user_id != owner_id:
            raise AuthorizationError('You do not have access to this switch')
        return switch

    def _accept_url(self, token):
        return f"{current_app.config['APP_URL'].rstrip('/')}/verifier/accept?token={token}"

    def _verify_url(self, token):
        return f"{current_app.config['APP_URL'].rstrip('/')}/verify?token={token}"

    # Verifier management

    def add_verifier(self, switch_id, owner_id, email, name=None, ip_address=None, user_agent=None):
        """Invite a verifier and e-mail them the invitation link."""
        switch = self._owned_switch(switch_id, owner_id)

        if not switch.use_verifiers:
            raise ValidationError('This switch does not use verifiers')
        if switch.status_enum == SwitchStatus.EXECUTED:
            raise ValidationError('Cannot add verifiers to an executed switch')

        email = (email or '').strip().lower()
        if not email or '@' not in email:
            raise ValidationError('A valid email address is required')

        if Verifier.query.filter_by(switch_id=switch.id, email=email).first():
            raise ValidationError('Verifier with this email already exists for this switch')

        expiry_days = current_app.config.get('VERIFIER_INVITE_EXPIRY_DAYS', 30)
        with atomic():
            verifier = Verifier(
                switch_id=switch.id,
                email=email,
                name=(name or '').strip() or None,
                status=VerifierStatus.INVITED.value,
                invite_token=EncryptionService.generate_token(),
                token_expires_at=clock.utcnow() + timedelta(days=expiry_days)
            )
            db.session.add(verifier)
            db.session.flush()

            record_event(EntityType.VERIFIER, verifier.id, AuditAction.VERIFIER_INVITED, actor_id=owner_id,
                         metadata={'switch_id': switch.id, 'email': email},
                         ip_address=ip_address, user_agent=user_agent)

        get_notifier().send_verifier_invitation(verifier, switch.owner, self._accept_url(verifier.invite_token))
        current_app.logger.info(f'Verifier {verifier.id} invited to switch {switch.id}')
        return verifier

    def accept_invitation(self, token, ip_address=None, user_agent=None):
        """Accept an invitation; the invite token is consumed."""
        verifier = Verifier.query.filter_by(invite_token=token).first() if token else None
        if verifier is None:
            raise VerificationError(VerificationError.INVITATION_INVALID)
        if verifier.status == VerifierStatus.REVOKED.value:
            raise VerificationError(VerificationError.INVITATION_REVOKED)
        if verifier.token_expires_at and verifier.token_expires_at < clock.utcnow():
            raise VerificationError(VerificationError.INVITATION_EXPIRED)

        with atomic():
            verifier.status = VerifierStatus.ACCEPTED.value
            verifier.invite_token = None
            verifier.token_expires_at = None

            record_event(EntityType.VERIFIER, verifier.id, AuditAction.VERIFIER_ACCEPTED,
                         metadata={'switch_id': verifier.switch_id, 'email': verifier.email},
                         ip_address=ip_address, user_agent=user_agent)

        current_app.logger.info(f'Verifier {verifier.id} accepted invitation for switch {verifier.switch_id}')
        return verifier

    def revoke_verifier(self, verifier_id, owner_id, ip_address=None, user_agent=None):
        """Revoke a verifier. Votes already cast keep counting."""
        verifier = db.session.get(Verifier, verifier_id)
        if verifier is None:
            raise NotFound('Verifier not found')
        if verifier.switch.user_id != owner_id:
            raise AuthorizationError('You do not have access to this verifier')

        with atomic():
            verifier.status = VerifierStatus.REVOKED.value
            verifier.invite_token = None
            verifier.token_expires_at = None

            record_event(EntityType.VERIFIER, verifier.id, AuditAction.VERIFIER_REVOKED, actor_id=owner_id,
                         metadata={'switch_id': verifier.switch_id, 'email': verifier.email},
                         ip_address=ip_address, user_agent=user_agent)

        return verifier

    def list_verifiers(self, switch_id, owner_id):
        switch = self._owned_switch(switch_id, owner_id)
        return switch.verifiers.order_by(Verifier.created_at, Verifier.id).all()

    def accepted_verifiers(self, switch_id):
        return Verifier.query.filter_by(switch_id=switch_id, status=VerifierStatus.ACCEPTED.value) \
            .order_by(Verifier.id).all()

    def has_quorum_capacity(self, switch):
        """Whether enough verifiers have accepted to ever reach quorum."""
        return len(self.accepted_verifiers(switch.id)) >= switch.required_confirmations

    # Verification requests

    def get_active_request(self, switch_id):
        return VerificationRequest.query.filter_by(switch_id=switch_id, completed_at=None).first()

    def create_request(self, switch_id, actor_id=None, only_if=None):
        """Open a verification request and issue one token per accepted verifier.

        Returns the request and the issued tokens with their plaintext OTPs,
        which exist only in memory for delivery.
        `only_if` is checked against the locked switch, as in state transitions.
        """
        with atomic():
            switch = lock(Switch, switch_id)
            if switch is None:
                raise NotFound('Switch not found')
            if only_if is not None and not only_if(switch):
                raise PreconditionFailed(f'Switch {switch_id} changed before verification could start',
                                         current=switch.status, target=SwitchStatus.PENDING_VERIFICATION.value)
            if not switch.use_verifiers:
                raise ValidationError('This switch does not use verifiers')

            verifiers = self.accepted_verifiers(switch.id)
            if len(verifiers) < switch.required_confirmations:
                raise InsufficientVerifiers(
                    f'Not enough accepted verifiers. Need {switch.required_confirmations}, have {len(verifiers)}'
                )
            if self.get_active_request(switch.id) is not None:
                raise VerificationError(VerificationError.REQUEST_ALREADY_OPEN)

            now = clock.utcnow()
            expires_at = now + timedelta(days=switch.verification_window_days)
            otp_expires_at = now + timedelta(hours=current_app.config.get('VERIFICATION_OTP_TTL_HOURS', 72))

            request = VerificationRequest(
                switch_id=switch.id,
                started_at=now,
                expires_at=expires_at,
                required_confirmations=switch.required_confirmations
            )
            db.session.add(request)
            db.session.flush()

            issued = []
            for verifier in verifiers:
                otp = EncryptionService.generate_otp()
                token = VerificationToken(
                    request_id=request.id,
                    verifier_id=verifier.id,
                    token=EncryptionService.generate_token(),
                    otp_hash=EncryptionService.hash_otp(otp),
                    otp_expires_at=otp_expires_at,
                    expires_at=expires_at
                )
                db.session.add(token)
                issued.append(IssuedToken(verifier, token.token, otp, expires_at, otp_expires_at))

            db.session.flush()
            for item in issued:
                record_event(EntityType.VERIFIER, item.verifier.id, AuditAction.VERIFICATION_OTP_CREATED,
                             actor_id=actor_id,
                             metadata={'verification_request_id': request.id,
                                       'otp_expires_at': otp_expires_at.isoformat()})

            state_machine.apply_transition(
                switch.id, SwitchStatus.PENDING_VERIFICATION, actor_id=actor_id,
                metadata={'verification_request_id': request.id}
            ).raise_for_error()

            record_event(EntityType.VERIFICATION_REQUEST, request.id, AuditAction.VERIFICATION_STARTED,
                         actor_id=actor_id,
                         metadata={'switch_id': switch.id,
                                   'verifier_count': len(verifiers),
                                   'required_confirmations': request.required_confirmations})

        current_app.logger.info(f'Verification request {request.id} opened for switch {switch_id}')
        return request, issued

    def send_requests(self, switch, issued):
        """E-mail each verifier their link and code. Returns the number sent."""
        notifier = get_notifier()
        sent = 0
        for item in issued:
            if notifier.send_verification_request(item.verifier, switch.owner, self._verify_url(item.token),
                                                  item.otp, item.expires_at, item.otp_expires_at):
                sent += 1
        return sent

    def expire_request(self, request_id):
        """Close an overdue request as expired and pause its switch."""
        with atomic():
            request = lock(VerificationRequest, request_id)
            now = clock.utcnow()
            if request is None or not request.is_open or request.expires_at >= now:
                return False

            request.completed_at = now
            request.result = VerificationResult.EXPIRED.value
            votes = request.votes.all()
            record_event(EntityType.VERIFICATION_REQUEST, request.id, AuditAction.VERIFICATION_EXPIRED,
                         metadata={'switch_id': request.switch_id,
                                   'confirmations': sum(1 for v in votes if v.vote == VerificationVote.CONFIRM.value),
                                   'required_confirmations': request.required_confirmations})

            state_machine.apply_transition(
                request.switch_id, SwitchStatus.PAUSED,
                metadata={'reason': 'verification_expired', 'verification_request_id': request.id},
                only_if=lambda s: s.status == SwitchStatus.PENDING_VERIFICATION.value
            )
        return True

    # Voting

    def get_token_details(self, token):
        """Describe a verification link without consuming it."""
        vt = VerificationToken.query.filter_by(token=token).first() if token else None
        if vt is None:
            return {'valid': False, 'error': VerificationError.INVALID_TOKEN}

        now = clock.utcnow()
        request = vt.request
        switch = request.switch
        already_voted = VoteRecord.query.filter_by(request_id=request.id, verifier_id=vt.verifier_id).first() \
            is not None
        expired = vt.expires_at < now

        return {
            'valid': not expired and vt.used_at is None and request.is_open and not already_voted,
            'expired': expired,
            'expires_at': vt.expires_at.isoformat(),
            'otp_expires_at': vt.otp_expires_at.isoformat(),
            'already_used': vt.used_at is not None,
            'already_voted': already_voted,
            'request_completed': not request.is_open,
            'verifier_name': vt.verifier.display_name,
            'owner_name': switch.owner.display_name,
            'switch_name': switch.name
        }

    def submit_vote(self, token, otp, vote, ip_address=None, user_agent=None):
        """Validate a token + OTP pair and record the vote."""
        try:
            vote = VerificationVote(vote)
        except ValueError:
            raise ValidationError('Vote must be CONFIRM or DENY') from None

        try:
            with atomic():
                outcome = self._apply_vote(token, otp, vote, ip_address, user_agent)
        except IntegrityError:
            raise VerificationError(VerificationError.ALREADY_VOTED) from None
        except VerificationError as e:
            if e.code == VerificationError.INVALID_OTP:
                self._record_otp_failure(token, ip_address, user_agent)
            raise

        current_app.logger.info(f'Verification vote recorded for request {outcome.vote.request_id}: '
                                f'{outcome.result}')
        return outcome

    def _record_otp_failure(self, token, ip_address, user_agent):
        vt = VerificationToken.query.filter_by(token=token).first()
        with atomic():
            record_event(EntityType.VERIFIER, vt.verifier_id, AuditAction.VERIFICATION_OTP_FAILED,
                         metadata={'verification_request_id': vt.request_id},
                         ip_address=ip_address, user_agent=user_agent)
        current_app.logger.warning(f'Invalid verification code for request {vt.request_id}')

    def _apply_vote(self, token, otp, vote, ip_address, user_agent):
        vt = db.session.execute(
            db.select(VerificationToken).where(VerificationToken.token == token).with_for_update()
        ).scalar_one_or_none() if token else None
        now = clock.utcnow()

        if vt is None:
            raise VerificationError(VerificationError.INVALID_TOKEN)
        if vt.expires_at < now:
            raise VerificationError(VerificationError.TOKEN_EXPIRED)
        if vt.used_at is not None:
            # A link consumed by this verifier's own vote is a repeat vote
            voted = VoteRecord.query.filter_by(request_id=vt.request_id, verifier_id=vt.verifier_id).first()
            raise VerificationError(VerificationError.ALREADY_VOTED if voted else VerificationError.TOKEN_USED)
        if not EncryptionService.verify_otp(otp, vt.otp_hash):
            raise VerificationError(VerificationError.INVALID_OTP)
        if vt.otp_expires_at < now:
            raise VerificationError(VerificationError.OTP_EXPIRED)

        request = lock(VerificationRequest, vt.request_id)
        if not request.is_open:
            raise VerificationError(VerificationError.REQUEST_COMPLETED)
        if VoteRecord.query.filter_by(request_id=request.id, verifier_id=vt.verifier_id).first():
            raise VerificationError(VerificationError.ALREADY_VOTED)
        if vt.verifier.status == VerifierStatus.REVOKED.value:
            raise VerificationError(VerificationError.VERIFIER_REVOKED)

        vt.used_at = now
        record = VoteRecord(
            request_id=request.id,
            verifier_id=vt.verifier_id,
            vote=vote.value,
            voted_at=now,
            ip_address=ip_address,
            user_agent=(user_agent or '')[:255] or None
        )
        db.session.add(record)
        db.session.flush()

        record_event(EntityType.VERIFICATION_VOTE, record.id, AuditAction.VERIFICATION_VOTE_SUBMITTED,
                     metadata={'verification_request_id': request.id,
                               'verifier_id': vt.verifier_id,
                               'vote': vote.value},
                     ip_address=ip_address, user_agent=user_agent)

        if vote == VerificationVote.DENY:
            self._complete(request, VerificationResult.DENIED, now)
            policy = current_app.config.get('VERIFICATION_DENY_POLICY', 'pause')
            state_machine.apply_transition(
                request.switch_id, DENY_POLICIES.get(policy, SwitchStatus.PAUSED),
                metadata={'reason': 'verification_denied', 'verification_request_id': request.id}
            ).raise_for_error()
            return VoteOutcome('denied', record)

        confirmations = VoteRecord.query.filter_by(request_id=request.id,
                                                   vote=VerificationVote.CONFIRM.value).count()
        if confirmations >= request.required_confirmations:
            self._complete(request, VerificationResult.CONFIRMED, now, confirmations=confirmations)
            state_machine.apply_transition(
                request.switch_id, SwitchStatus.VERIFIED,
                metadata={'reason': 'verification_confirmed', 'verification_request_id': request.id}
            ).raise_for_error()
            return VoteOutcome('confirmed', record)

        return VoteOutcome('pending', record)

    def _complete(self, request, result, now, **details):
        request.completed_at = now
        request.result = result.value
        record_event(EntityType.VERIFICATION_REQUEST, request.id, AuditAction.VERIFICATION_COMPLETED,
                     metadata={'result': result.value, 'switch_id': request.switch_id, **details})
        db.session.flush()
