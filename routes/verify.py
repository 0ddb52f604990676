"""Verifier-facing endpoints. Authenticated by link token (and OTP for votes), not by session."""
from flask import Blueprint, jsonify, request
from routes.auth import get_request_metadata
from services.errors import ValidationError
from services.verification_service import VerificationService


verify_bp = Blueprint('verify', __name__)
verification_service = VerificationService()


def _json_object():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _required_string(data, field):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} is required and must be a string')
    return value.strip()


@verify_bp.route('/verify', methods=['GET'])
def token_details():
    token = request.args.get('token')
    if not token:
        raise ValidationError('token is required')

    details = verification_service.get_token_details(token)
    if details.get('error'):
        return jsonify({'success': False, **details}), 404
    return jsonify({'success': True, **details})


@verify_bp.route('/verify', methods=['POST'])
def submit_vote():
    data = _json_object()
    token, otp, vote = (_required_string(data, field) for field in ('token', 'otp', 'vote'))

    outcome = verification_service.submit_vote(token, otp, vote, **get_request_metadata())
    return jsonify({'success': True, 'result': outcome.result, 'vote': outcome.vote.to_dict()})


@verify_bp.route('/verify/accept', methods=['POST'])
def accept_invitation():
    token = _required_string(_json_object(), 'token')

    verifier = verification_service.accept_invitation(token, **get_request_metadata())
    return jsonify({'success': True, 'verifier': verifier.to_dict()})
