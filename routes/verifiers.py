from flask import Blueprint, jsonify, request
from routes.auth import get_current_user, get_request_metadata, login_required
from services.errors import ValidationError
from services.verification_service import VerificationService


verifiers_bp = Blueprint('verifiers', __name__)
verification_service = VerificationService()


@verifiers_bp.route('/switches/<int:switch_id>/verifiers', methods=['GET'])
@login_required
def list_verifiers(switch_id):
    verifiers = verification_service.list_verifiers(switch_id, get_current_user().id)
    return jsonify({'success': True, 'verifiers': [v.to_dict() for v in verifiers]})


@verifiers_bp.route('/switches/<int:switch_id>/verifiers', methods=['POST'])
@login_required
def add_verifier(switch_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    verifier = verification_service.add_verifier(switch_id, get_current_user().id, data.get('email'),
                                                 name=data.get('name'), **get_request_metadata())
    return jsonify({'success': True, 'verifier': verifier.to_dict()}), 201


@verifiers_bp.route('/verifiers/<int:verifier_id>', methods=['DELETE'])
@login_required
def revoke_verifier(verifier_id):
    verifier = verification_service.revoke_verifier(verifier_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True, 'verifier': verifier.to_dict()})
