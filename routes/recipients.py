from flask import Blueprint, jsonify, request
from routes.auth import get_current_user, get_request_metadata, login_required
from services import message_service, recipient_service
from services.errors import ValidationError


recipients_bp = Blueprint('recipients', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@recipients_bp.route('/switches/<int:switch_id>/recipients', methods=['GET'])
@login_required
def list_recipients(switch_id):
    recipients = recipient_service.list_recipients(switch_id, get_current_user().id)
    return jsonify({'success': True, 'recipients': [r.to_dict() for r in recipients]})


@recipients_bp.route('/switches/<int:switch_id>/recipients', methods=['POST'])
@login_required
def add_recipient(switch_id):
    data = _json_body()
    recipient = recipient_service.add_recipient(switch_id, get_current_user().id, data.get('email'),
                                                name=data.get('name'), **get_request_metadata())
    return jsonify({'success': True, 'recipient': recipient.to_dict()}), 201


@recipients_bp.route('/recipients/<int:recipient_id>', methods=['PATCH'])
@login_required
def update_recipient(recipient_id):
    data = _json_body()
    recipient = recipient_service.update_recipient(recipient_id, get_current_user().id,
                                                   email=data.get('email'), name=data.get('name'),
                                                   **get_request_metadata())
    return jsonify({'success': True, 'recipient': recipient.to_dict()})


@recipients_bp.route('/recipients/<int:recipient_id>', methods=['DELETE'])
@login_required
def remove_recipient(recipient_id):
    recipient_service.remove_recipient(recipient_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True})


@recipients_bp.route('/recipients/<int:recipient_id>/message', methods=['GET'])
@login_required
def get_message(recipient_id):
    message = message_service.get_message(recipient_id, get_current_user().id)
    return jsonify({'success': True, 'message': message})


@recipients_bp.route('/recipients/<int:recipient_id>/message', methods=['PUT'])
@login_required
def set_message(recipient_id):
    data = _json_body()
    message = message_service.set_message(recipient_id, get_current_user().id, data.get('content'),
                                          subject=data.get('subject'), **get_request_metadata())
    return jsonify({'success': True, 'message': message.to_dict()})


@recipients_bp.route('/recipients/<int:recipient_id>/message', methods=['DELETE'])
@login_required
def delete_message(recipient_id):
    message_service.delete_message(recipient_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True})
