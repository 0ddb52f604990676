from flask import Blueprint, jsonify, request
from routes.auth import admin_required, get_current_user, get_request_metadata, login_required
from services import switch_service
from services.errors import ValidationError
from services.verification_service import VerificationService


switches_bp = Blueprint('switches', __name__)

CREATE_FIELDS = ('name', 'check_in_interval_days', 'grace_period_days', 'verification_window_days',
                 'final_delay_hours', 'use_verifiers', 'required_confirmations')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _switch_payload(switch):
    payload = switch.to_dict()
    active = VerificationService().get_active_request(switch.id)
    payload['verification_request'] = active.to_dict() if active else None
    return payload


@switches_bp.route('/switches', methods=['GET'])
@login_required
def list_switches():
    user = get_current_user()
    switches = switch_service.list_switches(
        user.id,
        status=request.args.get('status'),
        limit=min(request.args.get('limit', 50, type=int), 100),
        offset=request.args.get('offset', 0, type=int)
    )
    return jsonify({'success': True, 'switches': [s.to_dict() for s in switches]})


@switches_bp.route('/switches', methods=['POST'])
@login_required
def create_switch():
    data = _json_body()
    for required in ('name', 'check_in_interval_days', 'grace_period_days'):
        if required not in data:
            raise ValidationError(f'{required} is required')

    user = get_current_user()
    fields = {key: data[key] for key in CREATE_FIELDS if key in data}
    switch = switch_service.create_switch(user.id, **fields, **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()}), 201


@switches_bp.route('/switches/<int:switch_id>', methods=['GET'])
@login_required
def get_switch(switch_id):
    switch = switch_service.get_switch(switch_id, get_current_user().id)
    return jsonify({'success': True, 'switch': _switch_payload(switch)})


@switches_bp.route('/switches/<int:switch_id>', methods=['PATCH'])
@login_required
def update_switch(switch_id):
    switch = switch_service.update_switch(switch_id, get_current_user().id, _json_body(),
                                          **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>', methods=['DELETE'])
@login_required
def delete_switch(switch_id):
    switch_service.delete_switch(switch_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True})


@switches_bp.route('/switches/<int:switch_id>/checkin', methods=['POST'])
@login_required
def check_in(switch_id):
    switch = switch_service.check_in(switch_id, get_current_user().id)
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>/cancel', methods=['POST'])
@login_required
def cancel_switch(switch_id):
    switch = switch_service.cancel_switch(switch_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>/reactivate', methods=['POST'])
@login_required
def reactivate_switch(switch_id):
    switch = switch_service.reactivate_switch(switch_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>/pause', methods=['POST'])
@admin_required
def pause_switch(switch_id):
    data = request.get_json(silent=True) or {}
    switch = switch_service.pause_switch(switch_id, get_current_user().id, reason=data.get('reason'),
                                         **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>/resume', methods=['POST'])
@admin_required
def resume_switch(switch_id):
    switch = switch_service.resume_switch(switch_id, get_current_user().id, **get_request_metadata())
    return jsonify({'success': True, 'switch': switch.to_dict()})


@switches_bp.route('/switches/<int:switch_id>/audit', methods=['GET'])
@login_required
def audit_trail(switch_id):
    events = switch_service.get_audit_trail(
        switch_id,
        get_current_user().id,
        limit=min(request.args.get('limit', 50, type=int), 200),
        offset=request.args.get('offset', 0, type=int)
    )
    return jsonify({'success': True, 'events': [e.to_dict() for e in events]})
