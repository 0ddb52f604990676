from flask import Blueprint, jsonify
from services import switch_service


checkin_bp = Blueprint('checkin', __name__)


@checkin_bp.route('/checkin/<token>', methods=['POST'])
def check_in_with_token(token):
    """Check in from an e-mailed link; no session needed."""
    switch = switch_service.check_in_with_token(token)
    return jsonify({
        'success': True,
        'switch_id': switch.id,
        'status': switch.status,
        'next_check_in_due_at': switch.next_check_in_due_at.isoformat() if switch.next_check_in_due_at else None
    })
