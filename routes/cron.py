import hmac

from flask import Blueprint, current_app, jsonify, request
from services.scheduler import Scheduler


cron_bp = Blueprint('cron', __name__)


def _authorized():
    secret = current_app.config.get('CRON_SECRET')
    if not secret:
        return False
    header = request.headers.get('Authorization', '')
    expected = f'Bearer {secret}'
    return hmac.compare_digest(header.encode('utf-8'), expected.encode('utf-8'))


@cron_bp.route('/cron', methods=['GET', 'POST'])
def run_cron():
    """Run one scheduler cycle for an external cron trigger."""
    if not _authorized():
        current_app.logger.warning(f'Rejected cron request from {request.remote_addr}')
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    reports = Scheduler().run_all_jobs()
    return jsonify({
        'success': all(not r.errors for r in reports),
        'jobs': [r.to_dict() for r in reports]
    })
