"""Request authentication helpers.

Sessions are issued by the external authentication service; these helpers
only read the signed session cookie.
"""
from functools import wraps

from flask import jsonify, request, session

from extensions import db
from models.user import User


def get_current_user():
    """Get current logged in user"""
    if 'user_id' in session:
        return db.session.get(User, session['user_id'])
    return None


def login_required(f):
    """Decorator to require login for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require an administrator"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        if not user.is_admin:
            return jsonify({'success': False, 'error': 'Administrator access required'}), 403
        return f(*args, **kwargs)
    return decorated_function


def get_request_metadata():
    """Client IP and user agent for audit events"""
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip_address = forwarded.split(',')[0].strip() if forwarded else request.remote_addr
    return {
        'ip_address': ip_address,
        'user_agent': request.headers.get('User-Agent')
    }
