import logging
from functools import wraps

from flask import Blueprint, jsonify, request, session
from werkzeug.security import check_password_hash

from database import get_db

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth_bp', __name__, url_prefix='/api/auth')


# --- AUTHENTICATION ---
def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'status': 'error', 'message': 'You need to be logged in to access this page.'}), 401
        return f(*args, **kwargs)
    return decorated_function


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or request.form
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    admin = get_db().execute('SELECT * FROM admins WHERE username = ?', (username,)).fetchone()
    if admin and check_password_hash(admin['password_hash'], password):
        session.clear()
        session.permanent = bool(data.get('remember'))
        session['admin_id'] = admin['id']
        session['admin_username'] = admin['username']
        logger.info("Admin '%s' logged in", username)
        return jsonify({'status': 'success', 'username': admin['username']})

    logger.warning("Failed login for '%s'", username)
    return jsonify({'status': 'error', 'message': 'Invalid username or password.'}), 401


@auth_bp.route('/verify')
@login_required
def verify():
    return jsonify({'status': 'success', 'username': session.get('admin_username')})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'success', 'message': 'You have been successfully logged out.'})
