from flask import request, jsonify
from flask_login import current_user
from functools import wraps
import logging

logger = logging.getLogger(__name__)

# Exact paths that never require login
LOGIN_WHITELIST = [
    '/',
    '/favicon.ico',
    '/api/auth/login',
    '/api/auth/register',
]


def is_public_catalog_path(path: str) -> bool:
    # Product and service detail pages are browsable anonymously, but the
    # per-buyer views under them are not.
    for prefix in ('/api/products/', '/api/services/'):
        if path.startswith(prefix):
            rest = path[len(prefix):]
            return rest.isdigit()
    return False


def is_static_file(path):
    return path.startswith('/static/')


def setup_auth_middleware(app):

    @app.before_request
    def require_login():
        path = request.path
        method = request.method.upper()

        # Allow static files
        if is_static_file(path):
            return None

        # Allow whitelist paths
        if path in LOGIN_WHITELIST:
            return None

        # Allow anonymous catalog browsing for safe methods
        if method in (
            'GET',
            'HEAD',
                'OPTIONS') and is_public_catalog_path(path):
            return None

        if not current_user.is_authenticated:
            if path.startswith('/api/'):
                return jsonify({'error': 'Not logged in',
                               'login_required': True}), 401
            return jsonify({'error': 'Not found'}), 404

        if not current_user.is_active:
            return jsonify({'error': 'Account disabled'}), 403

        return None


def role_required(*allowed_roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Not logged in'}), 401

            # allowed_roles is a list of role names.
            if current_user.role.value not in allowed_roles:
                logger.warning(
                    "User %s attempted to access roles %s, current role: %s",
                    current_user.id,
                    allowed_roles,
                    current_user.role.value,
                )
                return jsonify({'error': 'Insufficient permissions'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
