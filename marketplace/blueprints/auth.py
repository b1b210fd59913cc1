from flask import Blueprint, request, jsonify
from flask_login import (
    login_user,
    logout_user,
    login_required,
    current_user,
)
from marketplace.extensions import db
from marketplace.models import User, UserRole
from marketplace.serializers import serialize_user
from marketplace.services.audit_service import log_audit
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)

# Admin accounts are created with init_data.py, never self-registered.
REGISTERABLE_ROLES = ('BUYER', 'SELLER')


@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400

    user = User.query.filter_by(email=email).first()

    if user and user.check_password(password) and user.is_active:
        login_user(user, remember=True)
        user.last_login_at = datetime.utcnow()
        db.session.commit()

        log_audit(
            actor_id=user.id,
            actor_role=user.role.value,
            action='LOGIN_SUCCESS',
            target_type='USER',
            target_id=user.id,
            payload={'event': 'login_success'}
        )
        return jsonify(
            {'ok': True, 'role': user.role.value, 'user_id': user.id})

    log_audit(
        actor_id=None,
        actor_role='ANONYMOUS',
        action='LOGIN_FAILED',
        target_type='USER',
        target_id=None,
        payload={
            'reason': 'invalid_credentials' if user else 'user_not_found'})
    return jsonify({'error': 'Invalid email or password'}), 401


@bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    display_name = (data.get('display_name') or '').strip() or None
    role = (data.get('role') or 'BUYER').upper()

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400
    if len(password) < 6:
        return jsonify(
            {'error': 'Password must be at least 6 characters'}), 400
    if role not in REGISTERABLE_ROLES:
        return jsonify({'error': 'Invalid role'}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    user = User(email=email, display_name=display_name, role=UserRole[role])
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    log_audit(
        actor_id=user.id,
        actor_role=user.role.value,
        action='REGISTER',
        target_type='USER',
        target_id=user.id,
        payload={'role': role}
    )

    # Auto login
    login_user(user, remember=True)
    return jsonify(
        {'ok': True, 'role': user.role.value, 'user_id': user.id}), 201


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='LOGOUT',
        target_type='USER',
        target_id=current_user.id
    )
    logout_user()
    return jsonify({'ok': True})


@bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': serialize_user(current_user)})
