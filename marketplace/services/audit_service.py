from marketplace.extensions import db
from marketplace.models import AuditLog
from flask import request, has_request_context
import logging
import json

logger = logging.getLogger(__name__)
major_logger = logging.getLogger('major_events')
if not major_logger.handlers:
    handler = logging.FileHandler('major_events.log')
    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    major_logger.addHandler(handler)
    major_logger.setLevel(logging.INFO)
    major_logger.propagate = False

MAJOR_ACTION_PREFIXES = (
    'LOGIN',
    'LOGOUT',
    'REGISTER',
    'QUOTE_',
    'DESIGN_',
    'CART_',
    'ORDER_',
)


def _should_log_major(action: str) -> bool:
    if not action:
        return False
    return action.startswith(MAJOR_ACTION_PREFIXES)


def actor_fields(user):
    """(actor_id, actor_role) pair for a user, or for the system."""
    if user is None or not getattr(user, 'is_authenticated', False):
        return None, 'SYSTEM'
    return user.id, user.role.value


def log_audit(
        actor_id=None,
        actor_role='ANONYMOUS',
        action='',
        target_type=None,
        target_id=None,
        payload=None,
        ip=None,
        user_agent=None,
        commit=True):
    """Record an audit entry.

    With ``commit=False`` the row joins the caller's transaction, so the
    entry lands or rolls back together with the change it describes.
    """
    path = None
    method = None
    if has_request_context():
        if not ip:
            ip = request.remote_addr
        if not user_agent:
            user_agent = request.headers.get('User-Agent')
        path = request.path
        method = request.method

    audit = AuditLog(
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        target_type=target_type,
        target_id=target_id,
        ip=ip,
        user_agent=(user_agent or '')[:500] or None
    )
    if payload:
        audit.set_payload(payload)

    db.session.add(audit)
    if commit:
        try:
            db.session.commit()
        except Exception as e:
            logger.error(f"Failed to log audit: {e}", exc_info=True)
            db.session.rollback()
            return None

    payload_brief = None
    if payload is not None:
        payload_brief = json.dumps(
            payload, ensure_ascii=False, default=str, separators=(
                ',', ':'))
        if len(payload_brief) > 600:
            payload_brief = payload_brief[:600] + '...'

    logger.info(
        "AUDIT action=%s actor_role=%s actor_id=%s target_type=%s "
        "target_id=%s method=%s path=%s payload=%s",
        action,
        actor_role,
        actor_id,
        target_type,
        target_id,
        method,
        path,
        payload_brief,
    )

    if _should_log_major(action):
        major_logger.info(
            "action=%s actor_role=%s actor_id=%s target_type=%s "
            "target_id=%s method=%s path=%s payload=%s",
            action,
            actor_role,
            actor_id,
            target_type,
            target_id,
            method,
            path,
            payload_brief,
        )
    return audit
