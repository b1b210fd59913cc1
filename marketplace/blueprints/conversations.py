from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from marketplace.middleware import role_required
from marketplace.models import Message, Quote
from marketplace.serializers import (
    serialize_conversation,
    serialize_design,
    serialize_message,
    serialize_quote,
)
from marketplace.services import (
    conversation_service,
    design_service,
    selection_cache,
)
from marketplace.utils import page_args, paginate_query, parse_optional_id
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('conversations', __name__)


@bp.route('', methods=['POST'])
@role_required('BUYER')
def start_conversation():
    data = request.get_json(silent=True) or {}
    conv, created = conversation_service.start_conversation(
        current_user,
        product_id=parse_optional_id(data.get('product_id'), 'product_id'),
        service_id=parse_optional_id(data.get('service_id'), 'service_id'),
        context=(data.get('context') or 'product').lower(),
        initial_message=data.get('initial_message'),
    )
    return jsonify({
        'conversation': serialize_conversation(conv),
        'created': created,
    }), 201 if created else 200


@bp.route('', methods=['GET'])
@login_required
def list_conversations():
    page, per_page = page_args(current_app.config['ITEMS_PER_PAGE'])
    result = paginate_query(
        conversation_service.list_conversations(current_user),
        page,
        per_page)
    result['items'] = [serialize_conversation(c) for c in result['items']]
    return jsonify(result)


@bp.route('/<int:conversation_id>', methods=['GET'])
@login_required
def get_conversation(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    data = serialize_conversation(conv)
    data['workflow'] = conversation_service.build_workflow_state(conv)
    return jsonify(data)


@bp.route('/<int:conversation_id>/workflow', methods=['GET'])
@login_required
def get_workflow(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    return jsonify(conversation_service.build_workflow_state(conv))


@bp.route('/<int:conversation_id>/quote-request', methods=['POST'])
@role_required('BUYER')
def request_quote(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    data = request.get_json(silent=True) or {}
    conv = conversation_service.request_quote(
        conv, current_user, data.get('message'))
    return jsonify({
        'conversation': serialize_conversation(conv),
        'workflow': conversation_service.build_workflow_state(conv),
    })


@bp.route('/<int:conversation_id>/messages', methods=['GET'])
@login_required
def get_messages(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)

    after_id = request.args.get('after_id', type=int)
    limit = request.args.get('limit', 50, type=int)
    if limit > 200:
        limit = 200

    q = Message.query.filter_by(
        conversation_id=conv.id).order_by(
        Message.created_at.asc(), Message.id.asc())
    if after_id:
        q = q.filter(Message.id > after_id)

    return jsonify({
        'items': [serialize_message(m) for m in q.limit(limit).all()],
        'conversation': serialize_conversation(conv),
    })


@bp.route('/<int:conversation_id>/messages', methods=['POST'])
@login_required
def send_message(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    data = request.get_json(silent=True) or {}
    msg = conversation_service.send_message(
        conv, current_user, data.get('content'))
    return jsonify({'ok': True, 'message': serialize_message(msg)}), 201


@bp.route('/<int:conversation_id>/quotes', methods=['GET'])
@login_required
def list_conversation_quotes(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    quotes = Quote.query.filter_by(conversation_id=conv.id).order_by(
        Quote.created_at.desc(), Quote.id.desc()).all()
    active_id = quotes[0].id if quotes else None
    return jsonify({
        'items': [serialize_quote(q, is_active=q.id == active_id)
                  for q in quotes],
        'active_quote_id': active_id,
    })


@bp.route('/<int:conversation_id>/active-quote', methods=['GET'])
@login_required
def get_active_quote(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    quote = conversation_service.active_quote(conv.id)
    return jsonify({
        'quote': serialize_quote(quote, is_active=True) if quote else None,
    })


@bp.route('/<int:conversation_id>/design-approvals', methods=['GET'])
@login_required
def list_conversation_designs(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    designs = design_service.list_designs(
        current_user, conversation_id=conv.id).all()
    return jsonify({'items': [serialize_design(d) for d in designs]})


@bp.route('/<int:conversation_id>/approved-design', methods=['GET'])
@login_required
def get_approved_design(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    design = design_service.approved_design_for_conversation(conv.id)
    return jsonify({
        'design': serialize_design(design) if design else None,
    })


@bp.route('/<int:conversation_id>/selection', methods=['GET'])
@login_required
def get_selection(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    return jsonify(selection_cache.get_selection(conv))


@bp.route('/<int:conversation_id>/selection', methods=['PUT'])
@login_required
def set_selection(conversation_id):
    conv = conversation_service.get_accessible_conversation(
        conversation_id, current_user)
    data = request.get_json(silent=True) or {}
    value = parse_optional_id(data.get('value'), 'value')
    return jsonify(selection_cache.set_selection(conv, value))
