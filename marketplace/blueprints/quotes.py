from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from marketplace.errors import PermissionDeniedError, ValidationError
from marketplace.middleware import role_required
from marketplace.models import Quote, QuoteStatus, UserRole
from marketplace.serializers import serialize_order, serialize_quote
from marketplace.services import quote_service
from marketplace.services.conversation_service import active_quote
from marketplace.utils import (
    page_args,
    paginate_query,
    parse_datetime,
    parse_int,
    parse_optional_id,
)
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('quotes', __name__)


def _quote_response(quote):
    current = active_quote(quote.conversation_id)
    data = serialize_quote(
        quote, is_active=current is not None and current.id == quote.id)
    data['purchase_path'] = quote_service.purchase_path(quote)
    return data


@bp.route('', methods=['POST'])
@role_required('SELLER')
def create_quote():
    data = request.get_json(silent=True) or {}
    if not data.get('conversation_id'):
        return jsonify({'error': 'conversation_id is required'}), 400

    price = data.get('quoted_price')
    if price is None:
        price = data.get('amount')

    quote = quote_service.create_quote(
        current_user,
        parse_int(data.get('conversation_id'), 'conversation_id'),
        price,
        quantity=data.get('quantity', 1),
        product_variant_id=parse_optional_id(
            data.get('product_variant_id'), 'product_variant_id'),
        service_package_id=parse_optional_id(
            data.get('service_package_id'), 'service_package_id'),
        design_approval_id=parse_optional_id(
            data.get('design_approval_id'), 'design_approval_id'),
        expires_at=parse_datetime(data.get('expires_at'), 'expires_at'),
        notes=data.get('notes'),
    )
    return jsonify({'ok': True, 'quote': _quote_response(quote)}), 201


@bp.route('', methods=['GET'])
@login_required
def list_quotes():
    q = Quote.query
    if current_user.role == UserRole.SELLER:
        q = q.filter(Quote.seller_id == current_user.id)
    elif current_user.role == UserRole.BUYER:
        q = q.filter(Quote.buyer_id == current_user.id)

    status = (request.args.get('status') or '').strip().lower()
    if status:
        try:
            q = q.filter(Quote.status == QuoteStatus(status))
        except ValueError:
            raise ValidationError(f'Unknown status: {status}', field='status')

    page, per_page = page_args(current_app.config['ITEMS_PER_PAGE'])
    result = paginate_query(
        q.order_by(Quote.created_at.desc(), Quote.id.desc()),
        page,
        per_page)
    result['items'] = [serialize_quote(x) for x in result['items']]
    return jsonify(result)


@bp.route('/<int:quote_id>', methods=['GET'])
@login_required
def get_quote(quote_id):
    quote = quote_service.get_quote(quote_id)
    if not quote_service.quote_accessible(quote, current_user):
        raise PermissionDeniedError('No permission to access this quote')
    return jsonify({'quote': _quote_response(quote)})


@bp.route('/<int:quote_id>/accept', methods=['POST'])
@role_required('BUYER')
def accept_quote(quote_id):
    quote = quote_service.accept_quote(current_user, quote_id)
    return jsonify({'ok': True, 'quote': _quote_response(quote)})


@bp.route('/<int:quote_id>/reject', methods=['POST'])
@role_required('BUYER')
def reject_quote(quote_id):
    data = request.get_json(silent=True) or {}
    quote = quote_service.reject_quote(
        current_user, quote_id, data.get('reason'))
    return jsonify({'ok': True, 'quote': _quote_response(quote)})


@bp.route('/<int:quote_id>/purchase', methods=['POST'])
@role_required('BUYER')
def purchase_quote(quote_id):
    data = request.get_json(silent=True) or {}
    order = quote_service.purchase_quote(
        current_user,
        quote_id,
        (data.get('payment_method') or '').strip().lower(),
        shipping_address=data.get('shipping_address'),
    )
    return jsonify({'ok': True, 'order': serialize_order(order)}), 201
