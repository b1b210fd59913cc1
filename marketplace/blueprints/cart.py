from flask import Blueprint, request, jsonify
from flask_login import current_user
from marketplace.middleware import role_required
from marketplace.serializers import serialize_cart_item, serialize_order
from marketplace.services import cart_service
from marketplace.utils import format_money, parse_int, parse_optional_id
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('cart', __name__)


@bp.route('', methods=['GET'])
@role_required('BUYER')
def get_cart():
    items = cart_service.list_cart(current_user)
    return jsonify({
        'items': [serialize_cart_item(i) for i in items],
        'total_amount': format_money(cart_service.cart_total(items)),
    })


@bp.route('', methods=['POST'])
@role_required('BUYER')
def add_cart_item():
    data = request.get_json(silent=True) or {}
    if not data.get('product_variant_id'):
        return jsonify({'error': 'product_variant_id is required'}), 400

    item, created = cart_service.add_to_cart(
        current_user,
        parse_int(data.get('product_variant_id'), 'product_variant_id'),
        quantity=data.get('quantity'),
        design_approval_id=parse_optional_id(
            data.get('design_approval_id'), 'design_approval_id'),
        quote_id=parse_optional_id(data.get('quote_id'), 'quote_id'),
    )
    return jsonify({
        'ok': True,
        'created': created,
        'item': serialize_cart_item(item),
    }), 201 if created else 200


@bp.route('/items/<int:item_id>', methods=['PATCH'])
@role_required('BUYER')
def update_cart_item(item_id):
    data = request.get_json(silent=True) or {}
    if data.get('quantity') is None:
        return jsonify({'error': 'quantity is required'}), 400
    item = cart_service.update_quantity(
        current_user, item_id, data.get('quantity'))
    return jsonify({'ok': True, 'item': serialize_cart_item(item)})


@bp.route('/items/<int:item_id>', methods=['DELETE'])
@role_required('BUYER')
def delete_cart_item(item_id):
    cart_service.remove_item(current_user, item_id)
    return jsonify({'ok': True})


@bp.route('', methods=['DELETE'])
@role_required('BUYER')
def clear_cart():
    removed = cart_service.clear_cart(current_user)
    return jsonify({'ok': True, 'removed': removed})


@bp.route('/checkout', methods=['POST'])
@role_required('BUYER')
def checkout():
    data = request.get_json(silent=True) or {}
    orders = cart_service.checkout(
        current_user,
        (data.get('payment_method') or '').strip().lower(),
        shipping_address=data.get('shipping_address'),
    )
    return jsonify({
        'ok': True,
        'orders': [serialize_order(o) for o in orders],
    }), 201
