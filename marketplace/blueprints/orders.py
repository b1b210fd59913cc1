from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user
from marketplace.extensions import db
from marketplace.models import Order, UserRole
from marketplace.serializers import serialize_order
from marketplace.utils import page_args, paginate_query
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('orders', __name__)


@bp.route('', methods=['GET'])
@login_required
def list_orders():
    q = Order.query
    if current_user.role == UserRole.SELLER:
        q = q.filter(Order.seller_id == current_user.id)
    elif current_user.role == UserRole.BUYER:
        q = q.filter(Order.buyer_id == current_user.id)

    page, per_page = page_args(current_app.config['ITEMS_PER_PAGE'])
    result = paginate_query(
        q.order_by(Order.created_at.desc(), Order.id.desc()),
        page,
        per_page)
    result['items'] = [serialize_order(o) for o in result['items']]
    return jsonify(result)


@bp.route('/<int:order_id>', methods=['GET'])
@login_required
def get_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        return jsonify({'error': 'Order not found'}), 404
    if (
        current_user.role != UserRole.ADMIN
        and current_user.id not in (order.buyer_id, order.seller_id)
    ):
        return jsonify({'error': 'No permission to access this order'}), 403
    return jsonify({'order': serialize_order(order)})
