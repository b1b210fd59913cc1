from flask import Blueprint, request, jsonify
from flask_login import current_user
from marketplace.extensions import db
from marketplace.middleware import role_required
from marketplace.models import Product, Service
from marketplace.serializers import (
    serialize_design,
    serialize_product,
    serialize_service,
)
from marketplace.services.cart_service import check_purchase_requirements
from marketplace.services.design_service import approved_variants
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('catalog', __name__)


@bp.route('/products/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        return jsonify({'error': 'Product not found'}), 404
    return jsonify({'product': serialize_product(product)})


@bp.route('/services/<int:service_id>', methods=['GET'])
def get_service(service_id):
    service = db.session.get(Service, service_id)
    if service is None or not service.is_active:
        return jsonify({'error': 'Service not found'}), 404
    return jsonify({'service': serialize_service(service)})


@bp.route('/products/<int:product_id>/approved-variants', methods=['GET'])
@role_required('BUYER')
def get_approved_variants(product_id):
    product, by_variant = approved_variants(current_user, product_id)
    return jsonify({
        'product_id': product.id,
        'approved_variant_ids': sorted(by_variant.keys()),
        'designs': {
            str(variant_id): serialize_design(design)
            for variant_id, design in by_variant.items()
        },
    })


@bp.route('/products/<int:product_id>/purchase-requirements',
          methods=['GET'])
@role_required('BUYER')
def product_purchase_requirements(product_id):
    variant_id = request.args.get('variant_id', type=int)
    result = check_purchase_requirements(
        current_user, product_id=product_id, variant_id=variant_id)
    return jsonify(result)


@bp.route('/services/<int:service_id>/purchase-requirements',
          methods=['GET'])
@role_required('BUYER')
def service_purchase_requirements(service_id):
    package_id = request.args.get('package_id', type=int)
    result = check_purchase_requirements(
        current_user, service_id=service_id, package_id=package_id)
    return jsonify(result)
