"""Bridge from negotiated quotes and approved designs to cart lines and
orders."""
from decimal import Decimal
import logging

from flask import current_app

from marketplace.extensions import db
from marketplace.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.models import (
    CartItem,
    DesignApproval,
    DesignApprovalContext,
    DesignApprovalStatus,
    Order,
    OrderType,
    Product,
    ProductVariant,
    Quote,
    QuoteStatus,
    Service,
)
from marketplace.services.audit_service import actor_fields, log_audit
from marketplace.services.design_service import (
    approved_design_for_package,
    approved_design_for_quote,
    approved_design_for_variant,
    approved_design_with_fallback,
    bind_sole_variant,
)
from marketplace.utils import format_money, parse_int

logger = logging.getLogger(__name__)

REASON_MESSAGES = {
    # Raised when a cart add or direct purchase is refused.
    'quote_required': 'This item requires an accepted custom quote.',
    'design_required': 'This item requires a seller-approved design.',
    # Reported by check_purchase_requirements.
    'quote_missing': 'A custom quote is required for this item. '
                     'Request a quote from the seller.',
    'quote_pending': "Waiting for you to accept the seller's quote.",
    'quote_rejected': "You rejected the seller's quote. "
                      'Request a new quote if you are still interested.',
    'quote_expired': "The seller's quote has expired. "
                     'Request a new quote.',
    'design_missing': 'Design approval is required for this item. '
                      'Upload your design files in the conversation.',
    'design_pending': 'Waiting for the seller to approve your design.',
    'design_rejected': 'The seller rejected your design. '
                       'Upload a new design.',
    'design_changes_requested': 'The seller requested changes to your '
                                'design. Update and resubmit it.',
}

QUOTE_BLOCKING_REASONS = {
    QuoteStatus.PENDING: 'quote_pending',
    QuoteStatus.SENT: 'quote_pending',
    QuoteStatus.REJECTED: 'quote_rejected',
    QuoteStatus.EXPIRED: 'quote_expired',
}

DESIGN_BLOCKING_REASONS = {
    DesignApprovalStatus.PENDING: 'design_pending',
    DesignApprovalStatus.REJECTED: 'design_rejected',
    DesignApprovalStatus.CHANGES_REQUESTED: 'design_changes_requested',
}


def _accepted_quote_for(buyer_id, product_id=None, service_id=None,
                        variant_id=None, package_id=None):
    q = Quote.query.filter(
        Quote.buyer_id == buyer_id,
        Quote.status == QuoteStatus.ACCEPTED,
    )
    if product_id:
        q = q.filter(Quote.product_id == product_id)
        if variant_id:
            q = q.filter(Quote.product_variant_id == variant_id)
    else:
        q = q.filter(Quote.service_id == service_id)
        if package_id:
            q = q.filter(Quote.service_package_id == package_id)
    return q.order_by(Quote.accepted_at.desc()).first()


def _has_approved_item_design(buyer_id, product_id=None, service_id=None):
    q = DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer_id,
        DesignApproval.context == DesignApprovalContext.PRODUCT,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    )
    if product_id:
        q = q.filter(DesignApproval.product_id == product_id)
    else:
        q = q.filter(DesignApproval.service_id == service_id)
    return q.first() is not None


def _latest_quote_for(buyer_id, product_id=None, service_id=None):
    q = Quote.query.filter(Quote.buyer_id == buyer_id)
    if product_id:
        q = q.filter(Quote.product_id == product_id)
    else:
        q = q.filter(Quote.service_id == service_id)
    return q.order_by(Quote.created_at.desc(), Quote.id.desc()).first()


def _latest_design_for(buyer_id, product_id=None, service_id=None):
    q = DesignApproval.query.filter(DesignApproval.buyer_id == buyer_id)
    if product_id:
        q = q.filter(DesignApproval.product_id == product_id)
    else:
        q = q.filter(DesignApproval.service_id == service_id)
    return q.order_by(
        DesignApproval.created_at.desc(),
        DesignApproval.id.desc(),
    ).first()


def check_purchase_requirements(buyer, product_id=None, service_id=None,
                                variant_id=None, package_id=None):
    """Report whether the buyer can buy an item right now, and why not."""
    if product_id:
        item = db.session.get(Product, product_id)
    else:
        item = db.session.get(Service, service_id)
    if item is None:
        raise NotFoundError('Item not found')

    quote = _accepted_quote_for(
        buyer.id, product_id, service_id, variant_id, package_id)
    has_item_design = _has_approved_item_design(
        buyer.id, product_id, service_id)

    has_design = False
    if item.requires_design_approval:
        if quote is not None:
            has_design = approved_design_for_quote(quote) is not None
        if not has_design and product_id and variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is not None and variant.product_id == item.id:
                has_design = approved_design_for_variant(
                    buyer.id, variant) is not None
                # A variant-less design counts once it can be bound to
                # the product's only variant.
                if not has_design and len(item.variants) == 1:
                    has_design = has_item_design
        elif not has_design and product_id:
            has_design = has_item_design
        elif not has_design and service_id:
            has_design = approved_design_for_package(
                buyer.id, service_id, package_id) is not None

    quote_status = None
    design_status = None
    reasons = []
    # An approved design negotiated outside a quote also unlocks a
    # quote-only item.
    if item.requires_quote and quote is None and not has_item_design:
        latest = _latest_quote_for(buyer.id, product_id, service_id)
        if latest is None:
            quote_status = 'none'
            reasons.append('quote_missing')
        else:
            status = latest.effective_status
            quote_status = status.value
            # An accepted quote for another option does not cover this one.
            reasons.append(QUOTE_BLOCKING_REASONS.get(status, 'quote_missing'))
    elif item.requires_quote and quote is not None:
        quote_status = QuoteStatus.ACCEPTED.value

    if item.requires_design_approval and not has_design:
        latest = _latest_design_for(buyer.id, product_id, service_id)
        if latest is None:
            design_status = 'none'
            reasons.append('design_missing')
        else:
            design_status = latest.status.value
            reasons.append(
                DESIGN_BLOCKING_REASONS.get(latest.status, 'design_missing'))
    elif item.requires_design_approval:
        design_status = DesignApprovalStatus.APPROVED.value

    return {
        'can_purchase': not reasons,
        'requires_quote': item.requires_quote,
        'requires_design_approval': item.requires_design_approval,
        'quote_status': quote_status,
        'design_status': design_status,
        'has_accepted_quote': quote is not None,
        'accepted_quote_id': quote.id if quote else None,
        'has_approved_design': has_design,
        'reasons': reasons,
        'messages': [REASON_MESSAGES[r] for r in reasons],
    }


def _load_quote_for_cart(buyer, quote_id, variant):
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError('Quote not found')
    if quote.buyer_id != buyer.id:
        raise PermissionDeniedError('This quote belongs to another buyer')
    if quote.status != QuoteStatus.ACCEPTED:
        raise InvalidStateError(
            'Only an accepted quote can be added to the cart',
            status=quote.effective_status.value)
    if quote.product_variant_id != variant.id:
        raise ValidationError(
            'Variant does not match the accepted quote',
            field='product_variant_id')
    if Order.query.filter_by(quote_id=quote.id).first() is not None:
        raise InvalidStateError('This quote has already been purchased')
    return quote


def _load_design_for_cart(buyer, design_approval_id, variant):
    design = db.session.get(DesignApproval, design_approval_id)
    if design is None:
        raise NotFoundError('Design approval not found')
    if design.buyer_id != buyer.id:
        raise PermissionDeniedError('This design belongs to another buyer')
    if design.status != DesignApprovalStatus.APPROVED:
        raise InvalidStateError(
            'Design has not been approved', status=design.status.value)
    if design.product_id != variant.product_id:
        raise ValidationError(
            'Design does not belong to this product',
            field='design_approval_id')
    if design.variant_id is None:
        bind_sole_variant(design, buyer)
    if design.variant_id is not None and design.variant_id != variant.id:
        raise ValidationError(
            'Design was approved for a different variant',
            field='design_approval_id')
    return design


def _stage_cart_line(buyer, product_variant_id, quantity,
                     design_approval_id, quote_id):
    variant = db.session.get(ProductVariant, product_variant_id)
    if variant is None:
        raise NotFoundError('Product variant not found')
    product = variant.product
    if not product.is_active:
        raise ValidationError('Product is not available')
    if product.seller_id == buyer.id:
        raise ValidationError('Cannot buy your own product')

    quote = None
    if quote_id:
        quote = _load_quote_for_cart(buyer, quote_id, variant)
        if quantity is not None and parse_int(quantity, 'quantity') != quote.quantity:
            raise ValidationError(
                'Quantity is fixed by the accepted quote',
                field='quantity',
                quote_quantity=quote.quantity)
        quantity = quote.quantity

        existing = CartItem.query.filter_by(
            buyer_id=buyer.id, quote_id=quote.id).first()
        if existing is not None:
            return existing, False, False
    else:
        quantity = parse_int(quantity, 'quantity', default=1)
        if quantity < 1:
            raise ValidationError('quantity must be at least 1', field='quantity')

    design = None
    if design_approval_id:
        design = _load_design_for_cart(buyer, design_approval_id, variant)

    if product.requires_design_approval and design is None:
        if quote is not None:
            design = approved_design_for_quote(quote)
        else:
            design = approved_design_with_fallback(buyer, variant)
        if design is None:
            raise ValidationError(
                REASON_MESSAGES['design_required'], reason='design_required')

    if (
        product.requires_quote
        and quote is None
        and not _has_approved_item_design(buyer.id, product_id=product.id)
    ):
        raise ValidationError(
            REASON_MESSAGES['quote_required'], reason='quote_required')

    item = None
    if quote is None:
        item = CartItem.query.filter_by(
            buyer_id=buyer.id,
            product_variant_id=variant.id,
            design_approval_id=design.id if design else None,
            quote_id=None,
        ).first()

    new_quantity = quantity + (item.quantity if item else 0)
    if new_quantity > variant.inventory:
        raise ValidationError(
            'Insufficient inventory', available=variant.inventory)

    if item is None:
        item = CartItem(
            buyer_id=buyer.id,
            product_variant_id=variant.id,
            quote_id=quote.id if quote else None,
            design_approval_id=design.id if design else None,
            quantity=quantity,
            unit_price_override=quote.quoted_price if quote else None,
        )
        db.session.add(item)
        return item, True, True
    item.quantity = new_quantity
    return item, False, True


def add_to_cart(buyer, product_variant_id, quantity=None,
                design_approval_id=None, quote_id=None):
    """Add a resolved (variant, quantity, price, design) tuple to the cart.

    Returns ``(item, created)``. Quote lines carry the quote's quantity and
    locked price and are never merged; plain lines merge on
    (variant, design).
    """
    try:
        item, created, changed = _stage_cart_line(
            buyer, product_variant_id, quantity, design_approval_id,
            quote_id)
        if not changed:
            return item, False
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='CART_ADD',
        target_type='CART_ITEM',
        target_id=item.id,
        payload={
            'product_variant_id': item.product_variant_id,
            'quantity': item.quantity,
            'quote_id': item.quote_id,
            'design_approval_id': item.design_approval_id,
            'unit_price_override': format_money(item.unit_price_override),
            'merged': not created,
        },
    )
    return item, created


def list_cart(buyer):
    return CartItem.query.filter_by(buyer_id=buyer.id).order_by(
        CartItem.created_at.asc(), CartItem.id.asc()).all()


def cart_total(items):
    return sum(
        (i.effective_unit_price * i.quantity for i in items),
        Decimal('0.00'))


def _get_own_item(buyer, item_id) -> CartItem:
    item = db.session.get(CartItem, item_id)
    if item is None or item.buyer_id != buyer.id:
        raise NotFoundError('Cart item not found')
    return item


def update_quantity(buyer, item_id, quantity) -> CartItem:
    item = _get_own_item(buyer, item_id)
    if item.quote_id:
        raise InvalidStateError(
            'Quantity of a quoted item is fixed by the quote')
    quantity = parse_int(quantity, 'quantity')
    if quantity < 1:
        raise ValidationError('quantity must be at least 1', field='quantity')
    if quantity > item.variant.inventory:
        raise ValidationError(
            'Insufficient inventory', available=item.variant.inventory)
    item.quantity = quantity
    db.session.commit()
    return item


def remove_item(buyer, item_id):
    item = _get_own_item(buyer, item_id)
    db.session.delete(item)
    db.session.commit()

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='CART_REMOVE',
        target_type='CART_ITEM',
        target_id=item_id,
    )


def clear_cart(buyer) -> int:
    count = CartItem.query.filter_by(buyer_id=buyer.id).delete(
        synchronize_session=False)
    db.session.commit()
    return count


def _revalidate_line(item: CartItem):
    if item.quote_id:
        quote = item.quote
        if quote is None or quote.status != QuoteStatus.ACCEPTED:
            raise InvalidStateError(
                'A quoted item is no longer backed by an accepted quote',
                cart_item_id=item.id)
        if Order.query.filter_by(quote_id=quote.id).first() is not None:
            raise InvalidStateError(
                'This quote has already been purchased',
                cart_item_id=item.id)
    if item.design_approval_id:
        design = item.design_approval
        if design is None or design.status != DesignApprovalStatus.APPROVED:
            raise InvalidStateError(
                'A design in the cart is no longer approved',
                cart_item_id=item.id)


def checkout(buyer, payment_method, shipping_address=None):
    """Turn every cart line into an order at its effective price."""
    methods = current_app.config.get('PAYMENT_METHODS', ())
    if payment_method not in methods:
        raise ValidationError(
            'payment_method must be one of: ' + ', '.join(methods),
            field='payment_method')
    shipping_address = (shipping_address or '').strip()
    if not shipping_address:
        raise ValidationError(
            'shipping_address is required', field='shipping_address')

    items = list_cart(buyer)
    if not items:
        raise ValidationError('Cart is empty')

    orders = []
    try:
        for item in items:
            _revalidate_line(item)
            variant = item.variant
            # Conditional decrement so concurrent checkouts cannot
            # oversell one variant.
            updated = ProductVariant.query.filter(
                ProductVariant.id == variant.id,
                ProductVariant.inventory >= item.quantity,
            ).update(
                {'inventory': ProductVariant.inventory - item.quantity},
                synchronize_session=False,
            )
            if updated == 0:
                raise ValidationError(
                    f'Insufficient inventory for {variant.name}',
                    cart_item_id=item.id)

            unit_price = item.effective_unit_price
            order = Order(
                order_type=OrderType.PRODUCT,
                buyer_id=buyer.id,
                seller_id=variant.product.seller_id,
                product_id=variant.product_id,
                product_variant_id=variant.id,
                quote_id=item.quote_id,
                design_approval_id=item.design_approval_id,
                unit_price=unit_price,
                quantity=item.quantity,
                total_amount=unit_price * item.quantity,
                shipping_address=shipping_address,
                payment_method=payment_method,
            )
            db.session.add(order)
            db.session.delete(item)
            orders.append(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    actor_id, actor_role = actor_fields(buyer)
    for order in orders:
        log_audit(
            actor_id=actor_id,
            actor_role=actor_role,
            action='ORDER_CREATED',
            target_type='ORDER',
            target_id=order.id,
            payload={
                'product_variant_id': order.product_variant_id,
                'quote_id': order.quote_id,
                'unit_price': format_money(order.unit_price),
                'quantity': order.quantity,
                'total_amount': format_money(order.total_amount),
                'payment_method': payment_method,
            },
        )
    return orders
