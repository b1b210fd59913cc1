from datetime import datetime, timedelta
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
    DesignApproval,
    DesignApprovalStatus,
    OPEN_QUOTE_STATUSES,
    Order,
    OrderType,
    ProductVariant,
    Quote,
    QuoteStatus,
    ServicePackage,
    WorkflowContext,
)
from marketplace.services.audit_service import actor_fields, log_audit
from marketplace.services.conversation_service import (
    active_quote,
    get_conversation,
    post_system_message,
)
from marketplace.services.design_service import approved_design_for_quote
from marketplace.utils import format_money, parse_int, parse_money

logger = logging.getLogger(__name__)


def get_quote(quote_id) -> Quote:
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError('Quote not found')
    return quote


def quote_accessible(quote: Quote, user) -> bool:
    if user.role.value == 'ADMIN':
        return True
    return user.id in (quote.buyer_id, quote.seller_id)


def purchase_path(quote: Quote):
    """How an accepted quote is bought: through the cart or directly."""
    if quote.status != QuoteStatus.ACCEPTED:
        return None
    return 'cart' if quote.product_variant_id else 'checkout'


def _resolve_option(conv, product_variant_id, service_package_id):
    if product_variant_id and service_package_id:
        raise ValidationError(
            'A quote can target a variant or a package, not both')

    if product_variant_id:
        variant = db.session.get(ProductVariant, product_variant_id)
        if variant is None:
            raise NotFoundError('Product variant not found')
        if not conv.product_id or variant.product_id != conv.product_id:
            raise ValidationError(
                'Variant does not belong to this conversation\'s product',
                field='product_variant_id')

    if service_package_id:
        package = db.session.get(ServicePackage, service_package_id)
        if package is None:
            raise NotFoundError('Service package not found')
        if not conv.service_id or package.service_id != conv.service_id:
            raise ValidationError(
                'Package does not belong to this conversation\'s service',
                field='service_package_id')


def _resolve_design(conv, design_approval_id):
    if not design_approval_id:
        return None
    design = db.session.get(DesignApproval, design_approval_id)
    if design is None:
        raise NotFoundError('Design approval not found')
    if design.conversation_id != conv.id:
        raise ValidationError(
            'Design approval belongs to another conversation',
            field='design_approval_id')
    if design.status != DesignApprovalStatus.APPROVED:
        raise InvalidStateError(
            'Only an approved design can be attached to a quote',
            design_status=design.status.value)
    return design


def create_quote(
        seller,
        conversation_id,
        quoted_price,
        quantity=1,
        product_variant_id=None,
        service_package_id=None,
        design_approval_id=None,
        expires_at=None,
        notes=None):
    conv = get_conversation(conversation_id)
    if conv.seller_id != seller.id:
        raise PermissionDeniedError(
            'Only the seller of this conversation can send quotes')

    amount = parse_money(quoted_price, 'quoted_price')
    if amount <= 0:
        raise ValidationError(
            'quoted_price must be greater than 0', field='quoted_price')
    quantity = parse_int(quantity, 'quantity', default=1)
    if quantity < 1:
        raise ValidationError('quantity must be at least 1', field='quantity')

    now = datetime.utcnow()
    if expires_at is None:
        days = current_app.config.get('QUOTE_DEFAULT_EXPIRY_DAYS', 7)
        expires_at = now + timedelta(days=days)
    elif expires_at <= now:
        raise ValidationError(
            'expires_at must be in the future', field='expires_at')

    _resolve_option(conv, product_variant_id, service_package_id)
    design = _resolve_design(conv, design_approval_id)

    previous = active_quote(conv.id)

    quote = Quote(
        conversation_id=conv.id,
        product_id=conv.product_id,
        service_id=conv.service_id,
        product_variant_id=product_variant_id,
        service_package_id=service_package_id,
        design_approval_id=design.id if design else None,
        buyer_id=conv.buyer_id,
        seller_id=conv.seller_id,
        quoted_price=amount,
        quantity=quantity,
        notes=(notes or '').strip() or None,
        status=QuoteStatus.SENT,
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
    )
    db.session.add(quote)
    conv.add_workflow_context(WorkflowContext.QUOTE)
    post_system_message(
        conv,
        f'Seller sent a quote: {format_money(amount)} x {quantity}.')
    db.session.commit()

    superseded_id = None
    if previous is not None and previous.status in OPEN_QUOTE_STATUSES:
        superseded_id = previous.id
        logger.info(
            "Quote %s supersedes quote %s in conversation %s",
            quote.id,
            previous.id,
            conv.id,
        )

    actor_id, actor_role = actor_fields(seller)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='QUOTE_CREATED',
        target_type='QUOTE',
        target_id=quote.id,
        payload={
            'conversation_id': conv.id,
            'quoted_price': format_money(amount),
            'quantity': quantity,
            'product_variant_id': product_variant_id,
            'service_package_id': service_package_id,
            'design_approval_id': quote.design_approval_id,
            'superseded_quote_id': superseded_id,
        },
    )
    return quote


def _assert_actionable(quote: Quote):
    if quote.status not in OPEN_QUOTE_STATUSES:
        raise InvalidStateError(
            f'Quote is already {quote.status.value}',
            status=quote.status.value)
    current = active_quote(quote.conversation_id)
    if current is not None and current.id != quote.id:
        raise InvalidStateError(
            'Quote has been superseded by a newer quote',
            active_quote_id=current.id)
    if quote.effective_status == QuoteStatus.EXPIRED:
        raise InvalidStateError('Quote has expired', status='expired')


def _guarded_transition(quote: Quote, values: dict):
    # Only one of two racing buyers/tabs can move the quote out of an
    # open status.
    values['updated_at'] = datetime.utcnow()
    updated = Quote.query.filter(
        Quote.id == quote.id,
        Quote.status.in_(OPEN_QUOTE_STATUSES),
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.session.rollback()
        raise InvalidStateError('Quote was modified by another request')


def accept_quote(buyer, quote_id) -> Quote:
    quote = get_quote(quote_id)
    if quote.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can accept this quote')
    _assert_actionable(quote)

    if quote.design_approval_id:
        design = quote.design_approval
        if design is None or design.status != DesignApprovalStatus.APPROVED:
            raise InvalidStateError(
                'The design attached to this quote is no longer approved')

    now = datetime.utcnow()
    _guarded_transition(quote, {
        'status': QuoteStatus.ACCEPTED,
        'accepted_at': now,
    })
    post_system_message(
        quote.conversation,
        f'Buyer accepted the quote ({format_money(quote.quoted_price)} '
        f'x {quote.quantity}).')
    db.session.commit()
    db.session.refresh(quote)

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='QUOTE_ACCEPTED',
        target_type='QUOTE',
        target_id=quote.id,
        payload={
            'conversation_id': quote.conversation_id,
            'purchase_path': purchase_path(quote),
        },
    )
    return quote


def reject_quote(buyer, quote_id, reason=None) -> Quote:
    quote = get_quote(quote_id)
    if quote.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can reject this quote')
    _assert_actionable(quote)

    reason = (reason or '').strip() or None
    _guarded_transition(quote, {
        'status': QuoteStatus.REJECTED,
        'rejection_reason': reason,
    })
    text = 'Buyer rejected the quote.'
    if reason:
        text = f'{text} Reason: {reason}'
    post_system_message(quote.conversation, text)
    db.session.commit()
    db.session.refresh(quote)

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='QUOTE_REJECTED',
        target_type='QUOTE',
        target_id=quote.id,
        payload={'reason': reason},
    )
    return quote


def purchase_quote(buyer, quote_id, payment_method, shipping_address=None):
    """Direct checkout for an accepted quote that has no variant."""
    quote = get_quote(quote_id)
    if quote.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can purchase this quote')
    if quote.status != QuoteStatus.ACCEPTED:
        raise InvalidStateError(
            'Only an accepted quote can be purchased',
            status=quote.effective_status.value)
    if purchase_path(quote) == 'cart':
        raise InvalidStateError(
            'This quote targets a variant; add it to the cart instead')

    methods = current_app.config.get('PAYMENT_METHODS', ())
    if payment_method not in methods:
        raise ValidationError(
            'payment_method must be one of: ' + ', '.join(methods),
            field='payment_method')
    shipping_address = (shipping_address or '').strip() or None
    if quote.product_id and not shipping_address:
        raise ValidationError(
            'shipping_address is required', field='shipping_address')

    if Order.query.filter_by(quote_id=quote.id).first() is not None:
        raise InvalidStateError('This quote has already been purchased')

    item = quote.product or quote.service
    design = None
    if item is not None and item.requires_design_approval:
        design = approved_design_for_quote(quote)
        if design is None:
            raise ValidationError(
                'An approved design is required before purchase',
                reason='design_required')

    order = Order(
        order_type=OrderType.PRODUCT if quote.product_id else OrderType.SERVICE,
        buyer_id=quote.buyer_id,
        seller_id=quote.seller_id,
        product_id=quote.product_id,
        service_id=quote.service_id,
        service_package_id=quote.service_package_id,
        quote_id=quote.id,
        design_approval_id=design.id if design else None,
        unit_price=quote.quoted_price,
        quantity=quote.quantity,
        total_amount=quote.total_amount,
        shipping_address=shipping_address,
        payment_method=payment_method,
    )
    try:
        db.session.add(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='ORDER_CREATED',
        target_type='ORDER',
        target_id=order.id,
        payload={
            'quote_id': quote.id,
            'unit_price': format_money(order.unit_price),
            'quantity': order.quantity,
            'total_amount': format_money(order.total_amount),
            'payment_method': payment_method,
        },
    )
    return order


def expire_quotes(now=None) -> int:
    """Persist ``expired`` on open quotes whose expiry has passed."""
    now = now or datetime.utcnow()
    count = Quote.query.filter(
        Quote.status.in_(OPEN_QUOTE_STATUSES),
        Quote.expires_at.isnot(None),
        Quote.expires_at < now,
    ).update(
        {'status': QuoteStatus.EXPIRED, 'updated_at': now},
        synchronize_session=False,
    )
    db.session.commit()
    if count:
        log_audit(
            actor_role='SYSTEM',
            action='QUOTE_EXPIRED',
            target_type='QUOTE',
            payload={'count': count},
        )
    logger.info("Expired %s quote(s)", count)
    return count
