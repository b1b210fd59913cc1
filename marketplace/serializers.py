from marketplace.utils import format_dt, format_money


def serialize_user(user):
    return {
        'id': user.id,
        'email': user.email,
        'display_name': user.display_name,
        'role': user.role.value,
    }


def serialize_variant(variant):
    return {
        'id': variant.id,
        'product_id': variant.product_id,
        'name': variant.name,
        'sku': variant.sku,
        'price': format_money(variant.price),
        'inventory': variant.inventory,
    }


def serialize_package(package):
    return {
        'id': package.id,
        'service_id': package.service_id,
        'name': package.name,
        'price': format_money(package.price),
    }


def serialize_product(product):
    return {
        'id': product.id,
        'seller_id': product.seller_id,
        'name': product.name,
        'description': product.description,
        'requires_quote': product.requires_quote,
        'requires_design_approval': product.requires_design_approval,
        'variants': [serialize_variant(v) for v in product.variants],
    }


def serialize_service(service):
    return {
        'id': service.id,
        'seller_id': service.seller_id,
        'name': service.name,
        'description': service.description,
        'requires_quote': service.requires_quote,
        'requires_design_approval': service.requires_design_approval,
        'packages': [serialize_package(p) for p in service.packages],
    }


def serialize_conversation(conv):
    return {
        'id': conv.id,
        'subject': conv.subject,
        'buyer_id': conv.buyer_id,
        'seller_id': conv.seller_id,
        'product_id': conv.product_id,
        'service_id': conv.service_id,
        'workflow_contexts': conv.get_workflow_contexts(),
        'created_at': format_dt(conv.created_at),
        'updated_at': format_dt(conv.updated_at),
        'last_message_at': format_dt(conv.last_message_at),
    }


def serialize_message(msg):
    return {
        'id': msg.id,
        'conversation_id': msg.conversation_id,
        'sender_id': msg.sender_id,
        'sender_role': msg.sender_role,
        'msg_type': msg.msg_type.value,
        'content': msg.content,
        'created_at': format_dt(msg.created_at),
    }


def serialize_quote(quote, is_active=None):
    data = {
        'id': quote.id,
        'conversation_id': quote.conversation_id,
        'product_id': quote.product_id,
        'service_id': quote.service_id,
        'product_variant_id': quote.product_variant_id,
        'service_package_id': quote.service_package_id,
        'design_approval_id': quote.design_approval_id,
        'buyer_id': quote.buyer_id,
        'seller_id': quote.seller_id,
        'quoted_price': format_money(quote.quoted_price),
        'quantity': quote.quantity,
        'total_amount': format_money(quote.total_amount),
        'notes': quote.notes,
        # Reads report time-based expiry before the job persists it.
        'status': quote.effective_status.value,
        'expires_at': format_dt(quote.expires_at),
        'accepted_at': format_dt(quote.accepted_at),
        'rejection_reason': quote.rejection_reason,
        'created_at': format_dt(quote.created_at),
        'updated_at': format_dt(quote.updated_at),
    }
    if is_active is not None:
        data['is_active'] = is_active
    return data


def serialize_design(design):
    return {
        'id': design.id,
        'conversation_id': design.conversation_id,
        'context': design.context.value,
        'quote_id': design.quote_id,
        'product_id': design.product_id,
        'service_id': design.service_id,
        'variant_id': design.variant_id,
        'package_id': design.package_id,
        'buyer_id': design.buyer_id,
        'seller_id': design.seller_id,
        'design_files': design.get_design_files(),
        'status': design.status.value,
        'seller_notes': design.seller_notes,
        'variant_auto_bound': design.variant_auto_bound,
        'approved_at': format_dt(design.approved_at),
        'created_at': format_dt(design.created_at),
        'updated_at': format_dt(design.updated_at),
    }


def serialize_cart_item(item):
    variant = item.variant
    unit_price = item.effective_unit_price
    return {
        'id': item.id,
        'product_variant_id': item.product_variant_id,
        'product_id': variant.product_id,
        'product_name': variant.product.name,
        'variant_name': variant.name,
        'quote_id': item.quote_id,
        'design_approval_id': item.design_approval_id,
        'quantity': item.quantity,
        'unit_price_override': format_money(item.unit_price_override),
        'effective_unit_price': format_money(unit_price),
        'line_total': format_money(unit_price * item.quantity),
        'created_at': format_dt(item.created_at),
    }


def serialize_order(order):
    return {
        'id': order.id,
        'order_type': order.order_type.value,
        'buyer_id': order.buyer_id,
        'seller_id': order.seller_id,
        'product_id': order.product_id,
        'product_variant_id': order.product_variant_id,
        'service_id': order.service_id,
        'service_package_id': order.service_package_id,
        'quote_id': order.quote_id,
        'design_approval_id': order.design_approval_id,
        'unit_price': format_money(order.unit_price),
        'quantity': order.quantity,
        'total_amount': format_money(order.total_amount),
        'shipping_address': order.shipping_address,
        'payment_method': order.payment_method,
        'status': order.status.value,
        'created_at': format_dt(order.created_at),
    }
