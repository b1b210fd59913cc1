from datetime import datetime
import logging

from sqlalchemy import or_

from marketplace.extensions import db
from marketplace.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.models import (
    Conversation,
    DesignApproval,
    DesignApprovalStatus,
    Message,
    MessageType,
    Product,
    Quote,
    Service,
    UserRole,
    WorkflowContext,
)
from marketplace.services.audit_service import actor_fields, log_audit
from marketplace.services.workflow_resolver import resolve_workflow

logger = logging.getLogger(__name__)

START_CONTEXTS = ('product', 'quote')


def get_conversation(conversation_id) -> Conversation:
    conv = db.session.get(Conversation, conversation_id)
    if conv is None:
        raise NotFoundError('Conversation not found')
    return conv


def conversation_accessible(conv: Conversation, user) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    return user.id in (conv.buyer_id, conv.seller_id)


def get_accessible_conversation(conversation_id, user) -> Conversation:
    conv = get_conversation(conversation_id)
    if not conversation_accessible(conv, user):
        logger.warning(
            "User %s attempted to access conversation %s",
            user.id,
            conv.id,
        )
        raise PermissionDeniedError('No permission to access this conversation')
    return conv


def list_conversations(user):
    q = Conversation.query
    if user.role != UserRole.ADMIN:
        q = q.filter(or_(
            Conversation.buyer_id == user.id,
            Conversation.seller_id == user.id,
        ))
    return q.order_by(
        Conversation.updated_at.desc(),
        Conversation.id.desc())


def post_system_message(conv: Conversation, content: str) -> Message:
    """Add a SYSTEM line to the conversation; the caller commits."""
    now = datetime.utcnow()
    msg = Message(
        conversation_id=conv.id,
        sender_id=None,
        sender_role='SYSTEM',
        msg_type=MessageType.SYSTEM,
        content=content,
        created_at=now,
    )
    conv.last_message_at = now
    conv.updated_at = now
    db.session.add(msg)
    return msg


def send_message(conv: Conversation, user, content) -> Message:
    content = (content or '').strip()
    if not content:
        raise ValidationError('Message cannot be empty')
    now = datetime.utcnow()
    msg = Message(
        conversation_id=conv.id,
        sender_id=user.id,
        sender_role=user.role.value,
        msg_type=MessageType.TEXT,
        content=content,
        created_at=now,
    )
    conv.last_message_at = now
    conv.updated_at = now
    db.session.add(msg)
    db.session.commit()
    return msg


def start_conversation(
        buyer,
        product_id=None,
        service_id=None,
        context='product',
        initial_message=None):
    """Find or create the buyer's conversation about one item.

    A new conversation gets its contexts here: ``quote`` when the buyer
    starts from a quote request, otherwise the item's own context. An
    existing conversation can only gain ``quote``.
    """
    if bool(product_id) == bool(service_id):
        raise ValidationError('Exactly one of product_id or service_id is required')
    if context not in START_CONTEXTS:
        raise ValidationError(
            'context must be one of: ' + ', '.join(START_CONTEXTS),
            field='context')

    if product_id:
        item = db.session.get(Product, product_id)
        item_context = WorkflowContext.PRODUCT
    else:
        item = db.session.get(Service, service_id)
        item_context = WorkflowContext.SERVICE
    if item is None or not item.is_active:
        raise NotFoundError('Item not found')
    if item.seller_id == buyer.id:
        raise ValidationError('Cannot start a conversation about your own item')

    conv = Conversation.query.filter_by(
        buyer_id=buyer.id,
        seller_id=item.seller_id,
        product_id=product_id,
        service_id=service_id,
    ).first()

    created = conv is None
    if created:
        if context == 'quote':
            subject = f'Custom Quote Request for {item.name}'
            contexts = [WorkflowContext.QUOTE]
        else:
            subject = f'Design Upload for {item.name}'
            contexts = [item_context]
        conv = Conversation(
            subject=subject,
            buyer_id=buyer.id,
            seller_id=item.seller_id,
            product_id=product_id,
            service_id=service_id,
        )
        conv.set_workflow_contexts(contexts)
        db.session.add(conv)
        db.session.flush()
    elif context == 'quote':
        conv.add_workflow_context(WorkflowContext.QUOTE)

    if initial_message and initial_message.strip():
        now = datetime.utcnow()
        db.session.add(Message(
            conversation_id=conv.id,
            sender_id=buyer.id,
            sender_role=buyer.role.value,
            msg_type=MessageType.TEXT,
            content=initial_message.strip(),
            created_at=now,
        ))
        conv.last_message_at = now

    db.session.commit()

    if created:
        actor_id, actor_role = actor_fields(buyer)
        log_audit(
            actor_id=actor_id,
            actor_role=actor_role,
            action='CONVERSATION_STARTED',
            target_type='CONVERSATION',
            target_id=conv.id,
            payload={
                'product_id': product_id,
                'service_id': service_id,
                'workflow_contexts': conv.get_workflow_contexts(),
            },
        )
    return conv, created


def request_quote(conv: Conversation, buyer, message=None) -> Conversation:
    if conv.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can request a quote')

    added = conv.add_workflow_context(WorkflowContext.QUOTE)
    text = 'Buyer requested a custom quote.'
    if message and message.strip():
        text = f'{text} {message.strip()}'
    post_system_message(conv, text)
    db.session.commit()

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='QUOTE_REQUESTED',
        target_type='CONVERSATION',
        target_id=conv.id,
        payload={'context_added': added},
    )
    return conv


def active_quote(conversation_id):
    # Newest quote wins; older ones stay as history.
    return Quote.query.filter_by(
        conversation_id=conversation_id
    ).order_by(
        Quote.created_at.desc(),
        Quote.id.desc(),
    ).first()


def design_snapshot(conversation_id):
    base = DesignApproval.query.filter_by(conversation_id=conversation_id)
    has_approved = base.filter(
        DesignApproval.status == DesignApprovalStatus.APPROVED
    ).first() is not None
    pending = base.filter(
        DesignApproval.status == DesignApprovalStatus.PENDING
    ).count()
    return has_approved, pending


def build_workflow_state(conv: Conversation):
    """Re-read quotes and designs and run the resolver."""
    item = conv.item
    requires_quote = bool(item and item.requires_quote)
    requires_design = bool(item and item.requires_design_approval)

    quote = active_quote(conv.id)
    latest_status = quote.effective_status.value if quote else None
    has_approved, pending = design_snapshot(conv.id)

    state = resolve_workflow(
        conv.get_workflow_contexts(),
        requires_quote,
        requires_design,
        latest_quote_status=latest_status,
        has_approved_design=has_approved,
        pending_design_count=pending,
    )
    state.update({
        'conversation_id': conv.id,
        'workflow_contexts': conv.get_workflow_contexts(),
        'requires_quote': requires_quote,
        'requires_design_approval': requires_design,
        'active_quote_id': quote.id if quote else None,
        'latest_quote_status': latest_status,
        'has_approved_design': has_approved,
        'pending_design_count': pending,
    })
    return state
