from datetime import datetime
import logging

from flask import current_app
from sqlalchemy import or_

from marketplace.extensions import db
from marketplace.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.models import (
    ACTIVE_DESIGN_STATUSES,
    DesignApproval,
    DesignApprovalContext,
    DesignApprovalStatus,
    Product,
    ProductVariant,
    Quote,
    QuoteStatus,
    ServicePackage,
    UserRole,
    WorkflowContext,
)
from marketplace.services.audit_service import actor_fields, log_audit
from marketplace.services.conversation_service import (
    active_quote,
    get_conversation,
    post_system_message,
)

logger = logging.getLogger(__name__)


def get_design(design_id) -> DesignApproval:
    design = db.session.get(DesignApproval, design_id)
    if design is None:
        raise NotFoundError('Design approval not found')
    return design


def design_accessible(design: DesignApproval, user) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    return user.id in (design.buyer_id, design.seller_id)


def check_upload(filename, mime_type, size):
    """Validate one file's type and size; raises ValidationError."""
    allowed = current_app.config['DESIGN_ALLOWED_MIME_TYPES']
    max_size = current_app.config['DESIGN_MAX_FILE_SIZE']

    filename = (filename or '').strip()
    if not filename:
        raise ValidationError('Each design file needs a filename')
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    mime_type = (mime_type or '').split(';')[0].strip().lower()
    if not mime_type:
        mime_type = allowed.get(ext, '')
    if mime_type not in set(allowed.values()):
        raise ValidationError(
            f'Unsupported file type for {filename} '
            '(jpeg/png/gif/svg/pdf only)',
            filename=filename)
    if ext and ext in allowed and allowed[ext] != mime_type:
        raise ValidationError(
            f'File extension does not match its type for {filename}',
            filename=filename)

    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValidationError(
            f'Invalid file size for {filename}', filename=filename)
    if size > max_size:
        raise ValidationError(
            f'{filename} exceeds the {max_size // (1024 * 1024)} MB limit',
            filename=filename,
            size=size)
    return mime_type


def validate_design_files(files):
    if not isinstance(files, list) or not files:
        raise ValidationError('At least one design file is required')
    cleaned = []
    for f in files:
        if not isinstance(f, dict):
            raise ValidationError('Design files must be objects')
        url = (f.get('url') or '').strip()
        if not url:
            raise ValidationError('Each design file needs a url')
        mime_type = check_upload(
            f.get('filename'), f.get('mime_type'), f.get('size'))
        cleaned.append({
            'url': url,
            'filename': f.get('filename').strip(),
            'size': f.get('size'),
            'mime_type': mime_type,
        })
    return cleaned


def _sole_option_ids(conv):
    """(variant id, package id) of the item's only option, else None."""
    if conv.product_id:
        variants = conv.product.variants
        return (variants[0].id if len(variants) == 1 else None), None
    if conv.service_id:
        packages = conv.service.packages
        return None, (packages[0].id if len(packages) == 1 else None)
    return None, None


def _option_clause(column, value, sole_id):
    # An unbound design on a single-option item occupies that option.
    if sole_id is not None and value in (None, sole_id):
        return or_(column.is_(None), column == sole_id)
    if value is None:
        return column.is_(None)
    return column == value


def _slot_taken(conv, variant_id=None, package_id=None, quote_id=None):
    """Pending or approved design already holding a slot.

    Quote designs are keyed by their quote; product designs by the
    variant or package they are for.
    """
    q = DesignApproval.query.filter(
        DesignApproval.conversation_id == conv.id,
        DesignApproval.status.in_(ACTIVE_DESIGN_STATUSES),
    )
    if quote_id is not None:
        q = q.filter(
            DesignApproval.context == DesignApprovalContext.QUOTE,
            DesignApproval.quote_id == quote_id,
        )
    else:
        sole_variant_id, sole_package_id = _sole_option_ids(conv)
        q = q.filter(
            DesignApproval.context == DesignApprovalContext.PRODUCT,
            _option_clause(
                DesignApproval.variant_id, variant_id, sole_variant_id),
            _option_clause(
                DesignApproval.package_id, package_id, sole_package_id),
        )
    return q.first()


def _resolve_product_slot(conv, variant_id, package_id):
    if conv.product_id:
        if package_id:
            raise ValidationError(
                'package_id only applies to services', field='package_id')
        variants = conv.product.variants
        if variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != conv.product_id:
                raise ValidationError(
                    'Variant does not belong to this product',
                    field='variant_id')
        elif len(variants) > 1:
            raise ValidationError(
                'Select a variant for this design', field='variant_id')
        return variant_id, None

    if conv.service_id:
        if variant_id:
            raise ValidationError(
                'variant_id only applies to products', field='variant_id')
        packages = conv.service.packages
        if package_id:
            package = db.session.get(ServicePackage, package_id)
            if package is None or package.service_id != conv.service_id:
                raise ValidationError(
                    'Package does not belong to this service',
                    field='package_id')
        elif len(packages) > 1:
            raise ValidationError(
                'Select a package for this design', field='package_id')
        return None, package_id

    raise ValidationError('Conversation has no product or service')


def _resolve_quote(conv, quote_id):
    if WorkflowContext.QUOTE.value not in conv.get_workflow_contexts():
        raise ValidationError(
            'This conversation is not a quote workflow', field='context')
    if quote_id:
        quote = db.session.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError('Quote not found')
        if quote.conversation_id != conv.id:
            raise ValidationError(
                'Quote belongs to another conversation', field='quote_id')
        return quote
    quote = active_quote(conv.id)
    if quote is None:
        raise ValidationError(
            'No quote to attach this design to', field='quote_id')
    return quote


def _create_pending(conv, buyer, files, context, variant_id, package_id,
                    quote_id):
    design = DesignApproval(
        conversation_id=conv.id,
        context=context,
        quote_id=quote_id,
        product_id=conv.product_id,
        service_id=conv.service_id,
        variant_id=variant_id,
        package_id=package_id,
        buyer_id=buyer.id,
        seller_id=conv.seller_id,
        status=DesignApprovalStatus.PENDING,
    )
    design.set_design_files(files)
    db.session.add(design)
    return design


def upload_design(
        buyer,
        conversation_id,
        files,
        context='product',
        variant_id=None,
        package_id=None,
        quote_id=None):
    conv = get_conversation(conversation_id)
    if conv.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can upload designs')

    try:
        context = DesignApprovalContext(context or 'product')
    except ValueError:
        raise ValidationError(
            'context must be "product" or "quote"', field='context')

    files = validate_design_files(files)

    if context == DesignApprovalContext.QUOTE:
        if variant_id or package_id:
            raise ValidationError(
                'Quote designs take their variant from the quote')
        quote = _resolve_quote(conv, quote_id)
        quote_id = quote.id
    else:
        if quote_id:
            raise ValidationError(
                'quote_id only applies to quote designs', field='quote_id')
        variant_id, package_id = _resolve_product_slot(
            conv, variant_id, package_id)

    existing = _slot_taken(conv, variant_id, package_id, quote_id)
    if existing is not None:
        raise InvalidStateError(
            'A design for this option is already '
            f'{existing.status.value}',
            design_approval_id=existing.id)

    design = _create_pending(
        conv, buyer, files, context, variant_id, package_id, quote_id)
    post_system_message(
        conv, f'Buyer submitted a design ({len(files)} file(s)) for approval.')
    db.session.commit()

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='DESIGN_UPLOADED',
        target_type='DESIGN_APPROVAL',
        target_id=design.id,
        payload={
            'conversation_id': conv.id,
            'context': context.value,
            'variant_id': variant_id,
            'package_id': package_id,
            'quote_id': quote_id,
            'files': [f['filename'] for f in files],
        },
    )
    return design


def _seller_transition(seller, design_id, new_status, notes, action,
                       system_text):
    design = get_design(design_id)
    if design.seller_id != seller.id:
        raise PermissionDeniedError('Only the seller can review this design')
    if design.status != DesignApprovalStatus.PENDING:
        raise InvalidStateError(
            f'Design is already {design.status.value}',
            status=design.status.value)

    if (
        new_status == DesignApprovalStatus.APPROVED
        and design.quote_id
        and design.quote is not None
        and design.quote.status != QuoteStatus.ACCEPTED
    ):
        raise InvalidStateError(
            'The linked quote must be accepted before approving this design')

    now = datetime.utcnow()
    values = {
        'status': new_status,
        'seller_notes': notes,
        'updated_at': now,
    }
    if new_status == DesignApprovalStatus.APPROVED:
        values['approved_at'] = now

    # Two reviewers acting at once: only the first update matches.
    updated = DesignApproval.query.filter(
        DesignApproval.id == design.id,
        DesignApproval.status == DesignApprovalStatus.PENDING,
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.session.rollback()
        raise InvalidStateError('Design was modified by another request')

    post_system_message(design.conversation, system_text)
    db.session.commit()
    db.session.refresh(design)

    actor_id, actor_role = actor_fields(seller)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        target_type='DESIGN_APPROVAL',
        target_id=design.id,
        payload={'notes': notes, 'conversation_id': design.conversation_id},
    )
    return design


def approve_design(seller, design_id, notes=None):
    notes = (notes or '').strip() or None
    return _seller_transition(
        seller, design_id, DesignApprovalStatus.APPROVED, notes,
        'DESIGN_APPROVED', 'Seller approved the design.')


def reject_design(seller, design_id, reason=None):
    reason = (reason or '').strip() or None
    text = 'Seller rejected the design.'
    if reason:
        text = f'{text} Reason: {reason}'
    return _seller_transition(
        seller, design_id, DesignApprovalStatus.REJECTED, reason,
        'DESIGN_REJECTED', text)


def request_changes(seller, design_id, notes):
    notes = (notes or '').strip()
    if not notes:
        raise ValidationError(
            'Notes are required when requesting changes', field='notes')
    return _seller_transition(
        seller, design_id, DesignApprovalStatus.CHANGES_REQUESTED, notes,
        'DESIGN_CHANGES_REQUESTED', f'Seller requested changes: {notes}')


def resubmit_design(buyer, design_id, files):
    """New pending record in the same slot; the old one stays as history."""
    source = get_design(design_id)
    if source.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can resubmit this design')
    if source.status != DesignApprovalStatus.CHANGES_REQUESTED:
        raise InvalidStateError(
            'Only designs with requested changes can be resubmitted',
            status=source.status.value)

    files = validate_design_files(files)
    if source.context == DesignApprovalContext.QUOTE:
        existing = _slot_taken(source.conversation, quote_id=source.quote_id)
    else:
        existing = _slot_taken(
            source.conversation, source.variant_id, source.package_id)
    if existing is not None:
        raise InvalidStateError(
            f'A design for this option is already {existing.status.value}',
            design_approval_id=existing.id)

    design = _create_pending(
        source.conversation, buyer, files, source.context,
        source.variant_id, source.package_id, source.quote_id)
    post_system_message(
        source.conversation, 'Buyer resubmitted the design for approval.')
    db.session.commit()

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='DESIGN_RESUBMITTED',
        target_type='DESIGN_APPROVAL',
        target_id=design.id,
        payload={'previous_design_id': source.id},
    )
    return design


def copy_design_to_variant(buyer, design_id, variant_id):
    """Reuse an approved design's files for another variant.

    The copy starts pending; the seller still has to approve it.
    """
    source = get_design(design_id)
    if source.buyer_id != buyer.id:
        raise PermissionDeniedError('Only the buyer can copy this design')
    if source.status != DesignApprovalStatus.APPROVED:
        raise InvalidStateError(
            'Only approved designs can be copied',
            status=source.status.value)
    if not source.product_id:
        raise ValidationError('Only product designs can be copied to a variant')

    variant = db.session.get(ProductVariant, variant_id)
    if variant is None or variant.product_id != source.product_id:
        raise ValidationError(
            'Variant does not belong to this product', field='variant_id')
    if variant.id == source.variant_id:
        raise ValidationError(
            'Design is already bound to this variant', field='variant_id')

    existing = _slot_taken(source.conversation, variant.id)
    if existing is not None:
        raise InvalidStateError(
            f'A design for this variant is already {existing.status.value}',
            design_approval_id=existing.id)

    design = _create_pending(
        source.conversation, buyer, source.get_design_files(),
        DesignApprovalContext.PRODUCT, variant.id, None, None)
    post_system_message(
        source.conversation,
        f'Buyer submitted an approved design for variant "{variant.name}".')
    db.session.commit()

    actor_id, actor_role = actor_fields(buyer)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='DESIGN_COPIED',
        target_type='DESIGN_APPROVAL',
        target_id=design.id,
        payload={'source_design_id': source.id, 'variant_id': variant.id},
    )
    return design


def bind_sole_variant(design: DesignApproval, actor=None):
    """Bind a variant-less approved design to its product's only variant.

    Returns the variant, or None when the fallback does not apply. The
    caller commits.
    """
    if design.variant_id is not None or design.product_id is None:
        return None
    if design.status != DesignApprovalStatus.APPROVED:
        return None
    variants = design.product.variants
    if len(variants) != 1:
        return None

    variant = variants[0]
    design.variant_id = variant.id
    design.variant_auto_bound = True
    logger.warning(
        "Design %s had no variant; bound to sole variant %s of product %s",
        design.id,
        variant.id,
        design.product_id,
    )
    actor_id, actor_role = actor_fields(actor)
    log_audit(
        actor_id=actor_id,
        actor_role=actor_role,
        action='DESIGN_VARIANT_AUTO_BOUND',
        target_type='DESIGN_APPROVAL',
        target_id=design.id,
        payload={'variant_id': variant.id, 'product_id': design.product_id},
        commit=False,
    )
    return variant


def approved_design_for_variant(buyer_id, variant: ProductVariant):
    return DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer_id,
        DesignApproval.product_id == variant.product_id,
        DesignApproval.variant_id == variant.id,
        DesignApproval.context == DesignApprovalContext.PRODUCT,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(DesignApproval.approved_at.desc()).first()


def approved_design_with_fallback(buyer, variant: ProductVariant):
    """Approved design for a variant, binding a variant-less one when the
    product has a single variant. The caller commits."""
    design = approved_design_for_variant(buyer.id, variant)
    if design is not None:
        return design
    unbound = DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer.id,
        DesignApproval.product_id == variant.product_id,
        DesignApproval.variant_id.is_(None),
        DesignApproval.context == DesignApprovalContext.PRODUCT,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(DesignApproval.approved_at.desc()).first()
    if unbound is not None and bind_sole_variant(unbound, buyer) is not None:
        if unbound.variant_id == variant.id:
            return unbound
    return None


def approved_design_for_package(buyer_id, service_id, package_id=None):
    q = DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer_id,
        DesignApproval.service_id == service_id,
        DesignApproval.context == DesignApprovalContext.PRODUCT,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    )
    if package_id:
        q = q.filter(DesignApproval.package_id == package_id)
    return q.order_by(DesignApproval.approved_at.desc()).first()


def approved_design_for_quote(quote, design_approval_id=None):
    """Find the approved design that satisfies a quote purchase.

    Checked in order: the design pinned on the quote, an explicitly
    chosen design, then any approved design uploaded against the quote.
    """
    if quote.design_approval_id:
        design = quote.design_approval
        if design is not None and design.status == DesignApprovalStatus.APPROVED:
            return design
    if design_approval_id:
        design = db.session.get(DesignApproval, design_approval_id)
        if (
            design is not None
            and design.status == DesignApprovalStatus.APPROVED
            and design.buyer_id == quote.buyer_id
            and design.conversation_id == quote.conversation_id
        ):
            return design
    return DesignApproval.query.filter(
        DesignApproval.quote_id == quote.id,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(DesignApproval.approved_at.desc()).first()


def approved_variants(buyer, product_id):
    """Map of variant id to the buyer's approved design for that variant."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')

    designs = DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer.id,
        DesignApproval.product_id == product.id,
        DesignApproval.context == DesignApprovalContext.PRODUCT,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(DesignApproval.approved_at.desc()).all()

    bound = False
    result = {}
    for design in designs:
        if design.variant_id is None:
            bound = bind_sole_variant(design, buyer) is not None or bound
        if design.variant_id is not None and design.variant_id not in result:
            result[design.variant_id] = design
    if bound:
        db.session.commit()
    return product, result


def design_library(buyer):
    return DesignApproval.query.filter(
        DesignApproval.buyer_id == buyer.id,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(DesignApproval.approved_at.desc())


def approved_design_for_conversation(conversation_id):
    return DesignApproval.query.filter(
        DesignApproval.conversation_id == conversation_id,
        DesignApproval.status == DesignApprovalStatus.APPROVED,
    ).order_by(
        DesignApproval.approved_at.desc(),
        DesignApproval.id.desc(),
    ).first()


def list_designs(user, status=None, conversation_id=None):
    q = DesignApproval.query
    if user.role == UserRole.SELLER:
        q = q.filter(DesignApproval.seller_id == user.id)
    elif user.role == UserRole.BUYER:
        q = q.filter(DesignApproval.buyer_id == user.id)
    if status:
        try:
            q = q.filter(DesignApproval.status == DesignApprovalStatus(status))
        except ValueError:
            raise ValidationError(f'Unknown status: {status}', field='status')
    if conversation_id:
        q = q.filter(DesignApproval.conversation_id == conversation_id)
    return q.order_by(
        DesignApproval.created_at.desc(),
        DesignApproval.id.desc())
