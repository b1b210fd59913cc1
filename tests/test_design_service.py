"""Design approval lifecycle and its guards."""
import pytest

from conftest import (
    design_file,
    lose_race,
    make_approved_design,
    make_conversation,
)
from marketplace.errors import (
    InvalidStateError,
    PermissionDeniedError,
    ValidationError,
)
from marketplace.extensions import db
from marketplace.models import (
    AuditLog,
    DesignApproval,
    DesignApprovalContext,
    DesignApprovalStatus,
    Message,
)
from marketplace.services import design_service, quote_service


def _upload(buyer, conv, variant=None, files=None):
    return design_service.upload_design(
        buyer,
        conv.id,
        files or [design_file()],
        context='product',
        variant_id=variant.id if variant else None,
    )


def test_upload_creates_pending_record(buyer, conversation, product):
    design = _upload(buyer, conversation, product.variants[0])

    assert design.status == DesignApprovalStatus.PENDING
    assert design.variant_id == product.variants[0].id
    assert design.get_design_files()[0]['mime_type'] == 'image/png'


def test_oversized_file_is_rejected_without_record(buyer, conversation,
                                                   product):
    big = design_file('poster.pdf', 15 * 1024 * 1024, 'application/pdf')
    with pytest.raises(ValidationError):
        _upload(buyer, conversation, product.variants[0], [big])
    assert DesignApproval.query.count() == 0


@pytest.mark.parametrize('filename,mime_type', [
    ('art.bmp', 'image/bmp'),
    ('notes.txt', 'text/plain'),
    ('art.png', 'application/pdf'),
])
def test_unsupported_file_types_are_rejected(buyer, conversation, product,
                                             filename, mime_type):
    with pytest.raises(ValidationError):
        _upload(buyer, conversation, product.variants[0],
                [design_file(filename, 10, mime_type)])


def test_every_allowed_type_is_accepted(buyer, conversation, product):
    files = [
        design_file('a.jpg', 10, 'image/jpeg'),
        design_file('b.png', 10, 'image/png'),
        design_file('c.gif', 10, 'image/gif'),
        design_file('d.svg', 10, 'image/svg+xml'),
        design_file('e.pdf', 10, 'application/pdf'),
    ]
    design = _upload(buyer, conversation, product.variants[0], files)
    assert len(design.get_design_files()) == 5


def test_variant_required_when_product_has_several(buyer, conversation):
    with pytest.raises(ValidationError):
        _upload(buyer, conversation)


def test_variant_optional_for_single_variant_product(
        buyer, seller, single_variant_product):
    conv = make_conversation(buyer, seller, product=single_variant_product)
    design = _upload(buyer, conv)
    assert design.variant_id is None


def test_package_required_when_service_has_several(buyer, seller, service):
    conv = make_conversation(buyer, seller, service=service)
    with pytest.raises(ValidationError):
        design_service.upload_design(buyer, conv.id, [design_file()])
    design = design_service.upload_design(
        buyer, conv.id, [design_file()], package_id=service.packages[1].id)
    assert design.package_id == service.packages[1].id


def test_one_active_design_per_slot(buyer, conversation, product):
    variant = product.variants[0]
    _upload(buyer, conversation, variant)
    with pytest.raises(InvalidStateError):
        _upload(buyer, conversation, variant)
    # Another variant is a different slot.
    _upload(buyer, conversation, product.variants[1])


def test_only_buyer_uploads(seller, conversation, product):
    with pytest.raises(PermissionDeniedError):
        _upload(seller, conversation, product.variants[0])


def test_approve_then_reject_fails_and_keeps_record(
        buyer, seller, conversation, product):
    design = _upload(buyer, conversation, product.variants[0])
    approved = design_service.approve_design(seller, design.id)
    assert approved.status == DesignApprovalStatus.APPROVED
    assert approved.approved_at is not None

    with pytest.raises(InvalidStateError):
        design_service.reject_design(seller, design.id, 'too blurry')

    db.session.expire_all()
    stored = db.session.get(DesignApproval, design.id)
    assert stored.status == DesignApprovalStatus.APPROVED
    assert stored.seller_notes is None


def test_reject_is_terminal(buyer, seller, conversation, product):
    design = _upload(buyer, conversation, product.variants[0])
    design_service.reject_design(seller, design.id, 'wrong size')
    with pytest.raises(InvalidStateError):
        design_service.approve_design(seller, design.id)


def test_request_changes_requires_notes(buyer, seller, conversation,
                                        product):
    design = _upload(buyer, conversation, product.variants[0])
    with pytest.raises(ValidationError):
        design_service.request_changes(seller, design.id, '   ')
    assert design.status == DesignApprovalStatus.PENDING

    changed = design_service.request_changes(
        seller, design.id, 'Increase bleed to 3mm')
    assert changed.status == DesignApprovalStatus.CHANGES_REQUESTED
    assert changed.seller_notes == 'Increase bleed to 3mm'


def test_only_conversation_seller_reviews(buyer, conversation, product):
    design = _upload(buyer, conversation, product.variants[0])
    with pytest.raises(PermissionDeniedError):
        design_service.approve_design(buyer, design.id)


def test_resubmit_after_changes_requested(buyer, seller, conversation,
                                          product):
    design = _upload(buyer, conversation, product.variants[0])
    with pytest.raises(InvalidStateError):
        design_service.resubmit_design(buyer, design.id, [design_file()])

    design_service.request_changes(seller, design.id, 'Use CMYK')
    new = design_service.resubmit_design(
        buyer, design.id, [design_file('v2.pdf', 20, 'application/pdf')])

    assert new.id != design.id
    assert new.status == DesignApprovalStatus.PENDING
    assert new.variant_id == design.variant_id
    assert db.session.get(DesignApproval, design.id).status == (
        DesignApprovalStatus.CHANGES_REQUESTED)


def test_copy_to_variant_creates_pending_copy(buyer, seller, conversation,
                                              product):
    a3, a2 = product.variants
    design = _upload(buyer, conversation, a3)
    design_service.approve_design(seller, design.id)

    copy = design_service.copy_design_to_variant(buyer, design.id, a2.id)

    assert copy.status == DesignApprovalStatus.PENDING
    assert copy.variant_id == a2.id
    assert copy.get_design_files() == design.get_design_files()
    with pytest.raises(ValidationError):
        design_service.copy_design_to_variant(buyer, design.id, a3.id)


def test_quote_design_needs_quote_workflow(buyer, conversation):
    with pytest.raises(ValidationError):
        design_service.upload_design(
            buyer, conversation.id, [design_file()], context='quote')


def test_quote_design_cannot_pick_variant(buyer, seller, quote_conversation,
                                          custom_product):
    quote_service.create_quote(seller, quote_conversation.id, '99.00', 1)
    with pytest.raises(ValidationError):
        design_service.upload_design(
            buyer, quote_conversation.id, [design_file()], context='quote',
            variant_id=custom_product.variants[0].id)


def test_quote_design_approval_waits_for_accepted_quote(
        buyer, seller, quote_conversation):
    quote = quote_service.create_quote(
        seller, quote_conversation.id, '99.00', 1)
    design = design_service.upload_design(
        buyer, quote_conversation.id, [design_file()], context='quote')
    assert design.quote_id == quote.id
    assert design.context == DesignApprovalContext.QUOTE

    with pytest.raises(InvalidStateError):
        design_service.approve_design(seller, design.id)

    quote_service.accept_quote(buyer, quote.id)
    approved = design_service.approve_design(seller, design.id)
    assert approved.status == DesignApprovalStatus.APPROVED


def test_quote_design_rejects_foreign_quote(buyer, seller, quote_conversation,
                                            conversation):
    foreign = quote_service.create_quote(seller, conversation.id, '5.00', 1)
    quote_service.create_quote(seller, quote_conversation.id, '9.00', 1)
    with pytest.raises(ValidationError):
        design_service.upload_design(
            buyer, quote_conversation.id, [design_file()], context='quote',
            quote_id=foreign.id)


def test_sole_variant_fallback_binds_and_audits(
        buyer, seller, single_variant_product):
    conv = make_conversation(buyer, seller, product=single_variant_product)
    design = make_approved_design(conv)

    product, by_variant = design_service.approved_variants(
        buyer, single_variant_product.id)

    variant = single_variant_product.variants[0]
    assert by_variant == {variant.id: design}
    assert design.variant_id == variant.id
    assert design.variant_auto_bound is True
    assert AuditLog.query.filter_by(
        action='DESIGN_VARIANT_AUTO_BOUND', target_id=design.id).count() == 1


def test_no_fallback_with_several_variants(buyer, seller, conversation):
    design = make_approved_design(conversation)
    _, by_variant = design_service.approved_variants(
        buyer, conversation.product_id)
    assert by_variant == {}
    assert design.variant_id is None
    assert design.variant_auto_bound is False


def _active_designs(conv):
    return DesignApproval.query.filter(
        DesignApproval.conversation_id == conv.id,
        DesignApproval.status.in_([
            DesignApprovalStatus.PENDING,
            DesignApprovalStatus.APPROVED,
        ]),
    ).count()


def test_unbound_design_holds_sole_variant_slot(
        buyer, seller, single_variant_product):
    conv = make_conversation(buyer, seller, product=single_variant_product)
    variant = single_variant_product.variants[0]

    unbound = _upload(buyer, conv)
    with pytest.raises(InvalidStateError):
        _upload(buyer, conv, variant)
    assert _active_designs(conv) == 1

    design_service.reject_design(seller, unbound.id, 'low resolution')
    _upload(buyer, conv, variant)
    with pytest.raises(InvalidStateError):
        _upload(buyer, conv)
    assert _active_designs(conv) == 1


def test_each_quote_gets_its_own_design_slot(buyer, seller,
                                             quote_conversation):
    conv_id = quote_conversation.id
    first = quote_service.create_quote(seller, conv_id, '80.00', 1)
    first_design = design_service.upload_design(
        buyer, conv_id, [design_file()], context='quote')
    quote_service.accept_quote(buyer, first.id)
    design_service.approve_design(seller, first_design.id)

    second = quote_service.create_quote(seller, conv_id, '95.00', 2)
    quote_service.accept_quote(buyer, second.id)

    design = design_service.upload_design(
        buyer, conv_id, [design_file('v2.png')], context='quote')
    assert design.quote_id == second.id
    with pytest.raises(InvalidStateError):
        design_service.upload_design(
            buyer, conv_id, [design_file('v3.png')], context='quote')

    design_service.request_changes(seller, design.id, 'Darker background')
    resubmitted = design_service.resubmit_design(
        buyer, design.id, [design_file('v4.png')])
    assert resubmitted.quote_id == second.id
    design_service.approve_design(seller, resubmitted.id)

    order = quote_service.purchase_quote(
        buyer, second.id, 'ipg', shipping_address='1 Main St')
    assert order.design_approval_id == resubmitted.id


def test_stale_approval_loses_to_concurrent_rejection(
        buyer, seller, conversation, product):
    design = _upload(buyer, conversation, product.variants[0])
    lose_race(
        design,
        status=DesignApprovalStatus.REJECTED,
        seller_notes='Rejected in another tab')
    messages = Message.query.filter_by(
        conversation_id=conversation.id).count()

    with pytest.raises(InvalidStateError):
        design_service.approve_design(seller, design.id, 'looks good')

    db.session.expire_all()
    stored = db.session.get(DesignApproval, design.id)
    assert stored.status == DesignApprovalStatus.REJECTED
    assert stored.seller_notes == 'Rejected in another tab'
    assert stored.approved_at is None
    assert Message.query.filter_by(
        conversation_id=conversation.id).count() == messages
    assert AuditLog.query.filter_by(action='DESIGN_APPROVED').count() == 0
