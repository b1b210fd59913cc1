"""Decide which negotiation panels a conversation shows.

Everything here is a pure function of its arguments. Callers gather a
fresh snapshot of the conversation on every read and pass it in; nothing
is cached between calls.
"""

QUOTE_CONTEXT = 'quote'
ITEM_CONTEXTS = ('product', 'service')


def _value(status):
    return getattr(status, 'value', status)


def design_badge(has_approved_design, pending_design_count):
    if has_approved_design:
        return 'Design Approved'
    if pending_design_count > 0:
        return f'{pending_design_count} Pending'
    return 'No Design'


def quote_badge(latest_quote_status):
    status = _value(latest_quote_status)
    if status == 'accepted':
        return 'Quote Accepted'
    if status:
        return f'Quote {status}'
    return 'No Quote'


def resolve_workflow(
        workflow_contexts,
        requires_quote,
        requires_design_approval,
        latest_quote_status=None,
        has_approved_design=False,
        pending_design_count=0):
    contexts = set(workflow_contexts or [])
    latest = _value(latest_quote_status)

    is_quote_workflow = QUOTE_CONTEXT in contexts
    is_product_workflow = (
        not contexts or any(ctx in contexts for ctx in ITEM_CONTEXTS)
    )

    if not requires_quote and not requires_design_approval:
        show_quote_panel = False
        show_design_panel = False
    else:
        show_quote_panel = bool(requires_quote) and is_quote_workflow
        show_design_panel = bool(requires_design_approval) and (
            (is_product_workflow and not is_quote_workflow)
            or (is_quote_workflow and latest == 'accepted')
        )

    panel_order = []
    if show_quote_panel:
        panel_order.append('quote')
    if show_design_panel:
        panel_order.append('design')

    badges = {}
    if requires_design_approval:
        badges['design'] = design_badge(
            has_approved_design, pending_design_count)
    if requires_quote:
        badges['quote'] = quote_badge(latest)

    return {
        'show_quote_panel': show_quote_panel,
        'show_design_panel': show_design_panel,
        'panel_order': panel_order,
        'is_quote_workflow': is_quote_workflow,
        'is_product_workflow': is_product_workflow,
        'badges': badges,
    }
