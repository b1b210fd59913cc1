"""Per-conversation variant/package selection kept in the user's session.

Each entry remembers the option list it was checked against. Reads
re-check the value against the current option list and drop entries
whose option no longer exists.
"""
import logging

from flask import session

from marketplace.errors import ValidationError

logger = logging.getLogger(__name__)

SESSION_KEY = 'workflow_selection'


def valid_options(conv):
    if conv.product is not None:
        return 'variant', [v.id for v in conv.product.variants]
    if conv.service is not None:
        return 'package', [p.id for p in conv.service.packages]
    return None, []


def _entries():
    return session.get(SESSION_KEY) or {}


def _store(entries):
    session[SESSION_KEY] = entries
    session.modified = True


def get_selection(conv):
    kind, valid_ids = valid_options(conv)
    key = str(conv.id)
    entries = _entries()
    entry = entries.get(key)
    if not entry:
        return {'kind': kind, 'value': None, 'valid_options': valid_ids}

    value = entry.get('value')
    if value not in valid_ids:
        logger.info(
            "Dropping stale selection %s for conversation %s",
            value,
            conv.id,
        )
        entries.pop(key, None)
        _store(entries)
        return {'kind': kind, 'value': None, 'valid_options': valid_ids}

    if entry.get('valid_against') != valid_ids:
        entry['valid_against'] = valid_ids
        _store(entries)
    return {'kind': kind, 'value': value, 'valid_options': valid_ids}


def set_selection(conv, value):
    kind, valid_ids = valid_options(conv)
    key = str(conv.id)
    entries = _entries()
    if value is None:
        entries.pop(key, None)
        _store(entries)
        return {'kind': kind, 'value': None, 'valid_options': valid_ids}

    if value not in valid_ids:
        raise ValidationError(
            f'{kind or "option"} {value} is not available in this conversation',
            field='value')
    entries[key] = {'value': value, 'valid_against': valid_ids}
    _store(entries)
    return {'kind': kind, 'value': value, 'valid_options': valid_ids}
