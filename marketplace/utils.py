from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime
from flask import request
from marketplace.errors import ValidationError
import logging

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def paginate_query(query, page=1, per_page=20):
    pagination = query.paginate(
        page=page,
        per_page=per_page,
        error_out=False
    )
    return {
        'items': pagination.items,
        'page': pagination.page,
        'pages': pagination.pages,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'has_next': pagination.has_next,
        'has_prev': pagination.has_prev
    }


def page_args(default_per_page=20):
    page = request.args.get('page', 1, type=int) or 1
    per_page = request.args.get('per_page', default_per_page, type=int)
    per_page = max(1, min(per_page or default_per_page, 100))
    return max(page, 1), per_page


def parse_money(value, field='amount'):
    """Parse a price into a 2-place Decimal.

    Strings are preferred on the wire; floats go through ``str`` so that
    10.5 becomes Decimal('10.50') rather than its binary expansion.
    """
    if value is None or value == '':
        raise ValidationError(f'{field} is required', field=field)
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field=field)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field=field)
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number', field=field)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_int(value, field, default=None):
    if value is None or value == '':
        if default is not None:
            return default
        raise ValidationError(f'{field} is required', field=field)
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field=field)
    # JSON numbers arrive as floats; 2.7 must not become 2.
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f'{field} must be an integer', field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field=field)


def parse_optional_id(value, field):
    if value is None or value == '':
        return None
    return parse_int(value, field)


def parse_datetime(value, field):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f'{field} must be an ISO 8601 datetime', field=field)
    # Stored timestamps are naive UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def format_money(value):
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def format_dt(value):
    return value.isoformat() if value else None
