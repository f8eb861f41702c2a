from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

from reseller_orders.config import settings
from reseller_orders.models import OrderStatus

RENEWAL_WINDOW_DAYS = 4

_ISO_DATE = re.compile(r'^(\d{4})[-/](\d{2})[-/](\d{2})')
_DMY_DATE = re.compile(r'^(\d{2})[-/](\d{2})[-/](\d{4})$')
_COMPACT_DATE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')


def today_local() -> date:
    return datetime.now(tz=ZoneInfo(settings.app_timezone)).date()


def parse_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None

    match = _ISO_DATE.match(raw) or _COMPACT_DATE.match(raw)
    if match:
        year, month, day = match.groups()
    else:
        match = _DMY_DATE.match(raw)
        if not match:
            return None
        day, month, year = match.groups()
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def to_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(',', '')
    if raw == '':
        return None
    try:
        parsed = Decimal(raw)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def to_int(value) -> int | None:
    parsed = to_decimal(value)
    if parsed is None:
        return None
    return int(parsed)


def normalize_check_flag(value) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)):
        return bool(value)
    raw = str(value).strip().lower()
    if raw in ('true', '1', 't', 'yes'):
        return True
    if raw in ('false', '0', 'f', 'no'):
        return False
    return None


def order_to_dict(row, model=None) -> dict:
    if isinstance(row, dict):
        return dict(row)
    table = (model or type(row)).__table__
    return {column.key: getattr(row, column.key) for column in table.columns}


def normalize_order(row, today: date | None = None) -> dict:
    """Build the read view of an order row.

    ``remaining_days`` counts from ``today`` to the expiry date and falls back
    to ``days`` when the row has no usable expiry. ``status`` keeps the stored
    value; ``display_status`` flags rows that are due for renewal or already
    expired.
    """
    data = order_to_dict(row)
    today = today or today_local()

    registration = parse_date(data.get('order_date'))
    expiry = parse_date(data.get('order_expired'))

    remaining_days = None
    if expiry is not None:
        remaining_days = (expiry - today).days
    else:
        remaining_days = to_int(data.get('days'))

    status = data.get('status') or OrderStatus.UNPAID.value
    parsed_status = OrderStatus.parse(status)
    check_flag = normalize_check_flag(data.get('check_flag'))
    if parsed_status == OrderStatus.PAID and check_flag is None:
        check_flag = True

    display_status = status
    if parsed_status != OrderStatus.PAID and remaining_days is not None:
        if remaining_days <= 0:
            display_status = OrderStatus.EXPIRED.value
        elif remaining_days <= RENEWAL_WINDOW_DAYS:
            display_status = OrderStatus.RENEWAL.value

    data.update(
        {
            'registration_date': registration.isoformat() if registration else None,
            'expiry_date': expiry.isoformat() if expiry else None,
            'remaining_days': remaining_days,
            'status': status,
            'display_status': display_status,
            'check_flag': check_flag,
        }
    )
    return data


def effective_status(normalized: dict) -> OrderStatus | None:
    """Status that delete-time decisions act on: the auto-derived one when present."""
    return OrderStatus.parse(normalized.get('display_status') or normalized.get('status'))
