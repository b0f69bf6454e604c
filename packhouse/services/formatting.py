from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from packhouse.config import settings
from packhouse.services.grouping_service import to_decimal

_ISO_DATE_PREFIX = re.compile(r'^(\d{4})-(\d{2})-(\d{2})')


def money(value: Any) -> str:
    amount = to_decimal(value).quantize(Decimal('0.01'))
    sign = '-' if amount < 0 else ''
    return f'{sign}{settings.currency_symbol}{abs(amount):,.2f}'


def folio(note_number: Any) -> str:
    return str(note_number if note_number is not None else '').zfill(4)


def short_date(value: Any) -> str:
    """dd/mm/yyyy without shifting plain dates across timezones."""
    if value is None or value == '':
        return ''
    if isinstance(value, datetime):
        return value.strftime('%d/%m/%Y')
    if isinstance(value, date):
        return value.strftime('%d/%m/%Y')
    match = _ISO_DATE_PREFIX.match(str(value))
    if match:
        return f'{match.group(3)}/{match.group(2)}/{match.group(1)}'
    return str(value)


def kilos(value: Any) -> str:
    return f'{to_decimal(value):,.2f}'


def tonnes(value: Any) -> str:
    return f'{to_decimal(value) / Decimal("1000"):,.2f}'
