"""Read-model projection of flat intake/grading rows into delivery groups.

Rows sharing a transaction key form one group. Rows without a key (created
before deliveries were grouped) stay visible as singleton groups keyed by their
own row id. Groups are rebuilt from scratch on every call.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

SINGLETON_KEY_PREFIX = 'single-'


@dataclass
class IntakeGroup:
    key: str
    transaction_key: str | None
    client_name: str
    timestamp: datetime | date | None
    total_quantity: Decimal = Decimal('0')
    client_phone: str | None = None
    rows: list[Any] = field(default_factory=list)

    @property
    def total_tonnes(self) -> Decimal:
        return (self.total_quantity / Decimal('1000')).quantize(Decimal('0.01'))


@dataclass
class GradingGroup(IntakeGroup):
    total_boxes: int = 0

    @property
    def lines_by_category(self) -> list[tuple[str, int, Decimal]]:
        return [
            (row.size_category, int(row.box_count or 0), to_decimal(row.quantity))
            for row in self.rows
        ]


def to_decimal(value: Any) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal('0')


def group_key_for(row: Any) -> str:
    transaction_key = getattr(row, 'transaction_key', None)
    if transaction_key:
        return str(transaction_key)
    return f'{SINGLETON_KEY_PREFIX}{row.id}'


def _is_later(candidate, current) -> bool:
    if candidate is None:
        return False
    if current is None:
        return True
    return candidate > current


def _display_order(groups: dict[str, IntakeGroup]) -> dict:
    # sorted() keeps insertion order among equal timestamps, also with reverse=True.
    ordered = sorted(
        groups.values(),
        key=lambda group: (group.timestamp is not None, group.timestamp),
        reverse=True,
    )
    return {group.key: group for group in ordered}


def group_intake_rows(rows: Iterable[Any]) -> dict[str, IntakeGroup]:
    groups: dict[str, IntakeGroup] = {}
    for row in rows:
        key = group_key_for(row)
        group = groups.get(key)
        if group is None:
            group = IntakeGroup(
                key=key,
                transaction_key=getattr(row, 'transaction_key', None) or None,
                client_name=row.client_name,
                timestamp=row.received_at,
            )
            groups[key] = group
        group.rows.append(row)
        group.total_quantity += to_decimal(row.quantity)
        if group.client_phone is None and getattr(row, 'client_phone', None):
            group.client_phone = row.client_phone
        if _is_later(row.received_at, group.timestamp):
            group.timestamp = row.received_at
    return _display_order(groups)


def group_grading_rows(rows: Iterable[Any]) -> dict[str, GradingGroup]:
    groups: dict[str, GradingGroup] = {}
    for row in rows:
        key = group_key_for(row)
        group = groups.get(key)
        if group is None:
            group = GradingGroup(
                key=key,
                transaction_key=getattr(row, 'transaction_key', None) or None,
                client_name=row.client_name,
                timestamp=row.graded_on,
            )
            groups[key] = group
        group.rows.append(row)
        group.total_quantity += to_decimal(row.quantity)
        group.total_boxes += int(row.box_count or 0)
        if _is_later(row.graded_on, group.timestamp):
            group.timestamp = row.graded_on
    return _display_order(groups)
