from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from packhouse.errors import (
    DuplicateSale,
    EmptySubmission,
    MissingSelection,
    NumberAssignmentFailed,
    RemoteError,
)
from packhouse.models import NOTE_COUNTER_NAME, GradingRow, NoteCounter, SalesRecord
from packhouse.services.grouping_service import GradingGroup, group_grading_rows, to_decimal

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = '23505'
NOTE_NUMBER_CONSTRAINT = 'sales_records_note_number_key'
CENT = Decimal('0.01')


@dataclass(frozen=True)
class SaleLineInput:
    quantity: str
    label: str
    unit_price: str


@dataclass(frozen=True)
class SaleLine:
    quantity: Decimal
    label: str
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(CENT)

    def to_json(self) -> dict[str, str]:
        return {
            'quantity': str(self.quantity),
            'label': self.label,
            'unit_price': str(self.unit_price),
            'amount': str(self.amount),
        }


@dataclass
class SaleDraft:
    transaction_key: str | None
    client_name: str
    sold_on: date
    address: str = ''
    city: str = ''
    plates: str = ''
    lines: list[SaleLineInput] = field(default_factory=list)


class SoldKeyCache:
    """Transaction keys known to already have a sale in this process."""

    def __init__(self, keys: set[str] | None = None) -> None:
        self._keys: set[str] = set(keys or ())

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def replace(self, keys: set[str]) -> None:
        self._keys = set(keys)

    def add(self, key: str) -> None:
        self._keys.add(key)

    def discard(self, key: str | None) -> None:
        if key:
            self._keys.discard(key)


@lru_cache(maxsize=1)
def get_sold_key_cache() -> SoldKeyCache:
    return SoldKeyCache()


def _positive_decimal(raw: Any) -> Decimal | None:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def clean_sale_lines(lines: list[SaleLineInput]) -> list[SaleLine]:
    cleaned: list[SaleLine] = []
    for line in lines:
        label = (line.label or '').strip()
        quantity = _positive_decimal(line.quantity)
        unit_price = _positive_decimal(line.unit_price)
        if not label or quantity is None or unit_price is None:
            continue
        cleaned.append(SaleLine(quantity=quantity, label=label, unit_price=unit_price))
    return cleaned


def compute_total(lines: list[SaleLine]) -> Decimal:
    return sum((line.amount for line in lines), Decimal('0')).quantize(CENT)


def line_items_of(record: Any) -> list[dict[str, Any]]:
    """Normalised line items of a stored sale, accepting the older Spanish field names."""
    items = record.line_items if isinstance(record.line_items, list) else []
    normalised = []
    for item in items:
        if not isinstance(item, dict):
            continue
        quantity = to_decimal(item.get('quantity', item.get('kg', item.get('cantidad'))))
        unit_price = to_decimal(item.get('unit_price', item.get('precio_unitario', item.get('precio'))))
        amount = item.get('amount', item.get('importe'))
        normalised.append(
            {
                'quantity': quantity,
                'label': str(item.get('label') or item.get('descripcion') or item.get('calibre') or ''),
                'unit_price': unit_price,
                'amount': to_decimal(amount) if amount is not None else (quantity * unit_price).quantize(CENT),
            }
        )
    return normalised


def recompute_total(record: Any) -> Decimal:
    return sum((item['amount'] for item in line_items_of(record)), Decimal('0')).quantize(CENT)


def _load_sold_keys(db: Session) -> set[str]:
    keys = db.execute(
        select(SalesRecord.transaction_key).where(SalesRecord.transaction_key.is_not(None))
    ).scalars().all()
    return set(keys)


def refresh_sold_keys(db: Session, cache: SoldKeyCache) -> SoldKeyCache:
    cache.replace(_load_sold_keys(db))
    return cache


def list_sellable_groups(db: Session, *, sold_keys: SoldKeyCache) -> dict[str, GradingGroup]:
    refresh_sold_keys(db, sold_keys)
    sold_subquery = select(SalesRecord.transaction_key).where(SalesRecord.transaction_key.is_not(None))
    rows = db.execute(
        select(GradingRow)
        .where(
            GradingRow.transaction_key.is_not(None),
            GradingRow.transaction_key.not_in(sold_subquery),
        )
        .order_by(GradingRow.graded_on.desc(), GradingRow.id.asc())
    ).scalars().all()
    groups = group_grading_rows(rows)
    return {key: group for key, group in groups.items() if key not in sold_keys}


def prefill_lines(group: GradingGroup) -> list[dict[str, Any]]:
    return [
        {'quantity': quantity, 'label': label, 'unit_price': ''}
        for label, _boxes, quantity in group.lines_by_category
        if quantity > 0
    ]


def _next_note_number(db: Session) -> int | None:
    return db.execute(
        update(NoteCounter)
        .where(NoteCounter.name == NOTE_COUNTER_NAME)
        .values(value=NoteCounter.value + 1)
        .returning(NoteCounter.value)
    ).scalar_one_or_none()


def assign_note_number(db: Session) -> int:
    try:
        number = _next_note_number(db)
    except SQLAlchemyError as exc:
        logger.error('Note number assignment failed: %s', exc)
        raise NumberAssignmentFailed() from exc
    if not number:
        logger.error('Note counter %r is missing', NOTE_COUNTER_NAME)
        raise NumberAssignmentFailed()
    return int(number)


def _insert_sale(db: Session, record: SalesRecord) -> None:
    with db.begin_nested():
        db.add(record)
        db.flush()


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, 'orig', None)
    code = getattr(orig, 'sqlstate', None) or getattr(orig, 'pgcode', None)
    return code == UNIQUE_VIOLATION


def _violated_constraint(exc: IntegrityError) -> str | None:
    diag = getattr(getattr(exc, 'orig', None), 'diag', None)
    return getattr(diag, 'constraint_name', None)


def create_sale(db: Session, *, draft: SaleDraft, sold_keys: SoldKeyCache) -> SalesRecord:
    transaction_key = (draft.transaction_key or '').strip() or None
    if transaction_key and transaction_key in sold_keys:
        raise DuplicateSale()

    client_name = (draft.client_name or '').strip()
    if not client_name or draft.sold_on is None:
        raise MissingSelection('Debes indicar el cliente y la fecha.')

    lines = clean_sale_lines(draft.lines)
    if not lines:
        raise EmptySubmission('Debes ingresar al menos un producto con cantidad, descripción y precio.')

    note_number = assign_note_number(db)
    record = SalesRecord(
        note_number=note_number,
        sold_on=draft.sold_on,
        transaction_key=transaction_key,
        client_name=client_name,
        address=draft.address.strip() or None,
        city=draft.city.strip() or None,
        plates=draft.plates.strip() or None,
        line_items=[line.to_json() for line in lines],
        total=compute_total(lines),
    )
    try:
        _insert_sale(db, record)
    except IntegrityError as exc:
        if _is_unique_violation(exc) and _violated_constraint(exc) != NOTE_NUMBER_CONSTRAINT:
            if transaction_key:
                sold_keys.add(transaction_key)
            logger.info('Store rejected duplicate sale for %s', transaction_key)
            raise DuplicateSale('Ya existe una venta para esta clasificación.') from exc
        raise RemoteError(str(exc.orig or exc)) from exc
    except SQLAlchemyError as exc:
        raise RemoteError(str(getattr(exc, 'orig', None) or exc)) from exc

    logger.info('Sale note %s stored for %r, total %s', note_number, client_name, record.total)
    return record


def list_all_sales(db: Session) -> list[SalesRecord]:
    return db.execute(select(SalesRecord).order_by(SalesRecord.created_at.desc())).scalars().all()


def repair_missing_totals(db: Session, records: list[SalesRecord]) -> int:
    """Fills stored totals left at zero with the total of their line items."""
    repaired = 0
    for record in records:
        if record.total:
            continue
        computed = recompute_total(record)
        if computed > 0:
            record.total = computed
            repaired += 1
    if repaired:
        db.flush()
        logger.info('Repaired %d sales totals', repaired)
    return repaired
