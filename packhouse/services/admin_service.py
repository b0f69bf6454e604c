from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packhouse.errors import InvalidLine, RecordNotFound, RemoteError
from packhouse.models import GradingRow, IntakeRow, ProductType, SalesRecord, SizeCategory

logger = logging.getLogger(__name__)

_MONTH_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')


@dataclass(frozen=True)
class MonthRange:
    month: str
    start_date: date
    end_date: date

    @property
    def start_ts(self) -> datetime:
        return datetime.combine(self.start_date, time.min, tzinfo=timezone.utc)

    @property
    def end_ts(self) -> datetime:
        return datetime.combine(self.end_date, time.min, tzinfo=timezone.utc)


def current_month() -> str:
    today = datetime.now(tz=timezone.utc).date()
    return f'{today.year:04d}-{today.month:02d}'


def month_range(month: str | None) -> MonthRange:
    """Half-open [first day, first day of next month) range for ``YYYY-MM``."""
    value = (month or '').strip() or current_month()
    match = _MONTH_PATTERN.match(value)
    if not match:
        raise ValueError('Mes inválido, usa el formato AAAA-MM')
    year, month_number = int(match.group(1)), int(match.group(2))
    if not 1 <= month_number <= 12:
        raise ValueError('Mes inválido, usa el formato AAAA-MM')
    start = date(year, month_number, 1)
    end = date(year + 1, 1, 1) if month_number == 12 else date(year, month_number + 1, 1)
    return MonthRange(month=value, start_date=start, end_date=end)


def list_sales_in_month(db: Session, rng: MonthRange) -> list[SalesRecord]:
    return db.execute(
        select(SalesRecord)
        .where(SalesRecord.sold_on >= rng.start_date, SalesRecord.sold_on < rng.end_date)
        .order_by(SalesRecord.sold_on.desc(), SalesRecord.id.desc())
    ).scalars().all()


def list_intake_in_month(db: Session, rng: MonthRange) -> list[IntakeRow]:
    return db.execute(
        select(IntakeRow)
        .where(IntakeRow.received_at >= rng.start_ts, IntakeRow.received_at < rng.end_ts)
        .order_by(IntakeRow.received_at.desc(), IntakeRow.id.asc())
    ).scalars().all()


def list_grading_in_month(db: Session, rng: MonthRange) -> list[GradingRow]:
    return db.execute(
        select(GradingRow)
        .where(GradingRow.graded_on >= rng.start_date, GradingRow.graded_on < rng.end_date)
        .order_by(GradingRow.graded_on.desc(), GradingRow.id.asc())
    ).scalars().all()


def _text(raw: str) -> str:
    value = raw.strip()
    if not value:
        raise InvalidLine('El campo no puede quedar vacío.')
    return value


def _optional_text(raw: str) -> str | None:
    return raw.strip() or None


def _decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise InvalidLine(f'Número inválido: {raw}') from exc
    if not value.is_finite() or value < 0:
        raise InvalidLine(f'Número inválido: {raw}')
    return value.quantize(Decimal('0.01'))


def _integer(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise InvalidLine(f'Número entero inválido: {raw}') from exc
    if value < 0:
        raise InvalidLine(f'Número entero inválido: {raw}')
    return value


def _iso_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise InvalidLine(f'Fecha inválida: {raw}') from exc


def _iso_datetime(raw: str) -> datetime:
    try:
        value = datetime.fromisoformat(raw.strip())
    except ValueError as exc:
        raise InvalidLine(f'Fecha y hora inválida: {raw}') from exc
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _choice(options: list[str]) -> Callable[[str], str]:
    def _parse(raw: str) -> str:
        value = raw.strip()
        if value not in options:
            raise InvalidLine(f'Valor no permitido: {value}')
        return value

    return _parse


TABLES: dict[str, type] = {
    'sales': SalesRecord,
    'intake': IntakeRow,
    'grading': GradingRow,
}

EDITABLE_FIELDS: dict[str, dict[str, Callable[[str], Any]]] = {
    'sales': {
        'sold_on': _iso_date,
        'client_name': _text,
        'address': _optional_text,
        'city': _optional_text,
        'plates': _optional_text,
        'total': _decimal,
    },
    'intake': {
        'received_at': _iso_datetime,
        'client_name': _text,
        'product_type': _choice([item.value for item in ProductType]),
        'quantity': _decimal,
        'client_phone': _optional_text,
    },
    'grading': {
        'graded_on': _iso_date,
        'client_name': _text,
        'size_category': _choice([item.value for item in SizeCategory]),
        'box_count': _integer,
        'quantity': _decimal,
    },
}


def _model_for(table: str) -> type:
    model = TABLES.get(table)
    if model is None:
        raise RecordNotFound(f'Tabla desconocida: {table}')
    return model


def get_record(db: Session, *, table: str, record_id: int):
    model = _model_for(table)
    record = db.execute(select(model).where(model.id == record_id)).scalar_one_or_none()
    if record is None:
        raise RecordNotFound()
    return record


def coerce_changes(table: str, raw_changes: dict[str, str]) -> dict[str, Any]:
    parsers = EDITABLE_FIELDS.get(table)
    if parsers is None:
        raise RecordNotFound(f'Tabla desconocida: {table}')
    return {name: parsers[name](str(value)) for name, value in raw_changes.items() if name in parsers}


def update_record(db: Session, *, table: str, record_id: int, raw_changes: dict[str, str]) -> dict[str, Any]:
    """Applies whitelisted field edits; the stored sales total is not recomputed from line items."""
    changes = coerce_changes(table, raw_changes)
    record = get_record(db, table=table, record_id=record_id)
    for name, value in changes.items():
        setattr(record, name, value)
    try:
        db.flush()
    except SQLAlchemyError as exc:
        raise RemoteError(str(getattr(exc, 'orig', None) or exc)) from exc
    logger.info('Updated %s #%s fields %s', table, record_id, sorted(changes))
    return changes


def delete_record(db: Session, *, table: str, record_id: int):
    record = get_record(db, table=table, record_id=record_id)
    try:
        db.delete(record)
        db.flush()
    except SQLAlchemyError as exc:
        raise RemoteError(str(getattr(exc, 'orig', None) or exc), context='Error al eliminar') from exc
    logger.info('Deleted %s #%s', table, record_id)
    return record
