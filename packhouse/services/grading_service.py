from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packhouse.errors import (
    AlreadyGraded,
    EmptySubmission,
    InvalidLine,
    MissingSelection,
    OverAllocation,
    RemoteError,
)
from packhouse.models import GradingRow, SizeCategory
from packhouse.services.grouping_service import IntakeGroup

logger = logging.getLogger(__name__)

BOXES_FIELD_PREFIX = 'boxes__'
KG_FIELD_PREFIX = 'kg__'


@dataclass(frozen=True)
class GradingSelection:
    transaction_key: str
    client_name: str
    received_total: Decimal

    @classmethod
    def from_intake_group(cls, group: IntakeGroup) -> 'GradingSelection':
        return cls(
            transaction_key=group.transaction_key or '',
            client_name=group.client_name,
            received_total=group.total_quantity,
        )


@dataclass(frozen=True)
class GradingLineInput:
    size_category: SizeCategory
    box_count: int = 0
    quantity: Decimal = Decimal('0')

    @property
    def is_empty(self) -> bool:
        return self.box_count <= 0 and self.quantity <= 0


def _parse_boxes(raw: str, category: SizeCategory) -> int:
    text = (raw or '').strip()
    if not text:
        return 0
    try:
        value = int(text)
    except ValueError as exc:
        raise InvalidLine(f'Cajas inválidas para {category.value}') from exc
    if value < 0:
        raise InvalidLine(f'Las cajas no pueden ser negativas para {category.value}')
    return value


def _parse_kg(raw: str, category: SizeCategory) -> Decimal:
    text = (raw or '').strip()
    if not text:
        return Decimal('0')
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise InvalidLine(f'KG inválidos para {category.value}') from exc
    if not value.is_finite() or value < 0:
        raise InvalidLine(f'Los KG no pueden ser negativos para {category.value}')
    return value.quantize(Decimal('0.01'))


def lines_from_form(form: Mapping[str, str]) -> list[GradingLineInput]:
    """One line per size category, read from ``boxes__<NAME>`` / ``kg__<NAME>`` fields."""
    return [
        GradingLineInput(
            size_category=category,
            box_count=_parse_boxes(str(form.get(f'{BOXES_FIELD_PREFIX}{category.name}', '')), category),
            quantity=_parse_kg(str(form.get(f'{KG_FIELD_PREFIX}{category.name}', '')), category),
        )
        for category in SizeCategory
    ]


def _has_grading_rows(db: Session, transaction_key: str) -> bool:
    existing = db.execute(
        select(GradingRow.id).where(GradingRow.transaction_key == transaction_key).limit(1)
    ).scalar_one_or_none()
    return existing is not None


def _insert_grading_rows(db: Session, rows: list[GradingRow]) -> None:
    try:
        db.add_all(rows)
        db.flush()
    except SQLAlchemyError as exc:
        raise RemoteError(str(getattr(exc, 'orig', None) or exc)) from exc


def submit_grading(
    db: Session,
    *,
    selection: GradingSelection | None,
    graded_on: date | None,
    lines: list[GradingLineInput],
) -> list[GradingRow]:
    if selection is None or not selection.transaction_key or not selection.client_name or graded_on is None:
        raise MissingSelection()

    if _has_grading_rows(db, selection.transaction_key):
        logger.info('Rejected grading for %s: already graded', selection.transaction_key)
        raise AlreadyGraded()

    candidates = [line for line in lines if not line.is_empty]
    if not candidates:
        raise EmptySubmission('Debes llenar al menos una fila con cajas o kg.')

    attempted = sum((line.quantity for line in candidates), Decimal('0'))
    if attempted > selection.received_total:
        logger.info(
            'Rejected grading for %s: %s kg exceeds received %s kg',
            selection.transaction_key,
            attempted,
            selection.received_total,
        )
        raise OverAllocation(limit=selection.received_total, attempted=attempted)

    rows = [
        GradingRow(
            transaction_key=selection.transaction_key,
            client_name=selection.client_name,
            graded_on=graded_on,
            size_category=line.size_category.value,
            box_count=line.box_count,
            quantity=line.quantity,
        )
        for line in candidates
    ]
    _insert_grading_rows(db, rows)
    logger.info('Grading stored for %s: %d categories, %s kg', selection.transaction_key, len(rows), attempted)
    return rows
