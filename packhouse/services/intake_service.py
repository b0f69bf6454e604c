from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packhouse.errors import (
    DuplicateClient,
    EmptySubmission,
    InvalidLine,
    InvalidPhone,
    MissingSelection,
    RecordNotFound,
    RemoteError,
)
from packhouse.models import GradingRow, IntakeRow, ProductType
from packhouse.services.grouping_service import IntakeGroup, group_intake_rows

logger = logging.getLogger(__name__)

NEW_CLIENT_CHOICE = '__new__'
PHONE_PATTERN = re.compile(r'^\d{10}$')
PRODUCT_TYPES = [item.value for item in ProductType]


@dataclass(frozen=True)
class IntakeLineInput:
    product_type: str
    quantity: str


@dataclass(frozen=True)
class IntakeResult:
    transaction_key: str
    client_name: str
    row_count: int
    total_quantity: Decimal


def _known_clients(db: Session) -> list[str]:
    names = db.execute(select(IntakeRow.client_name).where(IntakeRow.client_name != '')).scalars().all()
    return sorted({(name or '').strip() for name in names if (name or '').strip()})


def list_known_clients(db: Session) -> list[str]:
    return _known_clients(db)


def _insert_intake_rows(db: Session, rows: list[IntakeRow]) -> None:
    try:
        db.add_all(rows)
        db.flush()
    except SQLAlchemyError as exc:
        raise RemoteError(str(getattr(exc, 'orig', None) or exc)) from exc


def _parse_quantity(raw: str | Decimal) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InvalidLine(f'Cantidad inválida: {raw}') from exc
    if not value.is_finite() or value <= 0:
        raise InvalidLine('Los kilos deben ser mayores a cero.')
    return value.quantize(Decimal('0.01'))


def _new_transaction_key() -> str:
    return str(uuid.uuid4())


def resolve_client_name(client_choice: str, new_client_name: str) -> tuple[str, bool]:
    choice = (client_choice or '').strip()
    if choice == NEW_CLIENT_CHOICE:
        return (new_client_name or '').strip(), True
    return choice, False


def create_intake(
    db: Session,
    *,
    client_choice: str,
    new_client_name: str = '',
    phone: str = '',
    lines: list[IntakeLineInput],
) -> IntakeResult:
    client_name, is_new_client = resolve_client_name(client_choice, new_client_name)
    if not client_name:
        raise MissingSelection('Debes escribir o seleccionar un nombre de cliente.')

    clean_phone = (phone or '').strip()
    if is_new_client:
        lowered = client_name.lower()
        if any(name.lower() == lowered for name in _known_clients(db)):
            raise DuplicateClient()
        if clean_phone and not PHONE_PATTERN.match(clean_phone):
            raise InvalidPhone()

    filled = [line for line in lines if (line.product_type or '').strip() and str(line.quantity or '').strip()]
    if not filled:
        raise EmptySubmission('Debes llenar al menos un tipo con kilos.')

    transaction_key = _new_transaction_key()
    rows: list[IntakeRow] = []
    for line in filled:
        product_type = line.product_type.strip()
        if product_type not in PRODUCT_TYPES:
            raise InvalidLine(f'Tipo de aguacate desconocido: {product_type}')
        rows.append(
            IntakeRow(
                transaction_key=transaction_key,
                client_name=client_name,
                product_type=product_type,
                quantity=_parse_quantity(line.quantity),
                client_phone=(clean_phone or None) if is_new_client else None,
            )
        )

    _insert_intake_rows(db, rows)
    total = sum((row.quantity for row in rows), Decimal('0'))
    logger.info('Intake %s stored for %r: %d lines, %s kg', transaction_key, client_name, len(rows), total)
    return IntakeResult(
        transaction_key=transaction_key,
        client_name=client_name,
        row_count=len(rows),
        total_quantity=total,
    )


def _recent_intake_rows(db: Session, row_limit: int) -> list[IntakeRow]:
    return list(
        db.execute(
            select(IntakeRow)
            .where(IntakeRow.transaction_key.is_not(None))
            .order_by(IntakeRow.received_at.desc())
            .limit(row_limit)
        ).scalars().all()
    )


def _intake_rows_for_keys(db: Session, keys: set[str]) -> list[IntakeRow]:
    return list(
        db.execute(
            select(IntakeRow)
            .where(IntakeRow.transaction_key.in_(keys))
            .order_by(IntakeRow.received_at.desc(), IntakeRow.id.asc())
        ).scalars().all()
    )


def list_recent_intake_groups(db: Session, *, row_limit: int) -> dict[str, IntakeGroup]:
    rows = _recent_intake_rows(db, row_limit)
    if len(rows) >= row_limit:
        # A full window may cut the oldest deliveries short; reload their rows whole.
        rows = _intake_rows_for_keys(db, {row.transaction_key for row in rows})
    return group_intake_rows(rows)


def list_graded_keys(db: Session) -> set[str]:
    keys = db.execute(
        select(GradingRow.transaction_key).where(GradingRow.transaction_key.is_not(None)).distinct()
    ).scalars().all()
    return set(keys)


def get_intake_group(db: Session, *, transaction_key: str) -> IntakeGroup:
    rows = db.execute(
        select(IntakeRow)
        .where(IntakeRow.transaction_key == transaction_key)
        .order_by(IntakeRow.id.asc())
    ).scalars().all()
    groups = group_intake_rows(rows)
    if transaction_key not in groups:
        raise RecordNotFound('Entrega no encontrada.')
    return groups[transaction_key]
