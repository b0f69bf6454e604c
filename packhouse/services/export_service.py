from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.orm import Session

from packhouse.models import GradingRow, IntakeRow, SalesRecord
from packhouse.services.admin_service import (
    MonthRange,
    list_grading_in_month,
    list_intake_in_month,
    list_sales_in_month,
)
from packhouse.services.sales_service import line_items_of

logger = logging.getLogger(__name__)

SALES_COLUMNS = [
    'id',
    'note_number',
    'sold_on',
    'transaction_key',
    'client_name',
    'address',
    'city',
    'plates',
    'total',
    'created_at',
]
SALES_DETAIL_COLUMNS = ['sales_id', 'note_number', 'quantity', 'label', 'unit_price', 'amount']
INTAKE_COLUMNS = ['id', 'received_at', 'client_name', 'quantity', 'product_type', 'client_phone', 'transaction_key']
GRADING_COLUMNS = ['id', 'graded_on', 'client_name', 'size_category', 'box_count', 'quantity', 'transaction_key']


@dataclass
class ExportData:
    sales: list[Any]
    intake: list[Any]
    grading: list[Any]


def fetch_all_pages(load_page: Callable[[int, int], Sequence[Any]], *, page_size: int) -> list[Any]:
    """Reads consecutive ``page_size`` windows until a short or empty page comes back."""
    if page_size <= 0:
        raise ValueError('Page size must be greater than zero')
    rows: list[Any] = []
    offset = 0
    while True:
        page = list(load_page(offset, page_size))
        if not page:
            break
        rows.extend(page)
        if len(page) < page_size:
            break
        offset += page_size
    return rows


def _table_page_loader(db: Session, model) -> Callable[[int, int], Sequence[Any]]:
    def _load(offset: int, limit: int) -> Sequence[Any]:
        return db.execute(select(model).order_by(model.id.asc()).offset(offset).limit(limit)).scalars().all()

    return _load


def fetch_month(db: Session, rng: MonthRange) -> ExportData:
    return ExportData(
        sales=list_sales_in_month(db, rng),
        intake=list_intake_in_month(db, rng),
        grading=list_grading_in_month(db, rng),
    )


def fetch_full_history(db: Session, *, page_size: int) -> ExportData:
    return ExportData(
        sales=fetch_all_pages(_table_page_loader(db, SalesRecord), page_size=page_size),
        intake=fetch_all_pages(_table_page_loader(db, IntakeRow), page_size=page_size),
        grading=fetch_all_pages(_table_page_loader(db, GradingRow), page_size=page_size),
    )


def _cell(value: Any) -> Any:
    # Excel has no timezone support.
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def split_sales(records: list[Any]) -> tuple[list[list[Any]], list[list[Any]]]:
    """Flattens sales into one header row each plus one detail row per line item."""
    sales_rows: list[list[Any]] = []
    detail_rows: list[list[Any]] = []
    for record in records:
        sales_rows.append([_cell(getattr(record, column, None)) for column in SALES_COLUMNS])
        for item in line_items_of(record):
            detail_rows.append(
                [record.id, record.note_number, item['quantity'], item['label'], item['unit_price'], item['amount']]
            )
    return sales_rows, detail_rows


def _append_sheet(workbook: Workbook, title: str, columns: list[str], rows: list[list[Any]], *, first: bool = False) -> None:
    sheet = workbook.active if first else workbook.create_sheet()
    sheet.title = title
    sheet.append(columns)
    for row in rows:
        sheet.append(row)


def _model_rows(records: list[Any], columns: list[str]) -> list[list[Any]]:
    return [[_cell(getattr(record, column, None)) for column in columns] for record in records]


def build_workbook(data: ExportData) -> Workbook:
    workbook = Workbook()
    sales_rows, detail_rows = split_sales(data.sales)
    _append_sheet(workbook, 'Sales', SALES_COLUMNS, sales_rows, first=True)
    _append_sheet(workbook, 'Sales_Detail', SALES_DETAIL_COLUMNS, detail_rows)
    _append_sheet(workbook, 'Intake', INTAKE_COLUMNS, _model_rows(data.intake, INTAKE_COLUMNS))
    _append_sheet(workbook, 'Grading', GRADING_COLUMNS, _model_rows(data.grading, GRADING_COLUMNS))
    logger.info(
        'Workbook built: %d sales, %d detail, %d intake, %d grading rows',
        len(sales_rows),
        len(detail_rows),
        len(data.intake),
        len(data.grading),
    )
    return workbook


def workbook_bytes(data: ExportData) -> bytes:
    buffer = BytesIO()
    build_workbook(data).save(buffer)
    return buffer.getvalue()
