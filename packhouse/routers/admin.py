from __future__ import annotations

from io import BytesIO

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from packhouse.auth import Principal, Role, require_role
from packhouse.config import settings
from packhouse.db import get_db
from packhouse.dependencies import get_client_ip, render, status_line
from packhouse.errors import PackhouseError, RecordNotFound
from packhouse.security.csrf import verify_csrf
from packhouse.services.admin_service import (
    EDITABLE_FIELDS,
    delete_record,
    get_record,
    list_grading_in_month,
    list_intake_in_month,
    list_sales_in_month,
    month_range,
    update_record,
)
from packhouse.services.audit_service import log_audit
from packhouse.services.export_service import fetch_full_history, fetch_month, workbook_bytes
from packhouse.services.grouping_service import group_grading_rows, group_intake_rows
from packhouse.services.note_document_service import note_filename, render_sales_note
from packhouse.services.sales_service import (
    SoldKeyCache,
    get_sold_key_cache,
    line_items_of,
    list_all_sales,
    repair_missing_totals,
)

router = APIRouter(prefix='/admin', tags=['admin'])
admin_access = require_role(Role.SECRETARY)

TABS = ['sales', 'intake', 'grading', 'intake_groups', 'grading_groups']
XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
DONE_MESSAGES = {
    'updated': 'Registro actualizado.',
    'deleted': 'Registro eliminado.',
}


def _tab_rows(db: Session, tab: str, rng) -> list | dict:
    if tab == 'sales':
        return list_sales_in_month(db, rng)
    if tab == 'intake':
        return list_intake_in_month(db, rng)
    if tab == 'grading':
        return list_grading_in_month(db, rng)
    if tab == 'intake_groups':
        return list(group_intake_rows(list_intake_in_month(db, rng)).values())
    return list(group_grading_rows(list_grading_in_month(db, rng)).values())


def _render_admin(
    request: Request,
    db: Session,
    *,
    tab: str,
    month: str,
    edit_id: int | None = None,
    status: dict | None = None,
    status_code: int = 200,
):
    tab = tab if tab in TABS else 'sales'
    try:
        rng = month_range(month)
    except ValueError as exc:
        rng = month_range(None)
        status = status_line(str(exc), ok=False)
        status_code = 400
    return render(
        request,
        'admin.html',
        {
            'tab': tab,
            'tabs': TABS,
            'month': rng.month,
            'rows': _tab_rows(db, tab, rng),
            'editable_fields': EDITABLE_FIELDS.get(tab, {}),
            'edit_id': edit_id,
            'status': status,
        },
        status_code=status_code,
    )


def _admin_url(table: str, month: str, done: str) -> str:
    return f'/admin?tab={table}&month={month}&done={done}'


@router.get('')
def admin_page(
    request: Request,
    tab: str = 'sales',
    month: str = '',
    edit: int | None = None,
    done: str = '',
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = status_line(DONE_MESSAGES[done], ok=True) if done in DONE_MESSAGES else None
    return _render_admin(request, db, tab=tab, month=month, edit_id=edit, status=status)


@router.post('/{table}/{record_id}/update')
async def admin_update(
    table: str,
    record_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    month = str(form.get('month', ''))
    raw_changes = {name: str(value) for name, value in form.items() if name in EDITABLE_FIELDS.get(table, {})}
    try:
        changes = update_record(db, table=table, record_id=record_id, raw_changes=raw_changes)
    except PackhouseError as exc:
        db.rollback()
        return _render_admin(
            request,
            db,
            tab=table,
            month=month,
            edit_id=record_id,
            status=status_line(exc.user_message, ok=False),
            status_code=400,
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='RECORD_UPDATED',
        ip=get_client_ip(request),
        metadata={'table': table, 'record_id': record_id, 'fields': sorted(changes)},
    )
    db.commit()
    return RedirectResponse(_admin_url(table, month, 'updated'), status_code=303)


@router.post('/{table}/{record_id}/delete')
async def admin_delete(
    table: str,
    record_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    sold_keys: SoldKeyCache = Depends(get_sold_key_cache),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    month = str(form.get('month', ''))
    try:
        record = delete_record(db, table=table, record_id=record_id)
    except PackhouseError as exc:
        db.rollback()
        return _render_admin(
            request,
            db,
            tab=table,
            month=month,
            status=status_line(exc.user_message, ok=False),
            status_code=400,
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='RECORD_DELETED',
        ip=get_client_ip(request),
        transaction_key=record.transaction_key,
        metadata={'table': table, 'record_id': record_id},
    )
    db.commit()
    if table == 'sales':
        sold_keys.discard(record.transaction_key)
    return RedirectResponse(_admin_url(table, month, 'deleted'), status_code=303)


@router.get('/sales-history')
def sales_history(
    request: Request,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    records = list_all_sales(db)
    if repair_missing_totals(db, records):
        db.commit()
    return render(
        request,
        'sales_history.html',
        {'records': records, 'line_items_of': line_items_of},
    )


@router.get('/sales/{record_id}/note.pdf')
def sales_note_pdf(
    record_id: int,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        record = get_record(db, table='sales', record_id=record_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.user_message) from exc
    return Response(
        content=render_sales_note(record),
        media_type='application/pdf',
        headers={'Content-Disposition': f'attachment; filename={note_filename(record)}'},
    )


def _workbook_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@router.get('/export.xlsx')
def export_month(
    request: Request,
    month: str = '',
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        rng = month_range(month)
    except ValueError as exc:
        return _render_admin(
            request, db, tab='sales', month='', status=status_line(str(exc), ok=False), status_code=400
        )
    content = workbook_bytes(fetch_month(db, rng))
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='EXPORT_MONTH',
        ip=get_client_ip(request),
        metadata={'month': rng.month},
    )
    db.commit()
    return _workbook_response(content, f'Respaldo_{rng.month}.xlsx')


@router.get('/export-all.xlsx')
def export_all(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    content = workbook_bytes(fetch_full_history(db, page_size=settings.export_page_size))
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='EXPORT_ALL',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()
    return _workbook_response(content, 'Respaldo_completo.xlsx')
