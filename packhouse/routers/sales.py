from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from packhouse.auth import Principal, Role, require_role
from packhouse.db import get_db
from packhouse.dependencies import get_client_ip, render, status_line
from packhouse.errors import PackhouseError
from packhouse.security.csrf import verify_csrf
from packhouse.services.audit_service import log_audit
from packhouse.services.sales_service import (
    SaleDraft,
    SaleLineInput,
    SoldKeyCache,
    clean_sale_lines,
    compute_total,
    create_sale,
    get_sold_key_cache,
    list_sellable_groups,
    prefill_lines,
)

router = APIRouter(prefix='/sales', tags=['sales'])
sales_access = require_role(Role.SECRETARY)

EMPTY_LINE = SaleLineInput(quantity='', label='', unit_price='')


def _parse_lines(form) -> list[SaleLineInput]:
    return [
        SaleLineInput(quantity=str(quantity), label=str(label), unit_price=str(unit_price))
        for quantity, label, unit_price in zip(
            form.getlist('line_quantity'),
            form.getlist('line_label'),
            form.getlist('line_unit_price'),
        )
    ]


def _parse_date(raw: str) -> date | None:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        return None


def _today() -> str:
    return datetime.now(tz=timezone.utc).date().isoformat()


def _group_date(group) -> str:
    timestamp = group.timestamp
    if timestamp is None:
        return ''
    return (timestamp.date() if isinstance(timestamp, datetime) else timestamp).isoformat()


def _render_form(
    request: Request,
    db: Session,
    *,
    sold_keys: SoldKeyCache,
    values: dict | None = None,
    lines: list[SaleLineInput] | None = None,
    status: dict | None = None,
    status_code: int = 200,
):
    groups = list_sellable_groups(db, sold_keys=sold_keys)
    values = dict(values or {})
    selected = groups.get(values.get('transaction_key', ''))

    if lines is None and selected is not None:
        values.setdefault('client_name', selected.client_name)
        values.setdefault('sold_on', _group_date(selected))
        lines = [
            SaleLineInput(quantity=str(item['quantity']), label=item['label'], unit_price='')
            for item in prefill_lines(selected)
        ]
    values['sold_on'] = values.get('sold_on') or _today()
    lines = lines or [EMPTY_LINE]

    return render(
        request,
        'sales.html',
        {
            'groups': list(groups.values()),
            'selected': selected,
            'values': values,
            'lines': lines,
            'total': compute_total(clean_sale_lines(lines)),
            'status': status,
        },
        status_code=status_code,
    )


@router.get('')
def sales_page(
    request: Request,
    key: str = '',
    note: int | None = None,
    _: Principal = Depends(sales_access),
    db: Session = Depends(get_db),
    sold_keys: SoldKeyCache = Depends(get_sold_key_cache),
):
    status = status_line(f'Venta guardada correctamente con nota #{note}', ok=True) if note else None
    return _render_form(request, db, sold_keys=sold_keys, values={'transaction_key': key}, status=status)


@router.post('')
async def sales_submit(
    request: Request,
    principal: Principal = Depends(sales_access),
    db: Session = Depends(get_db),
    sold_keys: SoldKeyCache = Depends(get_sold_key_cache),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    values = {
        name: str(form.get(name, '')).strip()
        for name in ('transaction_key', 'client_name', 'sold_on', 'address', 'city', 'plates')
    }
    lines = _parse_lines(form)

    action = str(form.get('action', 'save'))
    if action == 'select':
        return _render_form(request, db, sold_keys=sold_keys, values={'transaction_key': values['transaction_key']})
    if action == 'add_line':
        return _render_form(request, db, sold_keys=sold_keys, values=values, lines=[*lines, EMPTY_LINE])
    if action.startswith('remove_line:'):
        raw_index = action.split(':', 1)[1]
        index = int(raw_index) if raw_index.isdigit() else -1
        remaining = [line for i, line in enumerate(lines) if i != index]
        return _render_form(request, db, sold_keys=sold_keys, values=values, lines=remaining)

    draft = SaleDraft(
        transaction_key=values['transaction_key'] or None,
        client_name=values['client_name'],
        sold_on=_parse_date(values['sold_on']),
        address=values['address'],
        city=values['city'],
        plates=values['plates'],
        lines=lines,
    )
    try:
        record = create_sale(db, draft=draft, sold_keys=sold_keys)
    except PackhouseError as exc:
        db.rollback()
        return _render_form(
            request,
            db,
            sold_keys=sold_keys,
            values=values,
            lines=lines,
            status=status_line(exc.user_message, ok=False),
            status_code=400,
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='SALE_CREATED',
        ip=get_client_ip(request),
        transaction_key=record.transaction_key,
        metadata={
            'note_number': record.note_number,
            'client_name': record.client_name,
            'total': str(record.total),
        },
    )
    db.commit()
    if record.transaction_key:
        sold_keys.add(record.transaction_key)
    return RedirectResponse(f'/sales?note={record.note_number}', status_code=303)
