from __future__ import annotations

from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from packhouse.auth import Principal, Role, require_role
from packhouse.db import get_db
from packhouse.dependencies import get_client_ip, render, status_line
from packhouse.errors import PackhouseError
from packhouse.security.csrf import verify_csrf
from packhouse.services.audit_service import log_audit
from packhouse.services.intake_service import (
    NEW_CLIENT_CHOICE,
    PRODUCT_TYPES,
    IntakeLineInput,
    create_intake,
    list_known_clients,
)

router = APIRouter(prefix='/intake', tags=['intake'])
intake_access = require_role(Role.RECEPTION)


def _parse_lines(form) -> list[IntakeLineInput]:
    types = form.getlist('line_product_type')
    quantities = form.getlist('line_quantity')
    return [
        IntakeLineInput(product_type=str(product_type), quantity=str(quantity))
        for product_type, quantity in zip(types, quantities)
    ]


def _running_total(lines: list[IntakeLineInput]) -> Decimal:
    total = Decimal('0')
    for line in lines:
        try:
            total += Decimal(str(line.quantity).strip() or '0')
        except InvalidOperation:
            continue
    return total


def _render_form(
    request: Request,
    db: Session,
    *,
    values: dict | None = None,
    lines: list[IntakeLineInput] | None = None,
    status: dict | None = None,
    status_code: int = 200,
):
    lines = lines or [IntakeLineInput(product_type='', quantity='')]
    return render(
        request,
        'intake.html',
        {
            'clients': list_known_clients(db),
            'product_types': PRODUCT_TYPES,
            'new_client_choice': NEW_CLIENT_CHOICE,
            'values': values or {},
            'lines': lines,
            'total_kg': _running_total(lines),
            'status': status,
        },
        status_code=status_code,
    )


@router.get('')
def intake_page(
    request: Request,
    saved: int | None = None,
    _: Principal = Depends(intake_access),
    db: Session = Depends(get_db),
):
    status = status_line('Registros guardados correctamente.', ok=True) if saved else None
    return _render_form(request, db, status=status)


@router.post('')
async def intake_submit(
    request: Request,
    principal: Principal = Depends(intake_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    values = {
        'client': str(form.get('client', '')).strip(),
        'new_client_name': str(form.get('new_client_name', '')),
        'phone': str(form.get('phone', '')).strip(),
    }
    lines = _parse_lines(form)

    action = str(form.get('action', 'save'))
    if action == 'add_line':
        return _render_form(request, db, values=values, lines=[*lines, IntakeLineInput('', '')])
    if action.startswith('remove_line:'):
        raw_index = action.split(':', 1)[1]
        index = int(raw_index) if raw_index.isdigit() else -1
        remaining = [line for i, line in enumerate(lines) if i != index]
        return _render_form(request, db, values=values, lines=remaining)

    try:
        result = create_intake(
            db,
            client_choice=values['client'],
            new_client_name=values['new_client_name'],
            phone=values['phone'],
            lines=lines,
        )
    except PackhouseError as exc:
        db.rollback()
        return _render_form(
            request,
            db,
            values=values,
            lines=lines,
            status=status_line(exc.user_message, ok=False),
            status_code=400,
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='INTAKE_CREATED',
        ip=get_client_ip(request),
        transaction_key=result.transaction_key,
        metadata={
            'client_name': result.client_name,
            'rows': result.row_count,
            'total_kg': str(result.total_quantity),
        },
    )
    db.commit()
    return RedirectResponse(f'/intake?saved={result.row_count}', status_code=303)
