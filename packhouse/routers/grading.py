from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from packhouse.auth import Principal, Role, require_role
from packhouse.config import settings
from packhouse.db import get_db
from packhouse.dependencies import get_client_ip, render, status_line
from packhouse.errors import PackhouseError, RecordNotFound
from packhouse.models import SizeCategory
from packhouse.security.csrf import verify_csrf
from packhouse.services.audit_service import log_audit
from packhouse.services.grading_service import GradingSelection, lines_from_form, submit_grading
from packhouse.services.intake_service import get_intake_group, list_graded_keys, list_recent_intake_groups

router = APIRouter(prefix='/grading', tags=['grading'])
grading_access = require_role(Role.GRADING)


def _parse_date(raw: str) -> date | None:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        return None


def _group_date(group) -> str:
    if group is None or group.timestamp is None:
        return ''
    timestamp = group.timestamp
    return (timestamp.date() if hasattr(timestamp, 'date') else timestamp).isoformat()


def _render_page(
    request: Request,
    db: Session,
    *,
    key: str = '',
    form_values: dict | None = None,
    status: dict | None = None,
    status_code: int = 200,
):
    groups = list_recent_intake_groups(db, row_limit=settings.intake_group_row_limit)
    selected = None
    if key:
        try:
            selected = get_intake_group(db, transaction_key=key)
        except RecordNotFound as exc:
            status = status or status_line(exc.user_message, ok=False)
    values = form_values or {}
    return render(
        request,
        'grading.html',
        {
            'groups': list(groups.values()),
            'graded_keys': list_graded_keys(db),
            'selected': selected,
            'categories': list(SizeCategory),
            'values': values,
            'graded_on': values.get('graded_on') or _group_date(selected),
            'status': status,
        },
        status_code=status_code,
    )


@router.get('')
def grading_page(
    request: Request,
    key: str = '',
    saved: int | None = None,
    _: Principal = Depends(grading_access),
    db: Session = Depends(get_db),
):
    status = status_line('Clasificación guardada.', ok=True) if saved else None
    return _render_page(request, db, key=key, status=status)


@router.post('')
async def grading_submit(
    request: Request,
    principal: Principal = Depends(grading_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    key = str(form.get('transaction_key', '')).strip()
    form_values = {name: str(value) for name, value in form.items()}

    try:
        selection = GradingSelection.from_intake_group(get_intake_group(db, transaction_key=key)) if key else None
        lines = lines_from_form(form_values)
        rows = submit_grading(
            db,
            selection=selection,
            graded_on=_parse_date(form_values.get('graded_on', '')),
            lines=lines,
        )
    except PackhouseError as exc:
        db.rollback()
        return _render_page(
            request,
            db,
            key=key,
            form_values=form_values,
            status=status_line(exc.user_message, ok=False),
            status_code=400,
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='GRADING_CREATED',
        ip=get_client_ip(request),
        transaction_key=key,
        metadata={
            'categories': [row.size_category for row in rows],
            'total_kg': str(sum(row.quantity for row in rows)),
        },
    )
    db.commit()
    return RedirectResponse(f'/grading?saved={len(rows)}', status_code=303)
