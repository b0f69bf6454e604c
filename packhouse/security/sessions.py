from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select

from packhouse.auth import AuthSession, Principal, Role
from packhouse.config import settings
from packhouse.db import SessionLocal
from packhouse.models import Principal as PrincipalModel
from packhouse.models import WebSession

logger = logging.getLogger(__name__)

AUTH_EXEMPT_PATHS = {'/login', '/robots.txt'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def create_web_session(db, principal_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        WebSession(
            session_token=token,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(),
        )
    )
    db.flush()
    return token


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_auth_session(db, token: str | None) -> AuthSession:
    if not token:
        return AuthSession()

    row = db.execute(
        select(WebSession, PrincipalModel)
        .join(PrincipalModel, PrincipalModel.id == WebSession.principal_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return AuthSession()

    web_session, principal = row
    now = _now()
    if web_session.revoked_at is not None:
        return AuthSession.signed_out()
    if web_session.expires_at <= now:
        return AuthSession()

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    role = Role(principal.role.value if hasattr(principal.role, 'value') else principal.role)
    return AuthSession.authenticated(
        Principal(
            id=principal.id,
            username=principal.username,
            role=role,
            active=principal.active,
        )
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        with SessionLocal() as db:
            request.state.auth_session = load_auth_session(db, token)
            db.commit()

        if request.url.path not in AUTH_EXEMPT_PATHS and not request.state.auth_session.is_authenticated:
            logger.debug('Anonymous request to %s redirected to login', request.url.path)
            return RedirectResponse('/login', status_code=303)

        return await call_next(request)
