from fastapi import Request
from fastapi.templating import Jinja2Templates

from packhouse.auth import ROLE_NAV_LINKS, get_auth_session


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def status_line(message: str, *, ok: bool) -> dict:
    return {'ok': ok, 'message': message}


def render(request: Request, template: str, context: dict, status_code: int = 200):
    auth_session = get_auth_session(request)
    principal = auth_session.principal if auth_session.is_authenticated else None
    base = {
        'request': request,
        'principal': principal,
        'nav_links': ROLE_NAV_LINKS.get(principal.role, []) if principal else [],
        'status': None,
    }
    base.update(context)
    return get_templates(request).TemplateResponse(request, template, base, status_code=status_code)
