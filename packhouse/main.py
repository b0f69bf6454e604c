from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from packhouse.auth import get_current_principal, home_path_for
from packhouse.logging_config import setup_logging
from packhouse.routers import admin, auth, grading, intake, sales
from packhouse.security.csrf import csrf_token_for, install_csrf_cookie_middleware
from packhouse.security.headers import install_security_headers
from packhouse.security.sessions import install_auth_session_middleware
from packhouse.services.formatting import folio, kilos, money, short_date, tonnes

setup_logging()

app = FastAPI(title='Packhouse Back Office')

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
app.state.templates.env.globals['csrf_token'] = csrf_token_for
app.state.templates.env.filters.update(
    money=money,
    folio=folio,
    short_date=short_date,
    kilos=kilos,
    tonnes=tonnes,
)

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(intake.router)
app.include_router(grading.router)
app.include_router(sales.router)
app.include_router(admin.router)


@app.get('/')
def root(request: Request):
    principal = get_current_principal(request)
    return RedirectResponse(home_path_for(principal.role), status_code=303)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
