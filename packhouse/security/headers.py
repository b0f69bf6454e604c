from fastapi import FastAPI, Request
from starlette.responses import Response

BASELINE_HEADERS = {
    'X-Robots-Tag': 'noindex, nofollow, noarchive',
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'same-origin',
}
# Sales notes and backups carry client data.
NO_STORE_SUFFIXES = ('.pdf', '.xlsx')


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.update(BASELINE_HEADERS)
        if request.url.path.endswith(NO_STORE_SUFFIXES):
            response.headers['Cache-Control'] = 'no-store'
        return response
