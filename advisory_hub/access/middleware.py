from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from advisory_hub.access.gate import AccessGate
from advisory_hub.core import config

# JSON endpoints authenticate per route with bearer tokens.
UNGATED_PREFIXES = ('/api/', '/docs', '/redoc', '/openapi.json')


def extract_session_token(request: Request) -> str | None:
    cookie_token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if cookie_token:
        return cookie_token

    authorization = request.headers.get('authorization', '')
    scheme, _, credentials = authorization.partition(' ')
    if scheme.lower() == 'bearer' and credentials:
        return credentials.strip()
    return None


class AccessGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, gate: AccessGate | None = None):
        super().__init__(app)
        self.gate = gate or AccessGate()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == '/api' or path.startswith(UNGATED_PREFIXES):
            return await call_next(request)

        decision = self.gate.evaluate(path, extract_session_token(request))
        if decision.redirect_to is not None:
            return RedirectResponse(url=decision.redirect_to)
        return await call_next(request)
