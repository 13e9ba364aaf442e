"""
Admission gate: no business traffic until a home organization is connected.
"""

from typing import Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import PreconditionError
from shared.logging import get_logger, set_org_context
from service_tokenization.app.identity import IdentityStore
from .proxy import expose_identity_header

NO_HOME_ORG_MESSAGE = "No home organization found, please connect to an organization first."

# Health/static endpoints and the handshake itself
EXEMPT_PATHS = frozenset({
    "/",
    "/connect",
    "/health",
    "/metrics",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
})


class AdmissionGate(BaseHTTPMiddleware):
    """Rejects gated requests with 400 while the home org is unset."""

    def __init__(self, app, identity_store: IdentityStore, exempt_paths: Iterable[str] = EXEMPT_PATHS):
        super().__init__(app)
        self.identity_store = identity_store
        self.exempt_paths = frozenset(exempt_paths)
        self.logger = get_logger("tokenization.admission")

    def is_gated(self, request: Request) -> bool:
        return request.method != "OPTIONS" and request.url.path not in self.exempt_paths

    async def dispatch(self, request: Request, call_next):
        identity = self.identity_store.get()

        if not identity.has_home_org and self.is_gated(request):
            self.logger.info("Rejected request without home org", method=request.method, path=request.url.path)
            error = PreconditionError(NO_HOME_ORG_MESSAGE)
            return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())

        set_org_context(identity.home_org)
        response = await call_next(request)

        # /connect may have set the home org during this request
        identity = self.identity_store.get()
        if identity.has_home_org:
            expose_identity_header(response.headers, identity.home_org)
        return response
