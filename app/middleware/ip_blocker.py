from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.client_ip import get_client_address
from app.schemas.blocker import BlockedResponse
from app.services.ip_blocker import RequestContext, RequestGate


def build_request_context(request: Request) -> RequestContext:
    headers = request.headers
    return RequestContext(
        address=get_client_address(request),
        method=request.method,
        path=request.url.path,
        user_agent=headers.get("user-agent", ""),
        referrer=headers.get("referer") or headers.get("referrer"),
        host=headers.get("host"),
    )


class IPBlockerMiddleware(BaseHTTPMiddleware):
    """Runs the request gate ahead of every route.

    Denied requests get the gate's JSON body and status; allowed requests
    pass through untouched.
    """

    def __init__(self, app: ASGIApp, gate: RequestGate):
        super().__init__(app)
        self.gate = gate

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # The gate may do blocking store I/O (redis), so keep it off the event loop.
        decision = await run_in_threadpool(self.gate.evaluate, build_request_context(request))
        if decision.allow:
            return await call_next(request)

        headers = {}
        if decision.retry_after_seconds is not None:
            headers["Retry-After"] = str(decision.retry_after_seconds)
        body = BlockedResponse(**decision.body()).model_dump(exclude_none=True)
        return JSONResponse(body, status_code=decision.http_status, headers=headers)
