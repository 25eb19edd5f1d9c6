from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from nameledger.core.config import get_settings


FORWARDED_FOR_HEADER = "X-Forwarded-For"
REQUEST_ID_HEADER = "X-Request-Id"
SESSION_ID_HEADER = "X-Session-Id"


@dataclass(frozen=True)
class RequestContext:
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    request_id: str | None = None


EMPTY_CONTEXT = RequestContext()


def _truncate(value: str | None, limit: int) -> str | None:
    if not value:
        return None
    return value[:limit]


def client_ip(request: Request) -> str | None:
    # Proxies append hops; the first forwarded entry is the originating client.
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def session_id(request: Request) -> str | None:
    header_value = request.headers.get(SESSION_ID_HEADER)
    if header_value:
        return header_value
    return request.cookies.get(get_settings().session_cookie_name)


def request_id(request: Request) -> str | None:
    state_value = getattr(request.state, "request_id", None)
    if state_value:
        return str(state_value)
    return request.headers.get(REQUEST_ID_HEADER)


def get_request_context(request: Request | None) -> RequestContext:
    # Every field is optional; a missing request yields an empty context.
    if request is None:
        return EMPTY_CONTEXT
    return RequestContext(
        ip_address=_truncate(client_ip(request), 45),
        user_agent=_truncate(request.headers.get("user-agent"), 1000),
        session_id=_truncate(session_id(request), 100),
        request_id=_truncate(request_id(request), 100),
    )
