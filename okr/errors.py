"""Domain error system + handler registration.

Every failure leaves the app as ``{"error": <message>, "status", "type",
"request_id"}``. Unknown exceptions are logged server-side with an incident id
and surface only as a generic 500.
"""
from __future__ import annotations

import traceback
import uuid
from collections.abc import Callable
from typing import Any

from flask import g, request
from werkzeug.wrappers.response import Response

from .app_authz import AuthzError
from .audit_events import record_audit_event
from .http_errors import (
    bad_gateway,
    bad_request,
    conflict,
    error_response,
    forbidden,
    internal_server_error,
    not_found,
    too_many_requests,
    unauthorized,
)
from .identity import SessionError
from .pagination import PaginationError
from .rate_limit import RateLimitExceeded


class DomainError(Exception):
    def __init__(self, status: int, code: str, detail: str | None = None, **extra: Any):
        self.status = status
        self.code = code
        self.detail = detail or code
        self.extra = extra
        super().__init__(self.detail)


class ValidationError(DomainError):
    def __init__(self, detail: str = "validation_error", **extra: Any):
        super().__init__(400, "validation_error", detail, **extra)


class NotFoundError(DomainError):
    def __init__(self, detail: str = "not found", **extra: Any):
        super().__init__(404, "not_found", detail, **extra)


class ConflictError(DomainError):
    def __init__(self, detail: str = "conflict", **extra: Any):
        super().__init__(409, "conflict", detail, **extra)


class AIServiceError(DomainError):
    def __init__(self, detail: str = "AI service unavailable", **extra: Any):
        super().__init__(502, "ai_unavailable", detail, **extra)


class EmailDeliveryError(Exception):
    """Raised by the email client when the provider rejects or is unreachable."""


_STATUS_HELPERS: dict[int, Callable[..., Response]] = {
    400: bad_request,
    401: unauthorized,
    403: forbidden,
    404: not_found,
    409: conflict,
    429: too_many_requests,
}


def register_error_handlers(app: Any) -> None:
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(SessionError)
    def _h_session(err: SessionError) -> Response:
        return unauthorized(str(err) or "authentication required")

    @app.errorhandler(AuthzError)
    def _h_authz(err: AuthzError) -> Response:
        return forbidden(str(err) or "forbidden", required_role=err.required)

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        if err.status == 502:
            return bad_gateway(err.detail, type_=err.code, **err.extra)
        helper = _STATUS_HELPERS.get(err.status)
        if helper:
            return helper(err.detail, **err.extra)
        return error_response(err.status, err.code, err.detail, **err.extra)

    @app.errorhandler(PaginationError)
    def _h_pagination(err: PaginationError) -> Response:
        return bad_request(str(err) or "bad_request")

    @app.errorhandler(RateLimitExceeded)
    def _h_rate_limit(ex: RateLimitExceeded) -> Response:
        return too_many_requests("rate_limited", retry_after=ex.retry_after, limit=ex.limit, bucket=ex.bucket)

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        if status >= 500:
            return internal_server_error()
        helper = _STATUS_HELPERS.get(status)
        if helper:
            return helper(ex.description or ex.name)
        return error_response(status, ex.name.lower().replace(" ", "_"), ex.description or ex.name)

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        app.logger.error(
            "Unhandled exception incident_id=%s path=%s\n%s",
            incident_id,
            request.path,
            traceback.format_exc(),
        )
        record_audit_event(
            "incident",
            actor_user_id=getattr(g, "user_id", None),
            company_id=getattr(g, "company_id", None),
            incident_id=incident_id,
            path=request.path,
        )
        return internal_server_error(incident_id=incident_id)


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "AIServiceError",
    "EmailDeliveryError",
    "register_error_handlers",
]
