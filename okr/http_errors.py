"""Shared JSON error response builders.

Every error body has the shape ``{"error": <message>, "status": <code>,
"type": <slug>}`` plus ``request_id`` when one is bound to the request.
"""
from __future__ import annotations

from flask import g, jsonify
from werkzeug.wrappers.response import Response


def error_response(status: int, type_: str, message: str, **extra: object) -> Response:
    payload: dict[str, object] = {
        "error": message,
        "status": status,
        "type": type_,
    }
    rid = getattr(g, "request_id", None)
    if rid:
        payload["request_id"] = rid
    for k, v in extra.items():
        if v is not None:
            payload[k] = v
    resp = jsonify(payload)
    resp.status_code = status
    # Always echo request id header when available
    if rid and "X-Request-Id" not in resp.headers:
        resp.headers["X-Request-Id"] = rid
    return resp


def bad_request(message: str = "bad_request", **extra: object) -> Response:
    return error_response(400, "bad_request", message, **extra)


def unauthorized(message: str = "unauthorized", www_auth: str | None = "Bearer", **extra: object) -> Response:
    resp = error_response(401, "unauthorized", message, **extra)
    if www_auth:
        resp.headers["WWW-Authenticate"] = www_auth
    return resp


def forbidden(message: str = "forbidden", **extra: object) -> Response:
    return error_response(403, "forbidden", message, **extra)


def not_found(message: str = "not_found", **extra: object) -> Response:
    return error_response(404, "not_found", message, **extra)


def conflict(message: str = "conflict", **extra: object) -> Response:
    return error_response(409, "conflict", message, **extra)


def too_many_requests(message: str = "rate_limited", retry_after: int | None = None, **extra: object) -> Response:
    resp = error_response(429, "rate_limited", message, retry_after=retry_after, **extra)
    if retry_after is not None:
        resp.headers["Retry-After"] = str(int(retry_after))
    return resp


def bad_gateway(message: str = "upstream_unavailable", type_: str = "bad_gateway", **extra: object) -> Response:
    return error_response(502, type_, message, **extra)


def internal_server_error(message: str = "internal_error", **extra: object) -> Response:
    return error_response(500, "internal_error", message, **extra)


__all__ = [
    "error_response",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "conflict",
    "too_many_requests",
    "bad_gateway",
    "internal_server_error",
]
