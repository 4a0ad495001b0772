"""Caller identity resolved from the identity provider's bearer token.

`current_identity()` verifies the ``Authorization: Bearer`` header once per
request and caches the result on ``g``. Failures raise `SessionError`, which the
central error handlers map to 401.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import current_app, g, request

from .jwt_utils import JWTError, decode

P = ParamSpec("P")
R = TypeVar("R")


class SessionError(Exception):
    """Signals a 401 unauthorized due to missing/invalid credentials."""

    def __init__(self, message: str = "authentication required"):
        super().__init__(message)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str | None = None
    name: str | None = None


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith("bearer "):
        return None
    parts = header.split(None, 1)
    token = parts[1].strip() if len(parts) == 2 else ""
    return token or None


def current_identity() -> Identity:
    cached = getattr(g, "identity", None)
    if cached is not None:
        return cached
    token = _bearer_token()
    if token is None:
        raise SessionError("authentication required")
    try:
        claims = decode(
            token,
            secrets_list=current_app.config.get("JWT_SECRETS") or [],
            issuer=current_app.config.get("JWT_ISSUER"),
            audience=current_app.config.get("JWT_AUDIENCE"),
            leeway=int(current_app.config.get("JWT_LEEWAY_SECONDS", 60)),
        )
    except JWTError as e:
        current_app.logger.info("Rejected bearer token: %s", e)
        raise SessionError("invalid or expired token") from e
    ident = Identity(user_id=claims["sub"], email=claims["email"], name=claims["name"])
    g.identity = ident
    g.user_id = ident.user_id
    return ident


def require_identity(fn: Callable[P, R]) -> Callable[P, R]:
    """Require a valid bearer token; the caller may not have a profile yet."""

    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        current_identity()
        return fn(*args, **kwargs)

    return wrapper


__all__ = ["Identity", "SessionError", "current_identity", "require_identity"]
