"""Authorization helpers.

`require_profile(*roles)` authenticates the caller, loads its profile exactly once
per request and publishes a `ProfileContext` on ``g.profile``. Handlers never read
company, role or department from the client.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar, cast

from flask import g

from .identity import current_identity
from .models import Profile
from .rls import user_session
from .roles import RoleType

P = ParamSpec("P")
R = TypeVar("R")


class AuthzError(Exception):
    """Signals an authorization (403) failure mapped by the central handlers."""

    required: RoleType | None

    def __init__(self, message: str = "forbidden", required: RoleType | None = None):
        super().__init__(message)
        self.required = required


@dataclass(frozen=True)
class ProfileContext:
    id: str
    company_id: str
    role: RoleType
    department: str | None
    email: str
    full_name: str | None

    @classmethod
    def from_model(cls, p: Profile) -> ProfileContext:
        return cls(
            id=p.id,
            company_id=p.company_id,
            role=cast(RoleType, p.role_type),
            department=p.department,
            email=p.email,
            full_name=p.full_name,
        )


def load_profile(user_id: str) -> Profile | None:
    db = user_session(user_id)
    try:
        return db.get(Profile, user_id)
    finally:
        db.close()


def current_profile() -> ProfileContext:
    cached = getattr(g, "profile", None)
    if cached is not None:
        return cached
    ident = current_identity()
    prof = load_profile(ident.user_id)
    if prof is None:
        raise AuthzError("profile required; complete onboarding first")
    ctx = ProfileContext.from_model(prof)
    g.profile = ctx
    g.company_id = ctx.company_id
    return ctx


def require_profile(*roles: RoleType) -> Callable[[Callable[P, R]], Callable[P, R]]:
    allowed = tuple(roles)

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            ctx = current_profile()
            if allowed and ctx.role not in allowed:
                raise AuthzError("forbidden", required=allowed[0])
            return fn(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "AuthzError",
    "ProfileContext",
    "current_profile",
    "load_profile",
    "require_profile",
]
