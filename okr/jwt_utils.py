"""JWT utilities for identity-provider bearer tokens.

The identity provider signs HS256 tokens with a shared secret. Verification
accepts any configured secret so the provider can rotate keys. Enforced claims:
``sub`` (string), ``exp``, ``nbf``, ``iat`` with leeway, and ``iss``/``aud``
when configured. ``encode`` exists for dev tooling and tests only.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, TypedDict

ALG_HS256 = "HS256"
SKEW_SECS = 60
DEFAULT_TTL = 3600


class JWTError(Exception):
    pass


class IdentityClaims(TypedDict):
    sub: str
    email: str | None
    name: str | None
    iat: int | None
    exp: int


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)


def _sign(msg: bytes, secret: str) -> str:
    sig = hmac.new(secret.encode(), msg, hashlib.sha256).digest()
    return _b64url(sig)


def encode(payload: dict[str, Any], *, secret: str, ttl: int = DEFAULT_TTL) -> str:
    now = int(time.time())
    header = {"alg": ALG_HS256, "typ": "JWT"}
    pl = payload.copy()
    pl.setdefault("iat", now)
    pl.setdefault("exp", now + ttl)
    header_b = _b64url(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64url(json.dumps(pl, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    return f"{header_b}.{payload_b}.{_sign(msg, secret)}"


def decode(
    token: str,
    *,
    secrets_list: list[str],
    issuer: str | None = None,
    audience: str | None = None,
    leeway: int = SKEW_SECS,
) -> IdentityClaims:
    try:
        header_b, payload_b, sig = token.split(".")
    except ValueError as e:
        raise JWTError("malformed token") from e
    try:
        header = json.loads(_b64url_decode(header_b))
    except (ValueError, TypeError) as e:
        raise JWTError("bad header") from e
    if not isinstance(header, dict) or header.get("alg") != ALG_HS256:
        raise JWTError("alg")
    candidates = [s for s in secrets_list if s]
    if not candidates:
        raise JWTError("no verification secret configured")
    msg = f"{header_b}.{payload_b}".encode()
    if not any(hmac.compare_digest(_sign(msg, s), sig) for s in candidates):
        raise JWTError("bad signature")
    try:
        raw = json.loads(_b64url_decode(payload_b))
    except (ValueError, TypeError) as e:
        raise JWTError("bad payload") from e
    if not isinstance(raw, dict):
        raise JWTError("bad payload type")

    sub = raw.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise JWTError("missing claim sub")
    exp = raw.get("exp")
    if not isinstance(exp, int):
        raise JWTError("missing claim exp")
    iat = raw.get("iat")
    if iat is not None and not isinstance(iat, int):
        raise JWTError("bad claim type iat")
    nbf = raw.get("nbf")
    if nbf is not None and not isinstance(nbf, int):
        raise JWTError("bad claim type nbf")

    now = int(time.time())
    if now > exp + leeway:
        raise JWTError("token expired")
    if nbf is not None and now + leeway < nbf:
        raise JWTError("token not yet valid")
    if iat is not None and iat > now + leeway:
        raise JWTError("iat_future")

    if issuer and raw.get("iss") != issuer:
        raise JWTError("iss")
    if audience:
        aud = raw.get("aud")
        if isinstance(aud, str):
            ok = aud == audience
        elif isinstance(aud, list):
            ok = audience in aud
        else:
            ok = False
        if not ok:
            raise JWTError("aud")

    email = raw.get("email")
    name = raw.get("name")
    return IdentityClaims(
        sub=sub.strip(),
        email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
        name=name if isinstance(name, str) and name.strip() else None,
        iat=iat,
        exp=exp,
    )


def select_signing_secret(candidates: list[str] | None) -> str:
    """Return the first configured secret; raise if none."""
    for c in candidates or []:
        if c:
            return c
    raise JWTError("no signing secret available")
