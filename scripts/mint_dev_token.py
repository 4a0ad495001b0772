"""Mint an identity-provider style bearer token for local development.

Signs with the first secret in AUTH_JWT_SECRETS, the same secret the API
verifies with. Never use in production.
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv  # noqa: E402

from okr.config import Config  # noqa: E402
from okr.jwt_utils import encode, select_signing_secret  # noqa: E402


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mint a dev bearer token.")
    p.add_argument("user_id", help="Identity provider user id (token 'sub').")
    p.add_argument("--email", default=None, help="Email claim.")
    p.add_argument("--name", default=None, help="Display name claim.")
    p.add_argument("--ttl", type=int, default=int(os.getenv("DEV_TOKEN_TTL", "3600")), help="Lifetime in seconds.")
    return p.parse_args()


def main() -> None:
    load_dotenv()
    args = _parse_args()
    cfg = Config.from_env()
    claims: dict[str, object] = {"sub": args.user_id}
    if args.email:
        claims["email"] = args.email
    if args.name:
        claims["name"] = args.name
    if cfg.jwt_issuer:
        claims["iss"] = cfg.jwt_issuer
    if cfg.jwt_audience:
        claims["aud"] = cfg.jwt_audience
    print(encode(claims, secret=select_signing_secret(cfg.jwt_secrets), ttl=args.ttl))


if __name__ == "__main__":
    main()
