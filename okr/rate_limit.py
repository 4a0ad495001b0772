from __future__ import annotations

import time

from flask import request

# In-memory simple rate limiter (per-process). For multi-instance deployments: move to Redis.
# Key: (company_id, user_id, bucket, minute_epoch)
_store: dict[tuple[str | None, str | None, str, int], int] = {}


class RateLimitExceeded(Exception):
    def __init__(self, bucket: str, limit: int, retry_after: int = 60):
        super().__init__(bucket)
        self.bucket = bucket
        self.limit = limit
        self.retry_after = retry_after


def allow(company_id: str | None, user_id: str | None, bucket: str, limit_per_minute: int, *, testing: bool = False) -> None:
    # Tests skip limits unless they force enforcement with a header
    force_header = request.headers.get("X-Force-Rate-Limit") if request else None
    if testing and not force_header:
        return
    if force_header is not None:
        try:
            limit_per_minute = min(limit_per_minute, int(request.headers.get("X-Force-Rate-Limit-Limit", "3")))
        except ValueError:
            limit_per_minute = min(limit_per_minute, 3)
    now = int(time.time())
    minute = now // 60
    for stale in [k for k in _store if k[3] < minute]:
        del _store[stale]
    key = (company_id, user_id, bucket, minute)
    cnt = _store.get(key, 0) + 1
    _store[key] = cnt
    if cnt > limit_per_minute:
        raise RateLimitExceeded(bucket, limit_per_minute, retry_after=60 - (now % 60))


def remaining(company_id: str | None, user_id: str | None, bucket: str, limit_per_minute: int) -> int:
    minute = int(time.time()) // 60
    return max(0, limit_per_minute - _store.get((company_id, user_id, bucket, minute), 0))


def reset() -> None:
    _store.clear()
