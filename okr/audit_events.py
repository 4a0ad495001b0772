"""Lightweight audit event recorder for security-sensitive actions.

Events live in an in-memory ring buffer (process local) and are mirrored to the
``okr.audit`` logger so deployments can ship them with the rest of the logs.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

_AUDIT_BUFFER: list[dict[str, Any]] = []
_MAX_BUFFER = 500

log = logging.getLogger("okr.audit")


@dataclass
class AuditEvent:
    ts: int
    action: str
    actor_user_id: str | None = None
    company_id: str | None = None
    meta: dict[str, Any] | None = None


def record_audit_event(action: str, actor_user_id: str | None = None, company_id: str | None = None, **meta: Any) -> AuditEvent:
    ev = AuditEvent(int(time.time()), action, actor_user_id, company_id, meta or None)
    if len(_AUDIT_BUFFER) >= _MAX_BUFFER:
        del _AUDIT_BUFFER[0: max(50, _MAX_BUFFER // 10)]  # drop oldest slice
    _AUDIT_BUFFER.append(asdict(ev))
    log.info({"audit": action, "actor_user_id": actor_user_id, "company_id": company_id, **meta})
    return ev


def list_audit_events(action: str | None = None) -> list[dict[str, Any]]:
    if action is None:
        return list(_AUDIT_BUFFER)
    return [e for e in _AUDIT_BUFFER if e["action"] == action]


def clear_audit_events() -> None:
    _AUDIT_BUFFER.clear()
