"""Email provider webhook receiver.

Always answers 200 so the provider never retries or disables the hook; problems
are logged instead. Payloads are one Brevo event object or a list of them.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from .models import EmailEvent
from .rls import system_session

bp = Blueprint("webhooks_api", __name__, url_prefix="/webhooks")

log = logging.getLogger("okr.webhooks")


def _events(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return [e for e in payload if isinstance(e, dict)]
    return []


def _secret_ok() -> bool:
    secret = current_app.config.get("EMAIL_WEBHOOK_SECRET")
    if not secret:
        return True
    given = request.headers.get("X-Webhook-Secret", "")
    return hmac.compare_digest(given.encode(), str(secret).encode())


@bp.post("/email")
def email_webhook():
    stored = 0
    try:
        if not _secret_ok():
            log.warning("Email webhook with bad secret ignored")
            return jsonify({"data": {"received": True, "stored": 0}})
        events = _events(request.get_json(silent=True))
        db = system_session(isolated=True)
        try:
            for ev in events:
                email = ev.get("email")
                message_id = ev.get("message-id") or ev.get("messageId")
                db.add(
                    EmailEvent(
                        event=str(ev.get("event") or "unknown")[:60],
                        email=str(email)[:320] if email else None,
                        message_id=str(message_id)[:255] if message_id else None,
                        payload=ev,
                    )
                )
                stored += 1
            db.commit()
        finally:
            db.close()
        log.info("Email webhook stored %d event(s)", stored)
    except Exception:
        # Acknowledge regardless; the provider must never see a failure
        log.exception("Email webhook processing failed")
        stored = 0
    return jsonify({"data": {"received": True, "stored": stored}})
