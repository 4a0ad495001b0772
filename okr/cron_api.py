"""Scheduled job endpoints.

Callers must present ``Authorization: Bearer <CRON_SECRET>``; an unset secret
rejects every call. A disabled feature flag short-circuits with
``{"skipped": true}`` so schedulers do not treat it as a failure.
"""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from .feature_flags import feature_enabled
from .identity import SessionError
from .invitation_service import process_reminders
from .okr_analyzer import OKRAnalyzer
from .report_service import ReportService
from .rls import system_session

bp = Blueprint("cron_api", __name__, url_prefix="/cron")


def _check_cron_secret() -> None:
    secret = current_app.config.get("CRON_SECRET")
    header = request.headers.get("Authorization", "")
    if not secret or not header.startswith("Bearer "):
        raise SessionError("cron authorization required")
    if not hmac.compare_digest(header[len("Bearer "):].strip().encode(), str(secret).encode()):
        raise SessionError("cron authorization required")


def cron_job(flag: str) -> Callable[[Callable[..., dict[str, Any]]], Callable[..., Any]]:
    def decorator(fn: Callable[..., dict[str, Any]]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any):  # type: ignore[no-untyped-def]
            _check_cron_secret()
            if not feature_enabled(flag):
                return jsonify({"data": {"skipped": True, "reason": f"feature '{flag}' disabled"}})
            t0 = time.perf_counter()
            result = fn(*args, **kwargs)
            duration_ms = int((time.perf_counter() - t0) * 1000)
            current_app.logger.info("cron %s finished in %dms", fn.__name__, duration_ms)
            return jsonify({"data": {**result, "skipped": False, "duration_ms": duration_ms}})

        return wrapper

    return decorator


@bp.route("/weekly-reports", methods=["GET", "POST"])
@cron_job("ai_weekly_reports")
def weekly_reports() -> dict[str, Any]:
    db = system_session(isolated=True)
    try:
        service = ReportService(current_app.ai_client, current_app.email_client)  # type: ignore[attr-defined]
        return service.run(db)
    finally:
        db.close()


@bp.route("/analyze-okrs", methods=["GET", "POST"])
@cron_job("ai_daily_okr_analysis")
def analyze_okrs() -> dict[str, Any]:
    db = system_session(isolated=True)
    try:
        analyzer = OKRAnalyzer(
            current_app.ai_client,  # type: ignore[attr-defined]
            use_ai=feature_enabled("ai_risk_detection"),
        )
        return analyzer.run(db)
    finally:
        db.close()


@bp.route("/invitation-reminders", methods=["GET", "POST"])
@cron_job("invitation_reminders")
def invitation_reminders() -> dict[str, Any]:
    db = system_session(isolated=True)
    try:
        return process_reminders(
            db,
            current_app.email_client,  # type: ignore[attr-defined]
            current_app.config["APP_BASE_URL"],
        )
    finally:
        db.close()
