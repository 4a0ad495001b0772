from __future__ import annotations

from flask import Blueprint, jsonify, request

from .analytics_service import AnalyticsService
from .app_authz import current_profile, require_profile
from .errors import ValidationError
from .rls import user_session
from .tenant_scope import TenantScope

bp = Blueprint("analytics_api", __name__, url_prefix="/analytics")


@bp.get("/overview")
@require_profile()
def overview():
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": AnalyticsService(TenantScope(prof)).overview(db)})
    finally:
        db.close()


@bp.get("/department-performance")
@require_profile("corporativo", "gerente")
def department_performance():
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": AnalyticsService(TenantScope(prof)).department_performance(db)})
    finally:
        db.close()


@bp.get("/progress-trend")
@require_profile()
def progress_trend():
    raw = request.args.get("months")
    try:
        months = int(raw) if raw else 6
    except ValueError as e:
        raise ValidationError("months must be an integer between 1 and 12") from e
    if not 1 <= months <= 12:
        raise ValidationError("months must be an integer between 1 and 12")
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": AnalyticsService(TenantScope(prof)).progress_trend(db, months)})
    finally:
        db.close()
