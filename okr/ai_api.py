"""AI assistance endpoints (feature flag ``ai_suggestions``; disabled returns 404)."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from .ai_service import ENHANCE_KINDS, enhance_text, suggest_okrs
from .app_authz import current_profile, require_profile
from .errors import NotFoundError, ValidationError
from .feature_flags import feature_enabled
from .models import AIInsight, Company, Objective, as_utc
from .pagination import make_page_response, paginate_query, parse_page_params
from .rate_limit import allow
from .rls import user_session
from .tenant_scope import TenantScope
from .validation import json_body, optional_str, parse_enum, require_str

bp = Blueprint("ai_api", __name__, url_prefix="/ai")

SUGGEST_LIMIT_PER_MINUTE = 10
INSIGHT_CATEGORIES = ("risk", "blocked", "performance", "weekly_report")


def _require_feature() -> None:
    if not feature_enabled("ai_suggestions"):
        raise NotFoundError("not found")


def _serialize_insight(i: AIInsight) -> dict:
    return {
        "id": i.id,
        "profile_id": i.profile_id,
        "entity_type": i.entity_type,
        "entity_id": i.entity_id,
        "category": i.category,
        "title": i.title,
        "content": i.content,
        "confidence": i.confidence,
        "created_at": as_utc(i.created_at).isoformat() if i.created_at else None,
    }


@bp.post("/suggest-okr")
@require_profile()
def suggest_okr():
    _require_feature()
    prof = current_profile()
    allow(prof.company_id, prof.id, "ai_suggestions", SUGGEST_LIMIT_PER_MINUTE, testing=bool(current_app.config.get("TESTING")))
    data = json_body()
    count = data.get("count", 3)
    if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= 5:
        raise ValidationError("count must be an integer between 1 and 5")
    context = optional_str(data, "context", max_len=2000)
    department = optional_str(data, "department", max_len=120) or prof.department
    db = user_session(prof.id)
    try:
        company = db.get(Company, prof.company_id)
        titles = [
            row[0]
            for row in TenantScope(prof)
            .objectives(db.query(Objective))
            .with_entities(Objective.title)
            .order_by(Objective.created_at.desc())
            .limit(20)
        ]
    finally:
        db.close()
    suggestions = suggest_okrs(
        current_app.ai_client,  # type: ignore[attr-defined]
        company_name=company.name if company else "",
        department=department,
        context=context,
        count=count,
        existing_titles=titles,
    )
    return jsonify({"data": {"suggestions": suggestions}})


@bp.post("/enhance-text")
@require_profile()
def enhance():
    _require_feature()
    prof = current_profile()
    allow(prof.company_id, prof.id, "ai_suggestions", SUGGEST_LIMIT_PER_MINUTE, testing=bool(current_app.config.get("TESTING")))
    data = json_body()
    text = require_str(data, "text", max_len=2000)
    kind = parse_enum(data.get("kind", "objective_title"), ENHANCE_KINDS, "kind")
    improved = enhance_text(current_app.ai_client, text, kind)  # type: ignore[attr-defined]
    return jsonify({"data": {"original": text, "enhanced": improved, "kind": kind}})


@bp.get("/insights")
@require_profile()
def list_insights():
    prof = current_profile()
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = db.query(AIInsight).filter(AIInsight.company_id == prof.company_id)
        if prof.role != "corporativo":
            q = q.filter(AIInsight.profile_id == prof.id)
        category = request.args.get("category")
        if category:
            q = q.filter(AIInsight.category == parse_enum(category, INSIGHT_CATEGORIES, "category"))
        q = q.order_by(AIInsight.created_at.desc(), AIInsight.id.desc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([_serialize_insight(i) for i in rows], page_req, total))
    finally:
        db.close()
