"""Key results API. Writes recompute the parent objective's progress."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from .app_authz import current_profile, require_profile
from .models import KeyResult, Objective, as_utc
from .okr_service import key_result_percentage, recompute_objective_progress
from .rls import user_session
from .tenant_scope import TenantScope
from .validation import json_body, optional_str, parse_number, require_str

bp = Blueprint("key_results_api", __name__)


def serialize(kr: KeyResult) -> dict[str, Any]:
    return {
        "id": kr.id,
        "objective_id": kr.objective_id,
        "company_id": kr.company_id,
        "title": kr.title,
        "description": kr.description,
        "target_value": kr.target_value,
        "current_value": kr.current_value,
        "unit": kr.unit,
        "progress_percentage": kr.progress_percentage,
        "created_by": kr.created_by,
        "created_at": as_utc(kr.created_at).isoformat() if kr.created_at else None,
        "updated_at": as_utc(kr.updated_at).isoformat() if kr.updated_at else None,
    }


@bp.get("/objectives/<objective_id>/key-results")
@require_profile()
def list_key_results(objective_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    db = user_session(prof.id)
    try:
        obj = scope.get_objective(db, objective_id)
        rows = (
            db.query(KeyResult)
            .filter(KeyResult.objective_id == obj.id, KeyResult.company_id == prof.company_id)
            .order_by(KeyResult.created_at.asc(), KeyResult.id.asc())
            .all()
        )
        return jsonify({"data": [serialize(kr) for kr in rows]})
    finally:
        db.close()


@bp.post("/objectives/<objective_id>/key-results")
@require_profile()
def create_key_result(objective_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    title = require_str(data, "title")
    target = parse_number(data.get("target_value"), "target_value", positive=True)
    current = parse_number(data.get("current_value", 0), "current_value")
    db = user_session(prof.id)
    try:
        obj = scope.get_objective(db, objective_id)
        scope.require_edit(obj.department, obj.owner_id)
        kr = KeyResult(
            company_id=obj.company_id,
            objective_id=obj.id,
            title=title,
            description=optional_str(data, "description"),
            target_value=target,
            current_value=current,
            unit=optional_str(data, "unit", max_len=40),
            progress_percentage=key_result_percentage(current, target),
            created_by=prof.id,
        )
        db.add(kr)
        recompute_objective_progress(db, obj)
        db.commit()
        db.refresh(kr)
        resp = jsonify({"data": serialize(kr)})
        resp.status_code = 201
        resp.headers["Location"] = f"/key-results/{kr.id}"
        return resp
    finally:
        db.close()


@bp.get("/key-results/<key_result_id>")
@require_profile()
def get_key_result(key_result_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": serialize(TenantScope(prof).get_key_result(db, key_result_id))})
    finally:
        db.close()


@bp.route("/key-results/<key_result_id>", methods=["PUT", "PATCH"])
@require_profile()
def update_key_result(key_result_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    db = user_session(prof.id)
    try:
        kr = scope.get_key_result(db, key_result_id)
        obj = scope.get_objective(db, kr.objective_id)
        scope.require_edit(obj.department, obj.owner_id, kr.created_by)
        if "title" in data:
            kr.title = require_str(data, "title")
        if "description" in data:
            kr.description = optional_str(data, "description")
        if "unit" in data:
            kr.unit = optional_str(data, "unit", max_len=40)
        if "target_value" in data:
            kr.target_value = parse_number(data["target_value"], "target_value", positive=True)
        if "current_value" in data:
            kr.current_value = parse_number(data["current_value"], "current_value")
        kr.progress_percentage = key_result_percentage(kr.current_value, kr.target_value)
        recompute_objective_progress(db, obj)
        db.commit()
        db.refresh(kr)
        return jsonify({"data": serialize(kr)})
    finally:
        db.close()


@bp.delete("/key-results/<key_result_id>")
@require_profile()
def remove_key_result(key_result_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    db = user_session(prof.id)
    try:
        kr = scope.get_key_result(db, key_result_id)
        obj: Objective = scope.get_objective(db, kr.objective_id)
        scope.require_edit(obj.department, obj.owner_id, kr.created_by)
        db.delete(kr)
        recompute_objective_progress(db, obj)
        db.commit()
        return jsonify({"message": "key result deleted", "data": {"id": key_result_id}})
    finally:
        db.close()
