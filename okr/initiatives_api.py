"""Initiatives API."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from .app_authz import current_profile, require_profile
from .models import Initiative, as_utc
from .okr_service import delete_initiative
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import user_session
from .roles import INITIATIVE_STATUSES, PRIORITIES
from .tenant_scope import TenantScope
from .validation import (
    check_date_range,
    json_body,
    optional_str,
    parse_date,
    parse_enum,
    parse_progress,
    require_str,
)

bp = Blueprint("initiatives_api", __name__, url_prefix="/initiatives")


def serialize(i: Initiative) -> dict[str, Any]:
    return {
        "id": i.id,
        "company_id": i.company_id,
        "objective_id": i.objective_id,
        "owner_id": i.owner_id,
        "title": i.title,
        "description": i.description,
        "status": i.status,
        "priority": i.priority,
        "progress": i.progress,
        "start_date": i.start_date.isoformat() if i.start_date else None,
        "end_date": i.end_date.isoformat() if i.end_date else None,
        "created_at": as_utc(i.created_at).isoformat() if i.created_at else None,
        "updated_at": as_utc(i.updated_at).isoformat() if i.updated_at else None,
    }


@bp.get("")
@require_profile()
def list_initiatives():
    prof = current_profile()
    scope = TenantScope(prof)
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = scope.initiatives(db.query(Initiative))
        objective_id = request.args.get("objective_id")
        if objective_id:
            q = q.filter(Initiative.objective_id == objective_id)
        status = request.args.get("status")
        if status:
            q = q.filter(Initiative.status == parse_enum(status, INITIATIVE_STATUSES, "status"))
        q = q.order_by(Initiative.created_at.desc(), Initiative.id.desc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([serialize(i) for i in rows], page_req, total))
    finally:
        db.close()


@bp.post("")
@require_profile()
def create_initiative():
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    title = require_str(data, "title")
    objective_id = require_str(data, "objective_id", max_len=36)
    start = parse_date(data.get("start_date"), "start_date")
    end = parse_date(data.get("end_date"), "end_date")
    check_date_range(start, end)
    db = user_session(prof.id)
    try:
        obj = scope.get_objective(db, objective_id)
        scope.require_edit(obj.department, obj.owner_id)
        owner_id = scope.assert_owner_in_company(db, data["owner_id"]) if data.get("owner_id") else prof.id
        ini = Initiative(
            company_id=obj.company_id,
            objective_id=obj.id,
            owner_id=owner_id,
            title=title,
            description=optional_str(data, "description"),
            status=parse_enum(data.get("status", "planning"), INITIATIVE_STATUSES, "status"),
            priority=parse_enum(data.get("priority", "medium"), PRIORITIES, "priority"),
            progress=parse_progress(data.get("progress", 0)),
            start_date=start,
            end_date=end,
        )
        db.add(ini)
        db.commit()
        db.refresh(ini)
        resp = jsonify({"data": serialize(ini)})
        resp.status_code = 201
        resp.headers["Location"] = f"/initiatives/{ini.id}"
        return resp
    finally:
        db.close()


@bp.get("/<initiative_id>")
@require_profile()
def get_initiative(initiative_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": serialize(TenantScope(prof).get_initiative(db, initiative_id))})
    finally:
        db.close()


@bp.route("/<initiative_id>", methods=["PUT", "PATCH"])
@require_profile()
def update_initiative(initiative_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    db = user_session(prof.id)
    try:
        ini = scope.get_initiative(db, initiative_id)
        department, objective_owner = scope.objective_meta(db, ini.objective_id)
        scope.require_edit(department, ini.owner_id, objective_owner)
        if "title" in data:
            ini.title = require_str(data, "title")
        if "description" in data:
            ini.description = optional_str(data, "description")
        if "status" in data:
            ini.status = parse_enum(data["status"], INITIATIVE_STATUSES, "status")
        if "priority" in data:
            ini.priority = parse_enum(data["priority"], PRIORITIES, "priority")
        if "progress" in data:
            ini.progress = parse_progress(data["progress"])
        if "owner_id" in data:
            ini.owner_id = scope.assert_owner_in_company(db, data["owner_id"])
        start = parse_date(data["start_date"], "start_date") if "start_date" in data else ini.start_date
        end = parse_date(data["end_date"], "end_date") if "end_date" in data else ini.end_date
        check_date_range(start, end)
        ini.start_date, ini.end_date = start, end
        db.commit()
        db.refresh(ini)
        return jsonify({"data": serialize(ini)})
    finally:
        db.close()


@bp.delete("/<initiative_id>")
@require_profile()
def remove_initiative(initiative_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    db = user_session(prof.id)
    try:
        ini = scope.get_initiative(db, initiative_id)
        department, objective_owner = scope.objective_meta(db, ini.objective_id)
        scope.require_edit(department, ini.owner_id, objective_owner)
        delete_initiative(db, ini)
        db.commit()
        return jsonify({"message": "initiative deleted", "data": {"id": initiative_id}})
    finally:
        db.close()
