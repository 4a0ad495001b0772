"""Objectives API.

Visibility and edit rights come from `TenantScope`; company, role and department
are never read from the request.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from .app_authz import AuthzError, current_profile, require_profile
from .models import Objective, as_utc
from .okr_service import delete_objective
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import user_session
from .roles import OBJECTIVE_STATUSES, PRIORITIES
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

bp = Blueprint("objectives_api", __name__, url_prefix="/objectives")


def serialize(o: Objective) -> dict[str, Any]:
    return {
        "id": o.id,
        "company_id": o.company_id,
        "owner_id": o.owner_id,
        "title": o.title,
        "description": o.description,
        "department": o.department,
        "status": o.status,
        "priority": o.priority,
        "progress": o.progress,
        "start_date": o.start_date.isoformat() if o.start_date else None,
        "end_date": o.end_date.isoformat() if o.end_date else None,
        "created_at": as_utc(o.created_at).isoformat() if o.created_at else None,
        "updated_at": as_utc(o.updated_at).isoformat() if o.updated_at else None,
    }


def _resolve_department(scope: TenantScope, requested: str | None) -> str | None:
    prof = scope.profile
    if prof.role == "gerente":
        if requested and requested != prof.department:
            raise AuthzError("gerente can only manage objectives of its own department")
        return prof.department
    return requested


@bp.get("")
@require_profile()
def list_objectives():
    prof = current_profile()
    scope = TenantScope(prof)
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = scope.objectives(db.query(Objective))
        status = request.args.get("status")
        if status:
            q = q.filter(Objective.status == parse_enum(status, OBJECTIVE_STATUSES, "status"))
        department = request.args.get("department")
        if department:
            q = q.filter(Objective.department == department)
        q = q.order_by(Objective.created_at.desc(), Objective.id.desc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([serialize(o) for o in rows], page_req, total))
    finally:
        db.close()


@bp.post("")
@require_profile("corporativo", "gerente")
def create_objective():
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    title = require_str(data, "title")
    start = parse_date(data.get("start_date"), "start_date")
    end = parse_date(data.get("end_date"), "end_date")
    check_date_range(start, end)
    db = user_session(prof.id)
    try:
        owner_id = scope.assert_owner_in_company(db, data["owner_id"]) if data.get("owner_id") else prof.id
        obj = Objective(
            company_id=prof.company_id,
            owner_id=owner_id,
            title=title,
            description=optional_str(data, "description"),
            department=_resolve_department(scope, optional_str(data, "department", max_len=120)),
            status=parse_enum(data.get("status", "draft"), OBJECTIVE_STATUSES, "status"),
            priority=parse_enum(data.get("priority", "medium"), PRIORITIES, "priority"),
            progress=parse_progress(data.get("progress", 0)),
            start_date=start,
            end_date=end,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
        resp = jsonify({"data": serialize(obj)})
        resp.status_code = 201
        resp.headers["Location"] = f"/objectives/{obj.id}"
        return resp
    finally:
        db.close()


@bp.get("/<objective_id>")
@require_profile()
def get_objective(objective_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": serialize(TenantScope(prof).get_objective(db, objective_id))})
    finally:
        db.close()


@bp.route("/<objective_id>", methods=["PUT", "PATCH"])
@require_profile()
def update_objective(objective_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    db = user_session(prof.id)
    try:
        obj = scope.get_objective(db, objective_id)
        scope.require_edit(obj.department, obj.owner_id)
        if "title" in data:
            obj.title = require_str(data, "title")
        if "description" in data:
            obj.description = optional_str(data, "description")
        if "department" in data:
            obj.department = _resolve_department(scope, optional_str(data, "department", max_len=120))
        if "status" in data:
            obj.status = parse_enum(data["status"], OBJECTIVE_STATUSES, "status")
        if "priority" in data:
            obj.priority = parse_enum(data["priority"], PRIORITIES, "priority")
        if "progress" in data:
            obj.progress = parse_progress(data["progress"])
        if "owner_id" in data:
            obj.owner_id = scope.assert_owner_in_company(db, data["owner_id"])
        start = parse_date(data["start_date"], "start_date") if "start_date" in data else obj.start_date
        end = parse_date(data["end_date"], "end_date") if "end_date" in data else obj.end_date
        check_date_range(start, end)
        obj.start_date, obj.end_date = start, end
        db.commit()
        db.refresh(obj)
        return jsonify({"data": serialize(obj)})
    finally:
        db.close()


@bp.delete("/<objective_id>")
@require_profile()
def remove_objective(objective_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    db = user_session(prof.id)
    try:
        obj = scope.get_objective(db, objective_id)
        scope.require_edit(obj.department, obj.owner_id)
        delete_objective(db, obj)
        db.commit()
        return jsonify({"message": "objective deleted", "data": {"id": objective_id}})
    finally:
        db.close()
