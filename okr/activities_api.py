"""Activities API."""

from __future__ import annotations

from datetime import date
from typing import Any

from flask import Blueprint, jsonify, request

from .app_authz import current_profile, require_profile
from .models import Activity, Initiative, as_utc
from .okr_service import apply_activity_status
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import user_session
from .roles import ACTIVITY_STATUSES, PRIORITIES
from .tenant_scope import TenantScope
from .validation import (
    json_body,
    optional_str,
    parse_bool_arg,
    parse_date,
    parse_enum,
    parse_progress,
    require_str,
)

bp = Blueprint("activities_api", __name__, url_prefix="/activities")


def serialize(a: Activity) -> dict[str, Any]:
    return {
        "id": a.id,
        "company_id": a.company_id,
        "initiative_id": a.initiative_id,
        "owner_id": a.owner_id,
        "title": a.title,
        "description": a.description,
        "status": a.status,
        "priority": a.priority,
        "progress": a.progress,
        "due_date": a.due_date.isoformat() if a.due_date else None,
        "completed_at": as_utc(a.completed_at).isoformat() if a.completed_at else None,
        "created_at": as_utc(a.created_at).isoformat() if a.created_at else None,
        "updated_at": as_utc(a.updated_at).isoformat() if a.updated_at else None,
    }


def _edit_context(db, scope: TenantScope, activity: Activity) -> tuple[str | None, str | None]:  # type: ignore[no-untyped-def]
    row = (
        db.query(Initiative.objective_id, Initiative.owner_id)
        .filter(Initiative.id == activity.initiative_id, Initiative.company_id == scope.company_id)
        .first()
    )
    if row is None:
        return None, None
    department, _ = scope.objective_meta(db, row[0])
    return department, row[1]


@bp.get("")
@require_profile()
def list_activities():
    prof = current_profile()
    scope = TenantScope(prof)
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = scope.activities(db.query(Activity))
        args = request.args
        if args.get("initiative_id"):
            q = q.filter(Activity.initiative_id == args["initiative_id"])
        if args.get("owner_id"):
            q = q.filter(Activity.owner_id == args["owner_id"])
        if args.get("status"):
            q = q.filter(Activity.status == parse_enum(args["status"], ACTIVITY_STATUSES, "status"))
        if args.get("priority"):
            q = q.filter(Activity.priority == parse_enum(args["priority"], PRIORITIES, "priority"))
        if parse_bool_arg(args.get("overdue")):
            q = q.filter(
                Activity.due_date.isnot(None),
                Activity.due_date < date.today(),
                Activity.status.notin_(("completed", "cancelled")),
            )
        q = q.order_by(Activity.due_date.is_(None), Activity.due_date.asc(), Activity.created_at.desc(), Activity.id.asc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([serialize(a) for a in rows], page_req, total))
    finally:
        db.close()


@bp.post("")
@require_profile()
def create_activity():
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    title = require_str(data, "title")
    initiative_id = require_str(data, "initiative_id", max_len=36)
    due = parse_date(data.get("due_date"), "due_date")
    status = parse_enum(data.get("status", "todo"), ACTIVITY_STATUSES, "status")
    db = user_session(prof.id)
    try:
        ini = scope.get_initiative(db, initiative_id)
        owner_id = scope.assert_owner_in_company(db, data["owner_id"]) if data.get("owner_id") else prof.id
        act = Activity(
            company_id=ini.company_id,
            initiative_id=ini.id,
            owner_id=owner_id,
            title=title,
            description=optional_str(data, "description"),
            status="todo",
            priority=parse_enum(data.get("priority", "medium"), PRIORITIES, "priority"),
            progress=parse_progress(data.get("progress", 0)),
            due_date=due,
        )
        apply_activity_status(act, status)
        db.add(act)
        db.commit()
        db.refresh(act)
        resp = jsonify({"data": serialize(act)})
        resp.status_code = 201
        resp.headers["Location"] = f"/activities/{act.id}"
        return resp
    finally:
        db.close()


@bp.get("/<activity_id>")
@require_profile()
def get_activity(activity_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": serialize(TenantScope(prof).get_activity(db, activity_id))})
    finally:
        db.close()


@bp.route("/<activity_id>", methods=["PUT", "PATCH"])
@require_profile()
def update_activity(activity_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    data = json_body()
    db = user_session(prof.id)
    try:
        act = scope.get_activity(db, activity_id)
        department, initiative_owner = _edit_context(db, scope, act)
        scope.require_edit(department, act.owner_id, initiative_owner)
        if "title" in data:
            act.title = require_str(data, "title")
        if "description" in data:
            act.description = optional_str(data, "description")
        if "priority" in data:
            act.priority = parse_enum(data["priority"], PRIORITIES, "priority")
        if "progress" in data:
            act.progress = parse_progress(data["progress"])
        if "due_date" in data:
            act.due_date = parse_date(data["due_date"], "due_date")
        if "owner_id" in data:
            act.owner_id = scope.assert_owner_in_company(db, data["owner_id"])
        if "status" in data:
            apply_activity_status(act, parse_enum(data["status"], ACTIVITY_STATUSES, "status"))
        db.commit()
        db.refresh(act)
        return jsonify({"data": serialize(act)})
    finally:
        db.close()


@bp.delete("/<activity_id>")
@require_profile()
def remove_activity(activity_id: str):
    prof = current_profile()
    scope = TenantScope(prof)
    db = user_session(prof.id)
    try:
        act = scope.get_activity(db, activity_id)
        department, initiative_owner = _edit_context(db, scope, act)
        scope.require_edit(department, act.owner_id, initiative_owner)
        db.delete(act)
        db.commit()
        return jsonify({"message": "activity deleted", "data": {"id": activity_id}})
    finally:
        db.close()
