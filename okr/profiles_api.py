"""Profiles + current company endpoints."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from .app_authz import current_profile, require_profile
from .audit_events import record_audit_event
from .errors import NotFoundError, ValidationError
from .models import Company, Profile, ProfilePermission, as_utc
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import user_session
from .roles import ROLE_TYPES, to_role
from .validation import json_body, optional_str, require_str

bp = Blueprint("profiles_api", __name__)


def serialize_profile(p: Profile) -> dict[str, Any]:
    return {
        "id": p.id,
        "company_id": p.company_id,
        "email": p.email,
        "full_name": p.full_name,
        "role_type": p.role_type,
        "department": p.department,
        "created_at": as_utc(p.created_at).isoformat() if p.created_at else None,
    }


def serialize_company(c: Company) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "logo_url": c.logo_url,
        "settings": c.settings or {},
        "created_at": as_utc(c.created_at).isoformat() if c.created_at else None,
    }


def permissions_of(db, profile_id: str) -> list[str]:  # type: ignore[no-untyped-def]
    rows = db.query(ProfilePermission.permission).filter(ProfilePermission.profile_id == profile_id).all()
    return sorted(r[0] for r in rows)


@bp.get("/profiles/me")
@require_profile()
def get_me():
    prof = current_profile()
    db = user_session(prof.id)
    try:
        p = db.get(Profile, prof.id)
        if p is None:
            raise NotFoundError("profile not found")
        return jsonify({"data": {**serialize_profile(p), "permissions": permissions_of(db, p.id)}})
    finally:
        db.close()


@bp.put("/profiles/me")
@require_profile()
def update_me():
    prof = current_profile()
    data = json_body()
    full_name = require_str(data, "full_name", max_len=200)
    db = user_session(prof.id)
    try:
        p = db.get(Profile, prof.id)
        if p is None:
            raise NotFoundError("profile not found")
        p.full_name = full_name
        db.commit()
        db.refresh(p)
        return jsonify({"data": serialize_profile(p)})
    finally:
        db.close()


@bp.get("/profiles")
@require_profile("corporativo", "gerente")
def list_profiles():
    prof = current_profile()
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = db.query(Profile).filter(Profile.company_id == prof.company_id)
        if prof.role == "gerente":
            q = q.filter(Profile.department == prof.department) if prof.department else q.filter(Profile.id == prof.id)
        role = request.args.get("role_type")
        if role:
            q = q.filter(Profile.role_type == role)
        q = q.order_by(Profile.full_name.asc(), Profile.id.asc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([serialize_profile(p) for p in rows], page_req, total))
    finally:
        db.close()


@bp.patch("/profiles/<profile_id>")
@require_profile("corporativo")
def update_profile(profile_id: str):
    prof = current_profile()
    data = json_body()
    if "role_type" not in data and "department" not in data:
        raise ValidationError("role_type or department is required")
    new_role = None
    if "role_type" in data:
        new_role = to_role(data["role_type"])
        if new_role is None:
            raise ValidationError(f"role_type must be one of: {', '.join(ROLE_TYPES)}")
        if profile_id == prof.id and new_role != "corporativo":
            raise ValidationError("you cannot change your own role")
    db = user_session(prof.id)
    try:
        p = db.query(Profile).filter(Profile.id == profile_id, Profile.company_id == prof.company_id).first()
        if p is None:
            raise NotFoundError("profile not found")
        before = (p.role_type, p.department)
        if new_role is not None:
            p.role_type = new_role
        if "department" in data:
            p.department = optional_str(data, "department", max_len=120)
        db.commit()
        db.refresh(p)
        record_audit_event(
            "profile_role_changed",
            actor_user_id=prof.id,
            company_id=prof.company_id,
            profile_id=p.id,
            before=list(before),
            after=[p.role_type, p.department],
        )
        return jsonify({"data": serialize_profile(p)})
    finally:
        db.close()


@bp.get("/companies/current")
@require_profile()
def get_company():
    prof = current_profile()
    db = user_session(prof.id)
    try:
        company = db.get(Company, prof.company_id)
        if company is None:
            raise NotFoundError("company not found")
        return jsonify({"data": serialize_company(company)})
    finally:
        db.close()


@bp.put("/companies/current")
@require_profile("corporativo")
def update_company():
    prof = current_profile()
    data = json_body()
    db = user_session(prof.id)
    try:
        company = db.get(Company, prof.company_id)
        if company is None:
            raise NotFoundError("company not found")
        if "name" in data:
            company.name = require_str(data, "name", max_len=200)
        if "logo_url" in data:
            company.logo_url = optional_str(data, "logo_url", max_len=500)
        if "settings" in data:
            if not isinstance(data["settings"], dict):
                raise ValidationError("settings must be a JSON object")
            company.settings = data["settings"]
        db.commit()
        db.refresh(company)
        return jsonify({"data": serialize_company(company)})
    finally:
        db.close()
