"""Onboarding endpoints. Callers are authenticated but may not have a profile yet."""

from __future__ import annotations

from flask import Blueprint, jsonify

from . import onboarding_service as svc
from .errors import ValidationError
from .identity import current_identity, require_identity
from .invitation_service import validate_token
from .profiles_api import serialize_company, serialize_profile
from .rls import system_session
from .validation import json_body, optional_str, require_str

bp = Blueprint("onboarding_api", __name__, url_prefix="/onboarding")


@bp.get("/status")
@require_identity
def onboarding_status():
    ident = current_identity()
    db = system_session()
    try:
        return jsonify({"data": svc.status(db, ident)})
    finally:
        db.close()


@bp.post("/start")
@require_identity
def start():
    ident = current_identity()
    data = json_body()
    token = data.get("invitation_token")
    if token is not None:
        token = validate_token(token)
    db = system_session()
    try:
        session = svc.start_session(db, ident, invitation_token=token, restart=bool(data.get("restart")))
        return jsonify({"data": svc.serialize_session(session)})
    finally:
        db.close()


@bp.put("/session")
@require_identity
def update_session():
    ident = current_identity()
    data = json_body()
    partial = data.get("partial_data")
    if partial is not None and not isinstance(partial, dict):
        raise ValidationError("partial_data must be a JSON object")
    step = data.get("current_step")
    if step is not None and not isinstance(step, str):
        raise ValidationError("current_step must be a string")
    db = system_session()
    try:
        session = svc.update_session(db, ident.user_id, partial, step)
        return jsonify({"data": svc.serialize_session(session)})
    finally:
        db.close()


@bp.post("/organization")
@require_identity
def create_organization():
    ident = current_identity()
    data = json_body()
    name = require_str(data, "name", max_len=200)
    slug = optional_str(data, "slug", max_len=120)
    settings = data.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ValidationError("settings must be a JSON object")
    db = system_session()
    try:
        company, profile = svc.create_organization(
            db,
            ident,
            name,
            slug=slug.lower() if slug else None,
            department=optional_str(data, "department", max_len=120),
            full_name=optional_str(data, "full_name", max_len=200),
            settings=settings,
        )
        resp = jsonify({"data": {"company": serialize_company(company), "profile": serialize_profile(profile)}})
        resp.status_code = 201
        return resp
    finally:
        db.close()


@bp.post("/complete")
@require_identity
def complete():
    ident = current_identity()
    db = system_session()
    try:
        session = svc.finish(db, ident)
        return jsonify({"data": svc.serialize_session(session)})
    finally:
        db.close()
