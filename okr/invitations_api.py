"""Invitations API.

Management routes are for corporativo and gerente profiles. The token routes are
what an invitee uses: the lookup is public, acceptance needs only a valid
identity because the caller has no profile yet.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from . import invitation_service as svc
from .app_authz import current_profile, require_profile
from .errors import ValidationError
from .identity import current_identity, require_identity
from .models import Invitation
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import system_session, user_session
from .roles import INVITATION_STATUSES, ROLE_TYPES, to_role
from .validation import json_body, optional_str, parse_email, parse_enum

bp = Blueprint("invitations_api", __name__, url_prefix="/invitations")

MANAGERS = ("corporativo", "gerente")


def _parse_emails(data: dict) -> list[str]:
    raw = data.get("emails")
    if raw is None and "email" in data:
        raw = [data["email"]]
    if not isinstance(raw, list) or not raw:
        raise ValidationError("emails must be a non-empty list")
    if len(raw) > svc.MAX_BATCH:
        raise ValidationError(f"at most {svc.MAX_BATCH} emails per request")
    out: list[str] = []
    for item in raw:
        email = parse_email(item, "emails")
        if email not in out:
            out.append(email)
    return out


@bp.post("")
@require_profile(*MANAGERS)
def create_invitations():
    prof = current_profile()
    data = json_body()
    emails = _parse_emails(data)
    role = to_role(data.get("role_type", data.get("role")))
    if role is None:
        raise ValidationError(f"role_type must be one of: {', '.join(ROLE_TYPES)}")
    department = optional_str(data, "department", max_len=120)
    db = user_session(prof.id)
    try:
        result = svc.create_invitations(
            db,
            prof,
            emails,
            role,
            department,
            ttl_days=current_app.config["INVITATION_TTL_DAYS"],
            email_client=current_app.email_client,  # type: ignore[attr-defined]
            base_url=current_app.config["APP_BASE_URL"],
        )
        resp = jsonify({"data": result})
        resp.status_code = 201
        return resp
    finally:
        db.close()


@bp.get("")
@require_profile(*MANAGERS)
def list_invitations():
    prof = current_profile()
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = svc.invitations_query(db, prof)
        status = request.args.get("status")
        if status:
            q = q.filter(Invitation.status == parse_enum(status, INVITATION_STATUSES, "status"))
        search = (request.args.get("search") or "").strip().lower()
        if search:
            q = q.filter(Invitation.email.contains(search, autoescape=True))
        q = q.order_by(Invitation.created_at.desc(), Invitation.id.desc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([svc.serialize(i) for i in rows], page_req, total))
    finally:
        db.close()


@bp.get("/stats")
@require_profile(*MANAGERS)
def invitation_stats():
    prof = current_profile()
    db = user_session(prof.id)
    try:
        return jsonify({"data": svc.invitation_stats(db, prof)})
    finally:
        db.close()


@bp.delete("/<invitation_id>")
@require_profile(*MANAGERS)
def revoke_invitation(invitation_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        inv = svc.revoke_invitation(db, prof, invitation_id)
        return jsonify({"message": "invitation revoked", "data": svc.serialize(inv)})
    finally:
        db.close()


@bp.post("/<invitation_id>/resend")
@require_profile(*MANAGERS)
def resend_invitation(invitation_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        inv, delivered = svc.resend_invitation(
            db,
            prof,
            invitation_id,
            ttl_days=current_app.config["INVITATION_TTL_DAYS"],
            email_client=current_app.email_client,  # type: ignore[attr-defined]
            base_url=current_app.config["APP_BASE_URL"],
        )
        return jsonify({"data": {**svc.serialize(inv), "email_delivered": delivered}})
    finally:
        db.close()


@bp.get("/token/<token>")
def lookup_token(token: str):
    db = system_session()
    try:
        return jsonify({"data": svc.describe_token(db, token)})
    finally:
        db.close()


@bp.post("/token/<token>/accept")
@require_identity
def accept_invitation(token: str):
    ident = current_identity()
    data = json_body()
    full_name = optional_str(data, "full_name", max_len=200)
    db = system_session()
    try:
        result = svc.accept_invitation(db, token, ident, full_name)
        return jsonify({"data": result})
    finally:
        db.close()
