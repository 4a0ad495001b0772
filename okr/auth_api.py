from __future__ import annotations

from flask import Blueprint, jsonify

from .identity import current_identity, require_identity
from .models import Company, Profile
from .onboarding_service import get_session_row, next_step
from .profiles_api import permissions_of, serialize_company, serialize_profile
from .rls import user_session

bp = Blueprint("auth_api", __name__, url_prefix="/auth")


@bp.get("/me")
@require_identity
def me():
    ident = current_identity()
    db = user_session(ident.user_id)
    try:
        profile = db.get(Profile, ident.user_id)
        company = db.get(Company, profile.company_id) if profile is not None else None
        session = get_session_row(db, ident.user_id)
        return jsonify(
            {
                "data": {
                    "user": {"id": ident.user_id, "email": ident.email, "name": ident.name},
                    "profile": serialize_profile(profile) if profile is not None else None,
                    "company": serialize_company(company) if company is not None else None,
                    "permissions": permissions_of(db, profile.id) if profile is not None else [],
                    "next_step": next_step(profile, session),
                }
            }
        )
    finally:
        db.close()
