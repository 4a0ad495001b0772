"""Invitation lifecycle: batch creation, revocation, resend, public lookup,
acceptance and expiry reminders.

Acceptance is the one multi-statement flow that must be atomic: the invitation
row is locked (``SELECT ... FOR UPDATE`` on Postgres), the profile is created or
linked, the member permission granted, the invitation marked accepted and the
onboarding session completed, all in a single transaction.
"""
from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .app_authz import AuthzError, ProfileContext
from .audit_events import record_audit_event
from .email_client import BrevoEmailClient
from .email_templates import invitation_email, invitation_url, reminder_email
from .errors import ConflictError, EmailDeliveryError, NotFoundError, ValidationError
from .identity import Identity
from .models import Company, Invitation, Profile, ProfilePermission, as_utc, utcnow
from .onboarding_service import complete_session
from .roles import MEMBER_PERMISSION, RoleType, can_invite_role

log = logging.getLogger("okr.invitations")

MAX_BATCH = 50
TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
REMINDER_WINDOW_DAYS = 3


def new_token() -> str:
    return secrets.token_urlsafe(32)


def is_expired(inv: Invitation, now: datetime | None = None) -> bool:
    expires = as_utc(inv.expires_at)
    return expires is not None and expires < (now or utcnow())


def serialize(inv: Invitation, *, include_token: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": inv.id,
        "company_id": inv.company_id,
        "email": inv.email,
        "role_type": inv.role_type,
        "department": inv.department,
        "invited_by": inv.invited_by,
        "status": inv.status,
        "expires_at": as_utc(inv.expires_at).isoformat() if inv.expires_at else None,
        "accepted_at": as_utc(inv.accepted_at).isoformat() if inv.accepted_at else None,
        "reminders_sent": inv.reminders_sent,
        "created_at": as_utc(inv.created_at).isoformat() if inv.created_at else None,
    }
    if include_token:
        out["token"] = inv.token
    return out


def grant_permission(db: Session, profile_id: str, permission: str = MEMBER_PERMISSION) -> None:
    exists = (
        db.query(ProfilePermission.id)
        .filter(ProfilePermission.profile_id == profile_id, ProfilePermission.permission == permission)
        .first()
    )
    if exists is None:
        db.add(ProfilePermission(profile_id=profile_id, permission=permission))


def _send_invitation(
    email_client: BrevoEmailClient,
    inv: Invitation,
    company: Company,
    inviter_name: str | None,
    base_url: str,
) -> bool:
    subject, html = invitation_email(
        company.name,
        inv.role_type,
        inviter_name,
        invitation_url(base_url, inv.token),
        as_utc(inv.expires_at).date().isoformat(),
    )
    try:
        email_client.send(inv.email, subject, html, tags=["invitation"])
        return True
    except EmailDeliveryError as e:
        log.warning("Invitation email to %s failed: %s", inv.email, e)
        return False


# ---- Creation -----------------------------------------------------------------

def create_invitations(
    db: Session,
    inviter: ProfileContext,
    emails: list[str],
    role: RoleType,
    department: str | None,
    *,
    ttl_days: int,
    email_client: BrevoEmailClient,
    base_url: str,
) -> dict[str, Any]:
    if inviter.role not in ("corporativo", "gerente"):
        raise AuthzError("only corporativo or gerente profiles can invite", required="gerente")
    if not can_invite_role(inviter.role, role):
        raise AuthzError("gerente profiles cannot invite corporativo users", required="corporativo")
    if inviter.role == "gerente":
        department = inviter.department

    company = db.get(Company, inviter.company_id)
    if company is None:
        raise NotFoundError("company not found")

    now = utcnow()
    results: list[dict[str, Any]] = []
    to_send: list[tuple[dict[str, Any], Invitation]] = []
    for email in emails:
        member = (
            db.query(Profile.id)
            .filter(Profile.company_id == inviter.company_id, func.lower(Profile.email) == email)
            .first()
        )
        if member is not None:
            results.append({"email": email, "status": "failed", "error": "user already exists in this company"})
            continue
        pending = (
            db.query(Invitation)
            .filter(
                Invitation.company_id == inviter.company_id,
                Invitation.email == email,
                Invitation.status == "pending",
                Invitation.expires_at > now,
            )
            .first()
        )
        if pending is not None:
            results.append({"email": email, "status": "existing", "invitation": serialize(pending)})
            continue
        inv = Invitation(
            company_id=inviter.company_id,
            email=email,
            token=new_token(),
            role_type=role,
            department=department,
            invited_by=inviter.id,
            status="pending",
            expires_at=now + timedelta(days=ttl_days),
        )
        db.add(inv)
        entry: dict[str, Any] = {"email": email, "status": "sent"}
        results.append(entry)
        to_send.append((entry, inv))
    db.commit()

    for entry, inv in to_send:
        db.refresh(inv)
        entry["invitation"] = serialize(inv)
        if not _send_invitation(email_client, inv, company, inviter.full_name, base_url):
            entry["status"] = "failed"
            entry["error"] = "invitation created but email delivery failed"
        record_audit_event(
            "invitation_sent",
            actor_user_id=inviter.id,
            company_id=inviter.company_id,
            invitation_id=inv.id,
            email_delivered=entry["status"] == "sent",
        )

    summary = {status: sum(1 for r in results if r["status"] == status) for status in ("sent", "existing", "failed")}
    return {"results": results, "summary": summary}


# ---- Management -------------------------------------------------------------------

def invitations_query(db: Session, viewer: ProfileContext):  # type: ignore[no-untyped-def]
    q = db.query(Invitation).filter(Invitation.company_id == viewer.company_id)
    if viewer.role == "gerente":
        clauses = [Invitation.invited_by == viewer.id]
        if viewer.department:
            clauses.append(Invitation.department == viewer.department)
        q = q.filter(or_(*clauses))
    return q


def get_managed_invitation(db: Session, viewer: ProfileContext, invitation_id: str) -> Invitation:
    inv = invitations_query(db, viewer).filter(Invitation.id == invitation_id).first()
    if inv is None:
        raise NotFoundError("invitation not found")
    return inv


def invitation_stats(db: Session, viewer: ProfileContext) -> dict[str, Any]:
    q = invitations_query(db, viewer)
    counts = {status: 0 for status in ("pending", "accepted", "expired", "revoked")}
    for status, n in q.with_entities(Invitation.status, func.count(Invitation.id)).group_by(Invitation.status):
        counts[status] = n
    total = sum(counts.values())
    return {
        **counts,
        "total": total,
        "acceptance_rate": round(counts["accepted"] / total, 4) if total else 0.0,
    }


def revoke_invitation(db: Session, viewer: ProfileContext, invitation_id: str) -> Invitation:
    inv = get_managed_invitation(db, viewer, invitation_id)
    if inv.status != "pending":
        raise ConflictError(f"only pending invitations can be revoked (status: {inv.status})")
    inv.status = "revoked"
    db.commit()
    db.refresh(inv)
    record_audit_event("invitation_revoked", actor_user_id=viewer.id, company_id=viewer.company_id, invitation_id=inv.id)
    return inv


def resend_invitation(
    db: Session,
    viewer: ProfileContext,
    invitation_id: str,
    *,
    ttl_days: int,
    email_client: BrevoEmailClient,
    base_url: str,
) -> tuple[Invitation, bool]:
    inv = get_managed_invitation(db, viewer, invitation_id)
    if inv.status == "pending" and is_expired(inv):
        inv.status = "expired"
        db.commit()
    if inv.status != "pending":
        raise ConflictError(f"invitation cannot be resent (status: {inv.status})")
    inv.expires_at = utcnow() + timedelta(days=ttl_days)
    db.commit()
    db.refresh(inv)
    company = db.get(Company, inv.company_id)
    delivered = _send_invitation(email_client, inv, company, viewer.full_name, base_url) if company else False
    return inv, delivered


# ---- Public token lookup + acceptance --------------------------------------------------

def validate_token(token: object) -> str:
    if not isinstance(token, str) or not TOKEN_RE.match(token):
        raise ValidationError("invalid invitation token")
    return token


def describe_token(db: Session, token: str) -> dict[str, Any]:
    token = validate_token(token)
    inv = db.query(Invitation).filter(Invitation.token == token).first()
    if inv is None:
        raise NotFoundError("invitation not found")
    if inv.status == "pending" and is_expired(inv):
        inv.status = "expired"
        db.commit()
        db.refresh(inv)
    company = db.get(Company, inv.company_id)
    return {
        "email": inv.email,
        "role_type": inv.role_type,
        "department": inv.department,
        "status": inv.status,
        "expires_at": as_utc(inv.expires_at).isoformat(),
        "valid": inv.status == "pending",
        "company": {"id": company.id, "name": company.name, "slug": company.slug} if company else None,
    }


def accept_invitation(db: Session, token: str, identity: Identity, full_name: str | None = None) -> dict[str, Any]:
    token = validate_token(token)
    inv = db.query(Invitation).filter(Invitation.token == token).with_for_update().first()
    if inv is None:
        raise NotFoundError("invitation not found")

    existing = db.get(Profile, identity.user_id)

    if inv.status == "accepted":
        if inv.accepted_by == identity.user_id and existing is not None and existing.company_id == inv.company_id:
            return {"profile": _profile_dict(existing), "invitation": serialize(inv), "already_accepted": True}
        raise ConflictError("invitation already accepted")
    if inv.status == "revoked":
        raise ValidationError("invitation has been revoked")
    if inv.status == "expired" or is_expired(inv):
        inv.status = "expired"
        db.commit()
        raise ValidationError("invitation has expired")

    if identity.email and identity.email.lower() != inv.email.lower():
        raise AuthzError("invitation was issued to a different email address")

    if existing is not None and existing.company_id != inv.company_id:
        raise ConflictError("user already belongs to another company")

    now = utcnow()
    if existing is None:
        name = (full_name or identity.name or inv.email.split("@", 1)[0]).strip()
        profile = Profile(
            id=identity.user_id,
            company_id=inv.company_id,
            email=inv.email,
            full_name=name[:200],
            role_type=inv.role_type,
            department=inv.department,
        )
        db.add(profile)
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("profile already exists for this user") from e
    else:
        profile = existing

    grant_permission(db, profile.id)
    inv.status = "accepted"
    inv.accepted_at = now
    inv.accepted_by = identity.user_id
    complete_session(db, identity.user_id, inv.email, invitation_token=inv.token)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("invitation was accepted concurrently") from e
    db.refresh(profile)
    db.refresh(inv)
    record_audit_event(
        "invitation_accepted",
        actor_user_id=identity.user_id,
        company_id=inv.company_id,
        invitation_id=inv.id,
    )
    return {"profile": _profile_dict(profile), "invitation": serialize(inv), "already_accepted": False}


def _profile_dict(p: Profile) -> dict[str, Any]:
    return {
        "id": p.id,
        "company_id": p.company_id,
        "email": p.email,
        "full_name": p.full_name,
        "role_type": p.role_type,
        "department": p.department,
    }


# ---- Scheduled reminders --------------------------------------------------------------

def process_reminders(db: Session, email_client: BrevoEmailClient, base_url: str, now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    expired_rows = (
        db.query(Invitation)
        .filter(Invitation.status == "pending", Invitation.expires_at < now)
        .all()
    )
    for inv in expired_rows:
        inv.status = "expired"
    db.commit()

    horizon = now + timedelta(days=REMINDER_WINDOW_DAYS)
    due = (
        db.query(Invitation)
        .filter(
            Invitation.status == "pending",
            Invitation.expires_at >= now,
            Invitation.expires_at <= horizon,
            Invitation.reminders_sent == 0,
        )
        .order_by(Invitation.expires_at.asc())
        .all()
    )
    sent = failed = 0
    companies: dict[str, Company | None] = {}
    for inv in due:
        if inv.company_id not in companies:
            companies[inv.company_id] = db.get(Company, inv.company_id)
        company = companies[inv.company_id]
        days_left = max(1, (as_utc(inv.expires_at) - now).days + 1)
        subject, html = reminder_email(company.name if company else "your team", invitation_url(base_url, inv.token), days_left)
        try:
            email_client.send(inv.email, subject, html, tags=["invitation-reminder"])
        except EmailDeliveryError as e:
            log.warning("Reminder to %s failed: %s", inv.email, e)
            failed += 1
            continue
        inv.reminders_sent = (inv.reminders_sent or 0) + 1
        sent += 1
    db.commit()
    return {"expired": len(expired_rows), "due": len(due), "sent": sent, "failed": failed}
