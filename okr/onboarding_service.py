"""Onboarding: session tracking and organization creation.

A user either creates a new company (becoming its first ``corporativo``) or joins
one through an invitation (see `okr.invitation_service.accept_invitation`). Both
paths finish by completing the user's onboarding session in the same
transaction that creates the profile.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .audit_events import record_audit_event
from .errors import ConflictError, ValidationError
from .identity import Identity
from .models import Company, OnboardingSession, Profile, ProfilePermission, as_utc, utcnow
from .roles import MEMBER_PERMISSION, ONBOARDING_STEPS

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
SLUG_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,118}[a-z0-9])?$")


def slugify(name: str) -> str:
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", ascii_name.lower()).strip("-")
    return slug[:100] or "company"


def unique_slug(db: Session, base: str) -> str:
    candidate = base
    counter = 1
    while db.query(Company.id).filter(Company.slug == candidate).first() is not None:
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def serialize_session(s: OnboardingSession | None) -> dict[str, Any] | None:
    if s is None:
        return None
    return {
        "id": s.id,
        "status": s.status,
        "current_step": s.current_step,
        "partial_data": s.partial_data or {},
        "invitation_token": s.invitation_token,
        "started_at": as_utc(s.started_at).isoformat() if s.started_at else None,
        "completed_at": as_utc(s.completed_at).isoformat() if s.completed_at else None,
        "last_activity": as_utc(s.last_activity).isoformat() if s.last_activity else None,
    }


def get_session_row(db: Session, user_id: str) -> OnboardingSession | None:
    return db.query(OnboardingSession).filter(OnboardingSession.user_id == user_id).first()


def next_step(profile: Profile | None, session: OnboardingSession | None) -> str | None:
    if profile is not None:
        return None
    if session is not None and session.status == "in_progress":
        return session.current_step
    return "create_org"


def status(db: Session, identity: Identity) -> dict[str, Any]:
    profile = db.get(Profile, identity.user_id)
    session = get_session_row(db, identity.user_id)
    company = db.get(Company, profile.company_id) if profile is not None else None
    return {
        "has_profile": profile is not None,
        "company": {"id": company.id, "name": company.name, "slug": company.slug} if company else None,
        "session": serialize_session(session),
        "next_step": next_step(profile, session),
    }


def start_session(db: Session, identity: Identity, *, invitation_token: str | None = None, restart: bool = False) -> OnboardingSession:
    if db.get(Profile, identity.user_id) is not None:
        raise ConflictError("onboarding already completed")
    now = utcnow()
    session = get_session_row(db, identity.user_id)
    step = "accept_invite" if invitation_token else "create_org"
    if session is None:
        session = OnboardingSession(
            user_id=identity.user_id,
            email=identity.email,
            status="in_progress",
            current_step=step,
            partial_data={},
            invitation_token=invitation_token,
            started_at=now,
            last_activity=now,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent start inserted the row first
            db.rollback()
            session = get_session_row(db, identity.user_id)
            if session is None:
                raise
        db.refresh(session)
        return session
    if restart or session.status != "in_progress":
        # One row per user: restarting abandons the previous attempt's data
        session.status = "in_progress"
        session.current_step = step
        session.partial_data = {}
        session.invitation_token = invitation_token
        session.started_at = now
        session.completed_at = None
        session.last_activity = now
    else:
        if invitation_token:
            session.invitation_token = invitation_token
            session.current_step = "accept_invite"
        session.last_activity = now
    db.commit()
    db.refresh(session)
    return session


def update_session(db: Session, user_id: str, partial_data: dict[str, Any] | None, current_step: str | None) -> OnboardingSession:
    session = get_session_row(db, user_id)
    if session is None or session.status != "in_progress":
        raise ValidationError("no active onboarding session")
    if current_step is not None:
        if current_step not in ONBOARDING_STEPS:
            raise ValidationError(f"current_step must be one of: {', '.join(ONBOARDING_STEPS)}")
        session.current_step = current_step
    if partial_data:
        merged = dict(session.partial_data or {})
        merged.update(partial_data)
        session.partial_data = merged
    session.last_activity = utcnow()
    db.commit()
    db.refresh(session)
    return session


def complete_session(db: Session, user_id: str, email: str | None, *, invitation_token: str | None = None) -> OnboardingSession:
    """Mark the user's session completed (creating it if needed). Caller commits."""
    now = utcnow()
    session = get_session_row(db, user_id)
    if session is None:
        session = OnboardingSession(user_id=user_id, email=email, started_at=now, partial_data={})
        db.add(session)
    session.status = "completed"
    session.current_step = "complete_profile"
    session.completed_at = now
    session.last_activity = now
    if invitation_token:
        session.invitation_token = invitation_token
    return session


def finish(db: Session, identity: Identity) -> OnboardingSession:
    if db.get(Profile, identity.user_id) is None:
        raise ValidationError("create or join an organization before completing onboarding")
    session = complete_session(db, identity.user_id, identity.email)
    db.commit()
    db.refresh(session)
    return session


def create_organization(
    db: Session,
    identity: Identity,
    name: str,
    *,
    slug: str | None = None,
    department: str | None = None,
    full_name: str | None = None,
    settings: dict[str, Any] | None = None,
) -> tuple[Company, Profile]:
    if db.get(Profile, identity.user_id) is not None:
        raise ConflictError("user already belongs to an organization")
    if slug is not None:
        if not SLUG_RE.match(slug):
            raise ValidationError("slug may contain only lowercase letters, digits and dashes")
        if db.query(Company.id).filter(Company.slug == slug).first() is not None:
            raise ConflictError("slug already in use")
        final_slug = slug
    else:
        final_slug = unique_slug(db, slugify(name))

    company = Company(name=name, slug=final_slug, settings=settings or {})
    db.add(company)
    db.flush()
    email = identity.email or f"{identity.user_id}@users.invalid"
    profile = Profile(
        id=identity.user_id,
        company_id=company.id,
        email=email,
        full_name=(full_name or identity.name or email.split("@", 1)[0])[:200],
        role_type="corporativo",
        department=department,
    )
    db.add(profile)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("organization could not be created; user or slug already exists") from e
    db.add(ProfilePermission(profile_id=profile.id, permission=MEMBER_PERMISSION))
    complete_session(db, identity.user_id, identity.email)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("organization could not be created; user or slug already exists") from e
    db.refresh(company)
    db.refresh(profile)
    record_audit_event("organization_created", actor_user_id=identity.user_id, company_id=company.id, slug=company.slug)
    return company, profile
