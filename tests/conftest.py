import json
import os
import sys
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

# Path setup before any project imports
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

JWT_SECRET = "test-secret"
CRON_SECRET = "cron-test"


def _lazy_imports():
    from okr import create_app  # noqa: E402
    from okr.db import create_all  # noqa: E402

    return create_app, create_all


class FakeEmailClient:
    """Records outgoing mail instead of calling the provider."""

    configured = True

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, to_email, subject, html, *, to_name=None, tags=None):
        from okr.errors import EmailDeliveryError

        if to_email in self.fail_for:
            raise EmailDeliveryError("provider returned 500")
        self.sent.append({"to": to_email, "subject": subject, "html": html, "to_name": to_name, "tags": tags or []})
        return f"msg-{len(self.sent)}"

    def to(self, email):
        return [m for m in self.sent if m["to"] == email]


class FakeCompletions:
    """Stands in for ``OpenAI().chat.completions``; answers are queued per test."""

    def __init__(self):
        self.answers = []
        self.calls = []
        self.error = None

    def queue(self, answer):
        self.answers.append(answer if isinstance(answer, str) else json.dumps(answer))

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        content = self.answers.pop(0) if self.answers else "Keep going."
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def features():
    return {
        "ai_suggestions": True,
        "ai_weekly_reports": True,
        "ai_daily_okr_analysis": True,
        "ai_risk_detection": False,
        "invitation_reminders": True,
    }


@pytest.fixture
def app(tmp_path, features):
    create_app, create_all = _lazy_imports()
    from okr.ai_client import AIClient
    from okr.audit_events import clear_audit_events
    from okr.rate_limit import reset

    url = f"sqlite:///{tmp_path / 'okr_test.db'}"
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "database_url": url,
            "FORCE_DB_REINIT": True,
            "jwt_secrets": [JWT_SECRET],
            "cron_secret": CRON_SECRET,
            "app_base_url": "https://app.okr.test",
            "features": features,
        }
    )
    with app.app_context():
        create_all()
    completions = FakeCompletions()
    app.email_client = FakeEmailClient()
    app.ai_client = AIClient("test-key", client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    app.fake_completions = completions
    clear_audit_events()
    reset()
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    return app.email_client


@pytest.fixture
def completions(app):
    return app.fake_completions


def make_token(user_id, email=None, name=None, **claims):
    from okr.jwt_utils import encode

    payload = {"sub": user_id, **claims}
    if email is not None:
        payload["email"] = email
    if name is not None:
        payload["name"] = name
    return encode(payload, secret=JWT_SECRET)


@pytest.fixture
def auth():
    """auth(user_id, email=None) -> headers carrying a bearer token for that user."""

    def _headers(user_id, email=None, name=None, **claims):
        if email is None:
            email = f"{user_id}@example.test"
        return {"Authorization": f"Bearer {make_token(user_id, email, name, **claims)}"}

    return _headers


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


class Factory:
    """Inserts rows directly, outside any request."""

    def __init__(self):
        from okr.db import get_new_session

        self._new_session = get_new_session

    def _add(self, row):
        db = self._new_session()
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row
        finally:
            db.close()

    def company(self, name, slug):
        from okr.models import Company

        return self._add(Company(name=name, slug=slug, settings={}))

    def profile(self, user_id, company, role, department=None, full_name=None):
        from okr.models import Profile

        return self._add(
            Profile(
                id=user_id,
                company_id=company.id,
                email=f"{user_id}@example.test",
                full_name=full_name or user_id,
                role_type=role,
                department=department,
            )
        )

    def objective(self, owner, title="Grow revenue", **kw):
        from okr.models import Objective

        kw.setdefault("department", owner.department)
        return self._add(Objective(company_id=owner.company_id, owner_id=owner.id, title=title, **kw))

    def key_result(self, objective, target=100.0, current=0.0, title="Close deals"):
        from okr.models import KeyResult
        from okr.okr_service import key_result_percentage

        return self._add(
            KeyResult(
                company_id=objective.company_id,
                objective_id=objective.id,
                title=title,
                target_value=target,
                current_value=current,
                progress_percentage=key_result_percentage(current, target),
            )
        )

    def initiative(self, objective, owner, title="Launch campaign", **kw):
        from okr.models import Initiative

        return self._add(
            Initiative(company_id=objective.company_id, objective_id=objective.id, owner_id=owner.id, title=title, **kw)
        )

    def activity(self, initiative, owner, title="Call customers", **kw):
        from okr.models import Activity

        return self._add(
            Activity(company_id=initiative.company_id, initiative_id=initiative.id, owner_id=owner.id, title=title, **kw)
        )

    def invitation(self, company, email, *, role="empleado", department=None, invited_by=None, token=None, status="pending", expires_in_days=7):
        from okr.invitation_service import new_token
        from okr.models import Invitation, utcnow

        return self._add(
            Invitation(
                company_id=company.id,
                email=email,
                token=token or new_token(),
                role_type=role,
                department=department,
                invited_by=invited_by,
                status=status,
                expires_at=utcnow() + timedelta(days=expires_in_days),
            )
        )

    def insight(self, company, profile=None, category="risk", title="Objective at risk"):
        from okr.models import AIInsight

        return self._add(
            AIInsight(
                company_id=company.id,
                profile_id=profile.id if profile else None,
                category=category,
                title=title,
                content=f"{title} (generated)",
            )
        )

    def fetch(self, model, pk):
        db = self._new_session()
        try:
            row = db.get(model, pk)
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def onboarding(self, user_id):
        from okr.models import OnboardingSession

        db = self._new_session()
        try:
            row = db.query(OnboardingSession).filter(OnboardingSession.user_id == user_id).first()
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def count(self, model, **filters):
        db = self._new_session()
        try:
            return db.query(model).filter_by(**filters).count()
        finally:
            db.close()


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def seed(factory):
    """Two companies. Acme has every role across two departments; Globex has one corporativo."""
    acme = factory.company("Acme", "acme")
    globex = factory.company("Globex", "globex")
    return SimpleNamespace(
        acme=acme,
        globex=globex,
        corp=factory.profile("acme-corp", acme, "corporativo", "Direccion"),
        ventas_mgr=factory.profile("acme-ventas-mgr", acme, "gerente", "Ventas"),
        ops_mgr=factory.profile("acme-ops-mgr", acme, "gerente", "Operaciones"),
        ana=factory.profile("acme-ana", acme, "empleado", "Ventas"),
        bruno=factory.profile("acme-bruno", acme, "empleado", "Ventas"),
        globex_corp=factory.profile("globex-corp", globex, "corporativo", "Direccion"),
    )


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def stale_profile_lookup(monkeypatch):
    """Make ``Session.get(Profile, ...)`` miss, as if another request inserted the row after our lookup."""
    from sqlalchemy.orm import Session

    from okr.models import Profile

    real_get = Session.get

    def get(self, entity, ident, **kw):
        if entity is Profile:
            return None
        return real_get(self, entity, ident, **kw)

    monkeypatch.setattr(Session, "get", get)
