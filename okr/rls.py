"""Row-level security context for Postgres.

Every transaction begun by a session carrying an RLS identity runs
``set_config('app.current_user_id', ..., true)`` before any other statement, then
resolves the caller's company into ``app.current_company_id``. Policies compare
against that setting only, so no policy reads ``profiles`` while ``profiles``
itself is under a forced policy.
The setting is transaction-local, so a pooled connection never carries a
previous caller's identity into the next checkout. System sessions (scheduled
jobs, flows that run before the caller belongs to a company) set
``app.bypass_rls = 'on'`` instead.

On SQLite the hook is a no-op; tenant isolation then rests on
``okr.tenant_scope`` alone.
"""

from __future__ import annotations

from sqlalchemy import event, text
from sqlalchemy.orm import Session

from .db import get_new_session, get_session

RLS_USER_KEY = "rls_user_id"
RLS_SYSTEM_KEY = "rls_system"


@event.listens_for(Session, "after_begin")
def _apply_rls_context(session: Session, transaction, connection) -> None:  # type: ignore[no-untyped-def]
    if connection.dialect.name != "postgresql":
        return
    user_id = session.info.get(RLS_USER_KEY)
    system = bool(session.info.get(RLS_SYSTEM_KEY))
    if user_id is None and not system:
        return
    connection.execute(
        text("SELECT set_config('app.current_user_id', :uid, true)"),
        {"uid": str(user_id or "")},
    )
    connection.execute(
        text("SELECT set_config('app.bypass_rls', :flag, true)"),
        {"flag": "on" if system else "off"},
    )
    if system:
        return
    # Visible through the id clause of the profiles policy
    connection.execute(
        text(
            "SELECT set_config('app.current_company_id', "
            "coalesce((SELECT company_id FROM profiles WHERE id = :uid), ''), true)"
        ),
        {"uid": str(user_id)},
    )


def bind(session: Session, *, user_id: str | None = None, system: bool = False) -> Session:
    session.info[RLS_USER_KEY] = user_id
    session.info[RLS_SYSTEM_KEY] = system
    return session


def user_session(user_id: str) -> Session:
    """Request-scoped session whose transactions run as `user_id`."""
    return bind(get_session(), user_id=user_id)


def system_session(*, isolated: bool = False) -> Session:
    """Session that bypasses RLS policies; tenant filters must be applied explicitly."""
    db = get_new_session() if isolated else get_session()
    return bind(db, system=True)


# Installed by migration 0002_rls_policies. Kept here so tests and tooling can
# inspect the exact policy set the application expects.
TENANT_TABLES: tuple[str, ...] = (
    "objectives",
    "key_results",
    "initiatives",
    "activities",
    "invitations",
    "ai_insights",
    "import_logs",
)

COMPANY_SETTING = "nullif(current_setting('app.current_company_id', true), '')"
BYPASS_CLAUSE = "coalesce(current_setting('app.bypass_rls', true), 'off') = 'on'"


def policy_statements() -> list[str]:
    stmts: list[str] = []
    for table in TENANT_TABLES:
        stmts.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        stmts.append(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        stmts.append(
            f"CREATE POLICY {table}_tenant_isolation ON {table} "
            f"USING (company_id = {COMPANY_SETTING} OR {BYPASS_CLAUSE}) "
            f"WITH CHECK (company_id = {COMPANY_SETTING} OR {BYPASS_CLAUSE})"
        )
    stmts += [
        "ALTER TABLE profiles ENABLE ROW LEVEL SECURITY",
        "ALTER TABLE profiles FORCE ROW LEVEL SECURITY",
        "CREATE POLICY profiles_tenant_isolation ON profiles "
        f"USING (company_id = {COMPANY_SETTING} "
        f"OR id = current_setting('app.current_user_id', true) OR {BYPASS_CLAUSE}) "
        f"WITH CHECK (company_id = {COMPANY_SETTING} OR {BYPASS_CLAUSE})",
        "ALTER TABLE companies ENABLE ROW LEVEL SECURITY",
        "ALTER TABLE companies FORCE ROW LEVEL SECURITY",
        "CREATE POLICY companies_tenant_isolation ON companies "
        f"USING (id = {COMPANY_SETTING} OR {BYPASS_CLAUSE}) "
        f"WITH CHECK (id = {COMPANY_SETTING} OR {BYPASS_CLAUSE})",
    ]
    return stmts


def drop_policy_statements() -> list[str]:
    stmts: list[str] = []
    for table in (*TENANT_TABLES, "profiles", "companies"):
        stmts.append(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}")
        stmts.append(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        stmts.append(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    return stmts


__all__ = [
    "bind",
    "user_session",
    "system_session",
    "policy_statements",
    "drop_policy_statements",
    "TENANT_TABLES",
]
